"""Webhook ingress — signed payloads from GitHub, Stripe, or anything else.

Learn: A delivery goes through four stages:
1. parse the raw body as JSON (400 on failure)
2. verify the signature with the source's scheme (401 on failure)
3. classify the event type from headers/payload
4. run the handler registered for that event type (500 if it raises)

Having no handler for an event type is not an error — the sender gets a
200 with `handled: false`.
"""
