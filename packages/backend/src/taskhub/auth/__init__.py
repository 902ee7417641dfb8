"""Authentication — the Credential Verifier.

Learn: Token issuance (login, refresh, registration) lives outside this
service. We only verify access tokens and resolve them to a user id.
Two callers share the same verifier:
1. HTTP routes → get_current_user dependency (Bearer header or cookie)
2. WebSocket handshake → taskhub.realtime.websocket
"""
