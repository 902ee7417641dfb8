"""Credential Verifier — bearer token → user identity.

Used by both the HTTP dependency and the WebSocket handshake, so every
failure is an AuthenticationError with a client-safe message.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from taskhub.auth.jwt import TokenError, verify_token
from taskhub.errors import AuthenticationError

logger = structlog.get_logger()

# async (user_id) -> bool
UserLookup = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class Identity:
    """The authenticated caller."""

    user_id: str


def extract_bearer(value: Optional[str]) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` value."""
    if not value:
        return None
    if value.startswith("Bearer "):
        return value[7:].strip() or None
    return None


class CredentialVerifier:
    """Validate access tokens and resolve them to an Identity.

    `user_lookup` is optional: without it a well-formed, unexpired token is
    enough. With it, tokens for users that no longer exist are rejected.
    """

    def __init__(self, user_lookup: Optional[UserLookup] = None):
        self.user_lookup = user_lookup

    async def verify(self, token: Optional[str]) -> Identity:
        if not token:
            raise AuthenticationError("Authentication token required")

        try:
            payload = verify_token(token)
        except TokenError as e:
            logger.info("auth.token_rejected", reason=str(e))
            if "expired" in str(e):
                raise AuthenticationError("Token expired")
            raise AuthenticationError("Invalid token")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token payload")
        user_id = str(user_id)

        if self.user_lookup is not None and not await self.user_lookup(user_id):
            logger.info("auth.unknown_user", user_id=user_id)
            raise AuthenticationError("User not found")

        return Identity(user_id=user_id)
