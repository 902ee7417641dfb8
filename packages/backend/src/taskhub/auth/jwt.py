"""JWT access-token verification.

Learn: Tokens are HS256-signed with settings.jwt_secret. The subject
claim (`sub`) is the user id. create_access_token exists for local
development and tests; real tokens come from the identity service.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from taskhub.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: str,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token (dev/test helper)."""
    now = datetime.now(timezone.utc)
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes
    payload = {
        "sub": user_id,
        "type": "access",
        "exp": now + timedelta(minutes=expires_minutes),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        return jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")
