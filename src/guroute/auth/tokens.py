"""JWT access tokens.

Tokens carry the user id in ``sub``. Tokens with ``role=service_role`` may
act on any user's ledger; all others only on their own.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from guroute.logging_config import get_logger
from guroute.settings import settings

logger = get_logger(__name__)

SERVICE_ROLE = "service_role"
USER_ROLE = "authenticated"


@dataclass(frozen=True)
class Principal:
    """Caller identity resolved from a token."""

    user_id: str
    role: str = USER_ROLE

    @property
    def is_service(self) -> bool:
        return self.role == SERVICE_ROLE

    def can_access(self, user_id: str) -> bool:
        """Own rows only, unless acting with the service role."""
        return self.is_service or self.user_id == user_id


def create_access_token(
    user_id: str,
    role: str = USER_ROLE,
    expires_delta: timedelta | None = None,
) -> str:
    """Create JWT access token.

    Args:
        user_id: Subject of the token
        role: ``authenticated`` or ``service_role``
        expires_delta: Optional expiration time

    Returns:
        JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.jwt_expire_hours)

    now = datetime.utcnow()
    payload = {
        "sub": user_id,
        "role": role,
        "exp": now + expires_delta,
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any] | None:
    """Verify and decode JWT token.

    Args:
        token: JWT token string

    Returns:
        Token payload or None if invalid
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug("token_verification_failed", error=str(e))
        return None


def principal_from_token(token: str) -> Principal | None:
    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None
    return Principal(user_id=str(payload["sub"]), role=payload.get("role") or USER_ROLE)
