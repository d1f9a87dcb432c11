"""Rate limiting for the ledger API.

Authenticated callers are limited per user, anonymous callers (referral code
validation on the signup screen) per client address.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from guroute.settings import settings


def rate_limit_key(request: Request) -> str:
    """Bucket key for a request: the caller's user id, or its address."""
    principal = getattr(request.state, "principal", None)
    if principal is not None:
        return f"user:{principal.user_id}"
    return f"ip:{get_remote_address(request)}"


def rate_limit_enabled() -> bool:
    if settings.rate_limit_enabled is not None:
        return settings.rate_limit_enabled
    return settings.env == "production"


# Single shared limiter instance
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.rate_limit_default],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=rate_limit_enabled(),
)
