"""FastAPI dependencies: database, services and the authenticated caller."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from guroute.accounts.service import ProfileService
from guroute.auth.tokens import Principal, principal_from_token
from guroute.credits.service import LedgerService
from guroute.logging_config import bind_request_context
from guroute.referral.service import ReferralService
from guroute.storage.db import Database
from guroute.store.service import StoreService

# Security scheme
security = HTTPBearer(auto_error=False)


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_ledger_service(database: Database = Depends(get_database)) -> LedgerService:
    return LedgerService(database)


def get_referral_service(database: Database = Depends(get_database)) -> ReferralService:
    return ReferralService(database)


def get_profile_service(database: Database = Depends(get_database)) -> ProfileService:
    return ProfileService(database)


def get_store_service(database: Database = Depends(get_database)) -> StoreService:
    return StoreService(database)


async def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Principal | None:
    """Resolve the caller from the bearer token, if any."""
    if not credentials:
        return None

    principal = principal_from_token(credentials.credentials)
    if principal:
        request.state.principal = principal
        bind_request_context(user_id=principal.user_id, role=principal.role)
    return principal


def require_auth(principal: Principal | None = Depends(get_current_principal)) -> Principal:
    """Require authentication - raises 401 if not authenticated.

    Args:
        principal: Caller from get_current_principal

    Returns:
        Authenticated principal

    Raises:
        HTTPException: 401 if not authenticated
    """
    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_service_role(principal: Principal = Depends(require_auth)) -> Principal:
    """Require the service role.

    Raises:
        HTTPException: 403 for ordinary user tokens
    """
    if not principal.is_service:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Service role required",
        )
    return principal


def resolve_user_id(principal: Principal, user_id: str | None) -> str:
    """Pick the target user for a request.

    Users act on themselves; the service role may name another user.

    Raises:
        HTTPException: 403 when a user targets someone else's ledger
    """
    target = user_id or principal.user_id
    if not principal.can_access(target):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to access another user's ledger",
        )
    return target
