"""Store API v1 endpoints.

The app reports completed in-app purchases here after the store confirms
them.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from guroute.api.deps import get_profile_service, get_store_service, require_auth, resolve_user_id
from guroute.auth.tokens import Principal
from guroute.accounts.service import ProfileService
from guroute.store.service import StoreService

router = APIRouter(prefix="/store", tags=["store"])


def _naive_utc(value: datetime | None) -> datetime | None:
    # Timestamps are stored as naive UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ProductResponse(BaseModel):
    id: str
    kind: str
    credits: int
    period_days: int | None = None


class PurchaseRequest(BaseModel):
    """Completed credit pack purchase."""
    product_id: str
    transaction_id: str
    user_id: str | None = None


class PurchaseResponse(BaseModel):
    balance: int


class SubscriptionRequest(BaseModel):
    product_id: str
    active: bool
    expires_at: datetime | None = None
    user_id: str | None = None


class PremiumResponse(BaseModel):
    is_premium: bool


@router.get("/products", response_model=list[ProductResponse])
async def list_products():
    """Get available credit packs and subscriptions."""
    return [ProductResponse(**p) for p in StoreService.list_products()]


@router.post("/purchases", response_model=PurchaseResponse)
async def record_purchase(
    body: PurchaseRequest,
    principal: Principal = Depends(require_auth),
    store: StoreService = Depends(get_store_service),
):
    """Credit a purchased pack. Reporting the same transaction twice credits once."""
    target = resolve_user_id(principal, body.user_id)
    balance = store.record_credit_purchase(target, body.product_id, body.transaction_id)
    return PurchaseResponse(balance=balance)


@router.post("/subscription", response_model=PremiumResponse)
async def record_subscription(
    body: SubscriptionRequest,
    principal: Principal = Depends(require_auth),
    store: StoreService = Depends(get_store_service),
):
    """Record a subscription start, renewal or expiry."""
    target = resolve_user_id(principal, body.user_id)
    is_premium = store.record_subscription(
        target,
        body.product_id,
        body.active,
        _naive_utc(body.expires_at),
    )
    return PremiumResponse(is_premium=is_premium)


@router.get("/premium", response_model=PremiumResponse)
async def get_premium_status(
    user_id: str | None = Query(default=None),
    principal: Principal = Depends(require_auth),
    profiles: ProfileService = Depends(get_profile_service),
):
    target = resolve_user_id(principal, user_id)
    return PremiumResponse(is_premium=profiles.is_premium(target))
