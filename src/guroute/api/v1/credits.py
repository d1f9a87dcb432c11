"""Credits API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict

from guroute.api.deps import get_ledger_service, require_auth, resolve_user_id
from guroute.auth.tokens import Principal
from guroute.credits.service import LedgerService, eligible_for_monthly_credit

router = APIRouter(prefix="/credits", tags=["credits"])


# ==================== MODELS ====================


class InitializeRequest(BaseModel):
    """Ledger creation request, sent once after signup."""
    referral_code: str | None = None
    user_id: str | None = None  # service role only


class InitializeResponse(BaseModel):
    balance: int
    referral_applied: bool
    already_exists: bool


class CreditsResponse(BaseModel):
    """Current ledger state."""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    last_free_credit_at: datetime | None = None
    eligible_for_monthly_credit: bool = False
    created_at: datetime
    updated_at: datetime


class SpendRequest(BaseModel):
    trip_id: str
    user_id: str | None = None


class SpendResponse(BaseModel):
    success: bool
    reason: str
    balance: int


class MonthlyGrantResponse(BaseModel):
    granted: bool
    reason: str
    new_balance: int | None = None
    next_eligible_at: datetime | None = None


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    balance_after: int
    type: str
    description: str | None = None
    reference_id: str | None = None
    created_at: datetime


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    limit: int
    offset: int


# ==================== ENDPOINTS ====================


@router.post("/initialize", response_model=InitializeResponse)
async def initialize_credits(
    body: InitializeRequest,
    principal: Principal = Depends(require_auth),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Create the caller's ledger with the welcome bonus.

    An optional referral code credits both the caller and the code owner.
    Safe to call again: an existing ledger is returned unchanged.
    """
    target = resolve_user_id(principal, body.user_id)
    result = ledger.initialize_user_credits(target, body.referral_code)
    return InitializeResponse(**result.to_dict())


@router.get("", response_model=CreditsResponse)
async def get_credits(
    user_id: str | None = Query(default=None),
    principal: Principal = Depends(require_auth),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Get the ledger of the caller (or of ``user_id`` for the service role)."""
    target = resolve_user_id(principal, user_id)
    credits = ledger.get_credits(target)

    if credits is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Credits not initialized",
        )

    response = CreditsResponse.model_validate(credits)
    response.eligible_for_monthly_credit = eligible_for_monthly_credit(credits)
    return response


@router.post("/spend", response_model=SpendResponse)
async def spend_credit(
    body: SpendRequest,
    principal: Principal = Depends(require_auth),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Spend one credit for a trip generation.

    Returns 402 with the current balance when the caller is out of credits.
    """
    target = resolve_user_id(principal, body.user_id)
    result = ledger.spend_credit(target, body.trip_id)

    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=result.to_dict(),
        )

    return SpendResponse(**result.to_dict())


@router.post("/monthly", response_model=MonthlyGrantResponse)
async def grant_monthly_credit(
    user_id: str | None = Query(default=None),
    principal: Principal = Depends(require_auth),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Claim the free monthly credit if 30 days have passed since the last one."""
    target = resolve_user_id(principal, user_id)
    result = ledger.grant_monthly_credit(target)
    return MonthlyGrantResponse(**result.to_dict())


@router.get("/transactions", response_model=TransactionListResponse)
async def get_transactions(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: str | None = Query(default=None),
    principal: Principal = Depends(require_auth),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Get credit transaction history, newest first."""
    target = resolve_user_id(principal, user_id)
    transactions = ledger.get_transactions(target, limit=limit, offset=offset)

    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        limit=limit,
        offset=offset,
    )
