"""Operator endpoints. All of them require a service-role token."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from guroute.api.deps import get_ledger_service, get_referral_service, require_service_role
from guroute.auth.tokens import Principal
from guroute.credits.service import LedgerService
from guroute.referral.service import ReferralService

router = APIRouter(prefix="/admin", tags=["admin"])


class GrantRequest(BaseModel):
    user_id: str
    amount: int
    reason: str | None = None


class RefundRequest(BaseModel):
    user_id: str
    trip_id: str


class BalanceResponse(BaseModel):
    user_id: str
    balance: int


class ReconciliationResponse(BaseModel):
    user_id: str
    balance: int
    log_total: int
    lifetime_earned: int
    log_earned: int
    lifetime_spent: int
    log_spent: int
    last_balance_after: int | None = None
    transaction_count: int
    consistent: bool


class CodeStatusRequest(BaseModel):
    active: bool


class CodeStatusResponse(BaseModel):
    code: str
    is_active: bool


@router.post("/credits/grant", response_model=BalanceResponse)
async def grant_credits(
    body: GrantRequest,
    principal: Principal = Depends(require_service_role),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Grant credits to a user (support gesture, promotions)."""
    balance = ledger.grant_admin_credits(body.user_id, body.amount, body.reason)
    return BalanceResponse(user_id=body.user_id, balance=balance)


@router.post("/credits/refund", response_model=BalanceResponse)
async def refund_trip(
    body: RefundRequest,
    principal: Principal = Depends(require_service_role),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Refund the credit spent on a trip whose generation failed."""
    balance = ledger.refund_trip(body.user_id, body.trip_id)
    return BalanceResponse(user_id=body.user_id, balance=balance)


@router.get("/credits/{user_id}/reconcile", response_model=ReconciliationResponse)
async def reconcile_ledger(
    user_id: str,
    principal: Principal = Depends(require_service_role),
    ledger: LedgerService = Depends(get_ledger_service),
):
    report = ledger.reconcile(user_id)
    return ReconciliationResponse(**report.to_dict())


@router.post("/referral/{code}/active", response_model=CodeStatusResponse)
async def set_code_status(
    code: str,
    body: CodeStatusRequest,
    principal: Principal = Depends(require_service_role),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Deactivate (e.g. for abuse) or reactivate a referral code."""
    referral_code = referrals.set_active(code, body.active)

    if referral_code is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invalid referral code",
        )

    return CodeStatusResponse(code=referral_code.code, is_active=referral_code.is_active)
