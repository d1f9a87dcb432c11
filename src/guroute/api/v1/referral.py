"""Referral API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict

from guroute.api.deps import get_referral_service, require_auth
from guroute.api.rate_limit import limiter
from guroute.auth.tokens import Principal
from guroute.referral.service import ReferralService
from guroute.settings import settings

router = APIRouter(prefix="/referral", tags=["referral"])


# ==================== MODELS ====================


class ReferralCodeResponse(BaseModel):
    """Response with user's referral code."""
    code: str
    link: str
    share_text: str


class ReferralStatsResponse(BaseModel):
    """Response with referral statistics."""
    code: str
    link: str
    total_referrals: int
    total_credits_earned: int
    is_active: bool


class ReferralHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    referrer_user_id: str
    referred_user_id: str
    referral_code: str
    referrer_credited: bool
    referred_credited: bool
    created_at: datetime


class ValidateCodeRequest(BaseModel):
    """Request to validate a referral code."""
    code: str


class ValidateCodeResponse(BaseModel):
    """Response from code validation."""
    valid: bool
    bonus_credits: int = 0


# ==================== ENDPOINTS ====================


@router.get("/code", response_model=ReferralCodeResponse)
async def get_referral_code(
    principal: Principal = Depends(require_auth),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Get current user's referral code.

    Creates a new code if user doesn't have one.
    """
    referral_code = referrals.get_or_create_code(principal.user_id)

    return ReferralCodeResponse(
        code=referral_code.code,
        link=f"{settings.referral_share_url}/{referral_code.code}",
        share_text=ReferralService.share_text(referral_code.code),
    )


@router.get("/stats", response_model=ReferralStatsResponse)
async def get_referral_stats(
    principal: Principal = Depends(require_auth),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Get referral statistics for current user."""
    stats = referrals.get_stats(principal.user_id)

    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No referral code yet",
        )

    return ReferralStatsResponse(**stats)


@router.get("/history", response_model=list[ReferralHistoryResponse])
async def get_referral_history(
    principal: Principal = Depends(require_auth),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Referrals the current user made or was part of."""
    return [ReferralHistoryResponse.model_validate(r) for r in referrals.get_history(principal.user_id)]


@router.post("/validate", response_model=ValidateCodeResponse)
@limiter.limit(settings.referral_validate_rate_limit)
async def validate_referral_code(
    request: Request,
    body: ValidateCodeRequest,
    referrals: ReferralService = Depends(get_referral_service),
):
    """Validate a referral code.

    Used on the signup screen before the account exists, so no auth.
    """
    referral_code = referrals.validate_code(body.code)

    if not referral_code:
        return ValidateCodeResponse(valid=False)

    return ValidateCodeResponse(valid=True, bonus_credits=settings.referral_bonus)
