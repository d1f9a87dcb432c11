"""Referral system module.

Simple signup bonus system:
- Every user gets a code like ``GR-A7X2K9`` when their ledger is created
- Signing up with someone's code gives both users one extra credit
"""

from guroute.referral.models import ReferralCode, ReferralHistory
from guroute.referral.service import ReferralService, referral_service

__all__ = ["ReferralCode", "ReferralHistory", "ReferralService", "referral_service"]
