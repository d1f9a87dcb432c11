"""Referral service for managing referral codes and referral history."""

import secrets
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from guroute.logging_config import get_logger
from guroute.referral.models import ReferralCode, ReferralHistory
from guroute.settings import settings
from guroute.storage.db import Database, db

logger = get_logger(__name__)

MAX_CODE_ATTEMPTS = 10


def generate_code() -> str:
    """Generate a referral code such as ``GR-A7X2K9``.

    Six upper-case hex characters after the configured prefix.
    """
    return settings.referral_code_prefix + secrets.token_hex(3).upper()


def normalize_code(code: str | None) -> str | None:
    """Strip and upper-case a user-entered code. Blank input gives None."""
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def create_code_for_user(session: Session, user_id: str) -> ReferralCode:
    """Return the user's code, creating a fresh unique one if needed.

    Runs inside the caller's session so it joins the caller's transaction.
    """
    existing = session.scalar(select(ReferralCode).where(ReferralCode.user_id == user_id))
    if existing:
        return existing

    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_code()
        taken = session.scalar(select(ReferralCode.id).where(ReferralCode.code == code))
        if taken is None:
            break
    else:
        raise RuntimeError(f"Could not generate a unique referral code after {MAX_CODE_ATTEMPTS} attempts")

    referral_code = ReferralCode(user_id=user_id, code=code)
    session.add(referral_code)
    session.flush()

    logger.info("referral_code_created", user_id=user_id, code=code)
    return referral_code


def find_active_code(session: Session, code: str | None) -> ReferralCode | None:
    """Look up an active referral code, ignoring case and surrounding whitespace."""
    code = normalize_code(code)
    if code is None:
        return None
    return session.scalar(
        select(ReferralCode).where(
            ReferralCode.code == code,
            ReferralCode.is_active.is_(True),
        )
    )


class ReferralService:
    """Service for referral codes and referral history."""

    def __init__(self, database: Database | None = None):
        """Initialize referral service."""
        self.db = database or db
        self.logger = get_logger(__name__)

    def get_or_create_code(self, user_id: str) -> ReferralCode:
        """Get existing referral code or create a new one for the user.

        Args:
            user_id: User ID

        Returns:
            ReferralCode object
        """
        from guroute.accounts.service import get_or_create_profile

        with self.db.session() as session:
            get_or_create_profile(session, user_id)
            return create_code_for_user(session, user_id)

    def get_code(self, user_id: str) -> ReferralCode | None:
        with self.db.session() as session:
            return session.scalar(select(ReferralCode).where(ReferralCode.user_id == user_id))

    def validate_code(self, code: str) -> ReferralCode | None:
        """Validate a referral code.

        Args:
            code: Referral code as entered by the user

        Returns:
            ReferralCode if it exists and is active, None otherwise
        """
        with self.db.session() as session:
            return find_active_code(session, code)

    def set_active(self, code: str, active: bool) -> ReferralCode | None:
        """Activate or deactivate a code. Inactive codes no longer pay bonuses."""
        code = normalize_code(code)
        if code is None:
            return None

        with self.db.session() as session:
            referral_code = session.scalar(select(ReferralCode).where(ReferralCode.code == code))
            if referral_code is None:
                return None

            referral_code.is_active = active
            self.logger.info("referral_code_status_changed", code=code, active=active)
            return referral_code

    def get_stats(self, user_id: str) -> dict[str, Any] | None:
        """Get referral statistics for a user.

        Args:
            user_id: User ID

        Returns:
            Dict with code, counters and share link, or None if the user has no code
        """
        referral_code = self.get_code(user_id)
        if referral_code is None:
            return None

        return {
            "code": referral_code.code,
            "link": f"{settings.referral_share_url}/{referral_code.code}",
            "total_referrals": referral_code.total_referrals,
            "total_credits_earned": referral_code.total_credits_earned,
            "is_active": referral_code.is_active,
        }

    def get_history(self, user_id: str) -> list[ReferralHistory]:
        """Referrals where the user is either the referrer or the referred user."""
        with self.db.session() as session:
            return list(
                session.scalars(
                    select(ReferralHistory)
                    .where(
                        or_(
                            ReferralHistory.referrer_user_id == user_id,
                            ReferralHistory.referred_user_id == user_id,
                        )
                    )
                    .order_by(ReferralHistory.created_at.desc(), ReferralHistory.id.desc())
                ).all()
            )

    def get_referrer_for_user(self, user_id: str) -> str | None:
        with self.db.session() as session:
            return session.scalar(
                select(ReferralHistory.referrer_user_id).where(ReferralHistory.referred_user_id == user_id)
            )

    @staticmethod
    def share_text(code: str) -> str:
        """Invitation message for sharing a code."""
        bonus = settings.referral_bonus
        return (
            f"Plan your next trip with Guroute! Sign up with my code {code} "
            f"and we both get {bonus} free trip credit{'s' if bonus != 1 else ''}: "
            f"{settings.referral_share_url}/{code}"
        )


# Singleton instance
referral_service = ReferralService()
