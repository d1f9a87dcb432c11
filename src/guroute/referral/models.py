"""Referral system database models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from guroute.storage.models import Base


class ReferralCode(Base):
    """Unique referral code for each user.

    Each user gets one code to share. Tracks how many users signed up with
    it and how many credits that earned the owner.
    """

    __tablename__ = "referral_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)

    # Statistics
    total_referrals: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_credits_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ReferralCode(code={self.code}, referrals={self.total_referrals})>"


class ReferralHistory(Base):
    """One successful referral.

    ``referred_user_id`` is unique: a user can be referred only once.
    """

    __tablename__ = "referral_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    referrer_user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    referred_user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    referral_code: Mapped[str] = mapped_column(String(20), nullable=False)

    referrer_credited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    referred_credited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ReferralHistory(referrer={self.referrer_user_id}, referred={self.referred_user_id})>"
