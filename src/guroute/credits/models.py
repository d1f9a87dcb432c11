"""Ledger tables: per-user balances and the append-only transaction log."""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from guroute.storage.models import Base


class TransactionType(str, Enum):
    """Kinds of balance mutation recorded in the log."""
    WELCOME_BONUS = "welcome_bonus"        # Granted on ledger creation
    MONTHLY_FREE = "monthly_free"          # Free credit every 30 days
    PURCHASE = "purchase"                  # Credit pack bought in the store
    TRIP_GENERATION = "trip_generation"    # Spent on a generated itinerary
    REFERRAL_BONUS = "referral_bonus"      # Paid to the referrer
    REFERRAL_WELCOME = "referral_welcome"  # Paid to the referred user
    ADMIN_GRANT = "admin_grant"
    REFUND = "refund"


class UserCredits(Base):
    """Credit balance of one user."""

    __tablename__ = "user_credits"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_credits_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )

    balance: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    lifetime_earned: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    lifetime_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_free_credit_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserCredits(user={self.user_id}, balance={self.balance})>"


class CreditTransaction(Base):
    """Immutable record of a single balance mutation."""

    __tablename__ = "credit_transactions"
    __table_args__ = (
        Index("ix_credit_transactions_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # Positive = earned, negative = spent
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)  # trip, product or referral code

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CreditTransaction(id={self.id}, user={self.user_id}, amount={self.amount}, type={self.type})>"
