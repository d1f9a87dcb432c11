"""Credit ledger operations.

Every public mutation runs in a single database transaction: the balance
update, its log entry and any referral bookkeeping commit together or not
at all.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from guroute.accounts.models import Profile
from guroute.accounts.service import get_or_create_profile
from guroute.credits.exceptions import InvalidAmountError, LedgerNotFoundError, RefundNotAllowedError
from guroute.credits.models import CreditTransaction, TransactionType, UserCredits
from guroute.logging_config import get_logger
from guroute.referral.models import ReferralHistory
from guroute.referral.service import create_code_for_user, find_active_code, normalize_code
from guroute.settings import settings
from guroute.storage.db import Database, db

logger = get_logger(__name__)

PREMIUM_BALANCE = -1  # Reported instead of a balance when premium skips the charge


@dataclass
class InitializeResult:
    balance: int
    referral_applied: bool
    already_exists: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SpendResult:
    """Outcome of a trip-generation charge.

    ``reason`` is one of ``premium``, ``credit_spent`` or ``insufficient_credits``.
    """

    success: bool
    reason: str
    balance: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MonthlyGrantResult:
    granted: bool
    reason: str  # granted | too_soon | no_ledger
    new_balance: int | None = None
    next_eligible_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ReconciliationReport:
    """Comparison of a ledger row against the sum of its transaction log."""

    user_id: str
    balance: int
    log_total: int
    lifetime_earned: int
    log_earned: int
    lifetime_spent: int
    log_spent: int
    last_balance_after: int | None
    transaction_count: int

    @property
    def consistent(self) -> bool:
        return (
            self.balance >= 0
            and self.balance == self.log_total
            and self.lifetime_earned == self.log_earned
            and self.lifetime_spent == self.log_spent
            and (self.last_balance_after is None or self.last_balance_after == self.balance)
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["consistent"] = self.consistent
        return data


def eligible_for_monthly_credit(credits: UserCredits, now: datetime | None = None) -> bool:
    """Whether enough time has passed since the last free monthly credit."""
    if credits.last_free_credit_at is None:
        return True
    now = now or datetime.utcnow()
    return now - credits.last_free_credit_at >= timedelta(days=settings.monthly_interval_days)


def _check_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


class LedgerService:
    """Service for the credit ledger.

    Operations:
    - Initialize a new user's ledger (welcome bonus and referral)
    - Spend a credit on trip generation
    - Add purchased credits
    - Grant the monthly free credit
    - Admin grants, trip refunds and reconciliation
    """

    def __init__(self, database: Database | None = None):
        """Initialize ledger service."""
        self.db = database or db
        self.logger = get_logger(__name__)

    # ==================== INTERNALS ====================

    @staticmethod
    def _locked_ledger(session: Session, user_id: str) -> UserCredits | None:
        # SELECT FOR UPDATE so concurrent mutations on one user serialize
        return session.scalar(
            select(UserCredits).where(UserCredits.user_id == user_id).with_for_update()
        )

    @staticmethod
    def _apply(
        session: Session,
        ledger: UserCredits,
        amount: int,
        tx_type: TransactionType,
        description: str | None = None,
        reference_id: str | None = None,
    ) -> CreditTransaction:
        """Change a locked ledger row and append the matching log entry."""
        new_balance = ledger.balance + amount
        if new_balance < 0:
            raise InvalidAmountError(amount)

        ledger.balance = new_balance
        if amount > 0:
            ledger.lifetime_earned += amount
        else:
            ledger.lifetime_spent += -amount
        ledger.updated_at = datetime.utcnow()

        transaction = CreditTransaction(
            user_id=ledger.user_id,
            amount=amount,
            balance_after=new_balance,
            type=tx_type.value,
            description=description,
            reference_id=reference_id,
        )
        session.add(transaction)
        return transaction

    # ==================== QUERIES ====================

    def get_credits(self, user_id: str) -> UserCredits | None:
        """Get a user's ledger row.

        Args:
            user_id: User ID

        Returns:
            UserCredits or None when the ledger was never initialized
        """
        with self.db.session() as session:
            return session.scalar(select(UserCredits).where(UserCredits.user_id == user_id))

    def get_balance(self, user_id: str) -> int:
        credits = self.get_credits(user_id)
        return credits.balance if credits else 0

    def get_transactions(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[CreditTransaction]:
        """Get a user's transaction history, newest first.

        Args:
            user_id: User ID
            limit: Max records
            offset: Offset for pagination

        Returns:
            List of transactions
        """
        with self.db.session() as session:
            return list(
                session.scalars(
                    select(CreditTransaction)
                    .where(CreditTransaction.user_id == user_id)
                    .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
                    .offset(offset)
                    .limit(limit)
                ).all()
            )

    # ==================== MUTATIONS ====================

    def initialize_user_credits(self, user_id: str, referral_code: str | None = None) -> InitializeResult:
        """Create the ledger for a new user.

        Grants the welcome bonus, creates the user's own referral code and,
        when a valid code of another user is given, pays the referral bonus
        to both sides. Calling it again for an existing user changes nothing.

        Args:
            user_id: New user's ID
            referral_code: Optional code entered at signup

        Returns:
            InitializeResult with the resulting balance
        """
        try:
            return self._initialize(user_id, referral_code)
        except IntegrityError:
            # Lost a race against a concurrent initialization of the same user
            existing = self.get_credits(user_id)
            if existing is None:
                raise
            self.logger.info("ledger_initialize_conflict", user_id=user_id)
            return InitializeResult(
                balance=existing.balance,
                referral_applied=False,
                already_exists=True,
            )

    def _initialize(self, user_id: str, referral_code: str | None) -> InitializeResult:
        with self.db.session() as session:
            existing = session.scalar(select(UserCredits).where(UserCredits.user_id == user_id))
            if existing:
                return InitializeResult(
                    balance=existing.balance,
                    referral_applied=False,
                    already_exists=True,
                )

            get_or_create_profile(session, user_id)

            ledger = UserCredits(
                user_id=user_id,
                balance=0,
                lifetime_earned=0,
                lifetime_spent=0,
            )
            session.add(ledger)
            session.flush()

            self._apply(
                session,
                ledger,
                settings.welcome_credits,
                TransactionType.WELCOME_BONUS,
                description="Welcome credits",
            )

            create_code_for_user(session, user_id)

            referral_applied = False
            if normalize_code(referral_code):
                referral_applied = self._apply_referral(session, ledger, referral_code)

            session.flush()
            self.logger.info(
                "ledger_initialized",
                user_id=user_id,
                balance=ledger.balance,
                referral_applied=referral_applied,
            )

            return InitializeResult(
                balance=ledger.balance,
                referral_applied=referral_applied,
                already_exists=False,
            )

    def _apply_referral(self, session: Session, ledger: UserCredits, referral_code: str) -> bool:
        """Pay the referral bonus to both users. Returns False if the code does not qualify."""
        user_id = ledger.user_id
        code_row = find_active_code(session, referral_code)

        if code_row is None:
            self.logger.info("referral_code_rejected", user_id=user_id, code=referral_code, reason="not_found")
            return False

        if code_row.user_id == user_id:
            self.logger.info("referral_code_rejected", user_id=user_id, code=code_row.code, reason="self_referral")
            return False

        already_referred = session.scalar(
            select(ReferralHistory.id).where(ReferralHistory.referred_user_id == user_id)
        )
        if already_referred is not None:
            self.logger.info("referral_code_rejected", user_id=user_id, code=code_row.code, reason="already_referred")
            return False

        referrer_ledger = self._locked_ledger(session, code_row.user_id)
        if referrer_ledger is None:
            self.logger.warning(
                "referral_code_rejected", user_id=user_id, code=code_row.code, reason="referrer_has_no_ledger"
            )
            return False

        bonus = settings.referral_bonus

        session.add(
            ReferralHistory(
                referrer_user_id=code_row.user_id,
                referred_user_id=user_id,
                referral_code=code_row.code,
                referrer_credited=True,
                referred_credited=True,
            )
        )

        self._apply(
            session,
            referrer_ledger,
            bonus,
            TransactionType.REFERRAL_BONUS,
            description="Friend invite bonus",
            reference_id=code_row.code,
        )
        code_row.total_referrals += 1
        code_row.total_credits_earned += bonus

        self._apply(
            session,
            ledger,
            bonus,
            TransactionType.REFERRAL_WELCOME,
            description="Signup with referral code bonus",
            reference_id=code_row.code,
        )

        self.logger.info(
            "referral_applied",
            referrer_id=code_row.user_id,
            referred_id=user_id,
            code=code_row.code,
            bonus=bonus,
        )
        return True

    def spend_credit(self, user_id: str, trip_id: str, now: datetime | None = None) -> SpendResult:
        """Spend one credit for a trip generation.

        Premium users are never charged. Running out of credits is reported
        in the result, not raised.

        Args:
            user_id: User ID
            trip_id: Trip being generated, stored as the log reference

        Returns:
            SpendResult
        """
        cost = settings.trip_cost

        with self.db.session() as session:
            profile = session.get(Profile, user_id)
            if profile is not None and profile.premium_active(now):
                self.logger.info("credit_spend_skipped_premium", user_id=user_id, trip_id=trip_id)
                return SpendResult(success=True, reason="premium", balance=PREMIUM_BALANCE)

            ledger = self._locked_ledger(session, user_id)
            if ledger is None or ledger.balance < cost:
                balance = ledger.balance if ledger else 0
                self.logger.info("credit_spend_refused", user_id=user_id, trip_id=trip_id, balance=balance)
                return SpendResult(success=False, reason="insufficient_credits", balance=balance)

            self._apply(
                session,
                ledger,
                -cost,
                TransactionType.TRIP_GENERATION,
                description="Trip generation",
                reference_id=trip_id,
            )

            self.logger.info("credit_spent", user_id=user_id, trip_id=trip_id, new_balance=ledger.balance)
            return SpendResult(success=True, reason="credit_spent", balance=ledger.balance)

    def add_purchased_credits(self, user_id: str, amount: int, product_id: str) -> int:
        """Add credits bought in the store.

        Args:
            user_id: User ID
            amount: Number of credits (positive)
            product_id: Store product, stored as the log reference

        Returns:
            New balance

        Raises:
            InvalidAmountError: If amount is not a positive integer
            LedgerNotFoundError: If the user has no ledger
        """
        with self.db.session() as session:
            return self.apply_purchase(session, user_id, amount, product_id)

    def apply_purchase(self, session: Session, user_id: str, amount: int, product_id: str) -> int:
        """Purchase bookkeeping inside a caller-provided session."""
        amount = _check_amount(amount)

        ledger = self._locked_ledger(session, user_id)
        if ledger is None:
            raise LedgerNotFoundError(user_id)

        self._apply(
            session,
            ledger,
            amount,
            TransactionType.PURCHASE,
            description=f"{amount} credits purchased",
            reference_id=product_id,
        )

        self.logger.info(
            "credits_purchased",
            user_id=user_id,
            amount=amount,
            product_id=product_id,
            new_balance=ledger.balance,
        )
        return ledger.balance

    def grant_monthly_credit(self, user_id: str, now: datetime | None = None) -> MonthlyGrantResult:
        """Grant the free monthly credit if the interval has passed.

        Args:
            user_id: User ID
            now: Reference time (defaults to current UTC time)

        Returns:
            MonthlyGrantResult
        """
        now = now or datetime.utcnow()
        interval = timedelta(days=settings.monthly_interval_days)

        with self.db.session() as session:
            ledger = self._locked_ledger(session, user_id)
            if ledger is None:
                return MonthlyGrantResult(granted=False, reason="no_ledger")

            last = ledger.last_free_credit_at
            if last is not None and last > now - interval:
                return MonthlyGrantResult(
                    granted=False,
                    reason="too_soon",
                    next_eligible_at=last + interval,
                )

            self._apply(
                session,
                ledger,
                settings.monthly_free_credits,
                TransactionType.MONTHLY_FREE,
                description="Monthly free credit",
            )
            ledger.last_free_credit_at = now

            self.logger.info("monthly_credit_granted", user_id=user_id, new_balance=ledger.balance)
            return MonthlyGrantResult(
                granted=True,
                reason="granted",
                new_balance=ledger.balance,
                next_eligible_at=now + interval,
            )

    def grant_admin_credits(self, user_id: str, amount: int, reason: str | None = None) -> int:
        """Give credits by operator decision.

        Returns:
            New balance
        """
        amount = _check_amount(amount)

        with self.db.session() as session:
            ledger = self._locked_ledger(session, user_id)
            if ledger is None:
                raise LedgerNotFoundError(user_id)

            self._apply(
                session,
                ledger,
                amount,
                TransactionType.ADMIN_GRANT,
                description=reason or "Granted by support",
            )

            self.logger.info("admin_credits_granted", user_id=user_id, amount=amount, new_balance=ledger.balance)
            return ledger.balance

    def refund_trip(self, user_id: str, trip_id: str) -> int:
        """Give back the credit charged for a trip, e.g. when generation failed.

        Each trip charge can be refunded once.

        Returns:
            New balance

        Raises:
            LedgerNotFoundError: If the user has no ledger
            RefundNotAllowedError: If the trip was never charged or is already refunded
        """
        with self.db.session() as session:
            ledger = self._locked_ledger(session, user_id)
            if ledger is None:
                raise LedgerNotFoundError(user_id)

            def _count(tx_type: TransactionType) -> int:
                return session.scalar(
                    select(func.count(CreditTransaction.id)).where(
                        CreditTransaction.user_id == user_id,
                        CreditTransaction.type == tx_type.value,
                        CreditTransaction.reference_id == trip_id,
                    )
                ) or 0

            charges = _count(TransactionType.TRIP_GENERATION)
            refunds = _count(TransactionType.REFUND)
            if charges == 0:
                raise RefundNotAllowedError(f"Trip {trip_id} was never charged")
            if refunds >= charges:
                raise RefundNotAllowedError(f"Trip {trip_id} was already refunded")

            # Give back what was charged, even if the trip cost changed since
            charged = session.scalar(
                select(CreditTransaction.amount)
                .where(
                    CreditTransaction.user_id == user_id,
                    CreditTransaction.type == TransactionType.TRIP_GENERATION.value,
                    CreditTransaction.reference_id == trip_id,
                )
                .order_by(CreditTransaction.id.desc())
                .limit(1)
            )
            cost = -charged
            ledger.balance += cost
            ledger.lifetime_spent -= cost
            ledger.updated_at = datetime.utcnow()
            session.add(
                CreditTransaction(
                    user_id=user_id,
                    amount=cost,
                    balance_after=ledger.balance,
                    type=TransactionType.REFUND.value,
                    description="Trip generation refund",
                    reference_id=trip_id,
                )
            )

            self.logger.info("trip_refunded", user_id=user_id, trip_id=trip_id, new_balance=ledger.balance)
            return ledger.balance

    # ==================== RECONCILIATION ====================

    def reconcile(self, user_id: str) -> ReconciliationReport:
        """Compare a ledger row with its transaction log.

        Refunds give back spending, so they count against ``lifetime_spent``
        rather than towards ``lifetime_earned``.

        Raises:
            LedgerNotFoundError: If the user has no ledger
        """
        with self.db.session() as session:
            ledger = session.scalar(select(UserCredits).where(UserCredits.user_id == user_id))
            if ledger is None:
                raise LedgerNotFoundError(user_id)

            rows = session.execute(
                select(CreditTransaction.amount, CreditTransaction.type).where(CreditTransaction.user_id == user_id)
            ).all()

            log_total = sum(amount for amount, _ in rows)
            refunded = sum(amount for amount, tx_type in rows if tx_type == TransactionType.REFUND.value)
            log_earned = sum(
                amount for amount, tx_type in rows if amount > 0 and tx_type != TransactionType.REFUND.value
            )
            log_spent = -sum(amount for amount, _ in rows if amount < 0) - refunded

            last_balance_after = session.scalar(
                select(CreditTransaction.balance_after)
                .where(CreditTransaction.user_id == user_id)
                .order_by(CreditTransaction.id.desc())
                .limit(1)
            )

            report = ReconciliationReport(
                user_id=user_id,
                balance=ledger.balance,
                log_total=log_total,
                lifetime_earned=ledger.lifetime_earned,
                log_earned=log_earned,
                lifetime_spent=ledger.lifetime_spent,
                log_spent=log_spent,
                last_balance_after=last_balance_after,
                transaction_count=len(rows),
            )

        if not report.consistent:
            self.logger.error("ledger_inconsistent", **report.to_dict())
        return report

    def reconcile_all(self) -> list[ReconciliationReport]:
        """Reconcile every ledger. Meant for a periodic job."""
        with self.db.session() as session:
            user_ids = list(session.scalars(select(UserCredits.user_id).order_by(UserCredits.user_id)).all())

        reports = [self.reconcile(user_id) for user_id in user_ids]
        self.logger.info(
            "ledgers_reconciled",
            total=len(reports),
            inconsistent=sum(1 for r in reports if not r.consistent),
        )
        return reports


# Singleton instance
ledger_service = LedgerService()
