"""Handling of events reported by the in-app purchase flow.

The app completes the purchase with the store and then reports it here:
credit packs become ledger credits, subscriptions toggle premium status.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from guroute.accounts.service import ProfileService
from guroute.credits.exceptions import StoreTransactionConflictError, UnknownProductError
from guroute.credits.models import UserCredits
from guroute.credits.service import LedgerService
from guroute.logging_config import get_logger
from guroute.storage.db import Database, db
from guroute.store.models import ProcessedStoreTransaction
from guroute.store.products import PRODUCTS, ProductKind, get_product

logger = get_logger(__name__)


class StoreService:
    """Service turning store events into ledger and premium changes."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.ledger = LedgerService(self.db)
        self.profiles = ProfileService(self.db)
        self.logger = get_logger(__name__)

    @staticmethod
    def list_products() -> list[dict[str, Any]]:
        """Get the product catalogue.

        Returns:
            List of product info
        """
        return [
            {
                "id": product.product_id,
                "kind": product.kind.value,
                "credits": product.credits,
                "period_days": product.period_days,
            }
            for product in PRODUCTS.values()
        ]

    def is_transaction_processed(self, transaction_id: str) -> bool:
        with self.db.session() as session:
            existing = session.scalar(
                select(ProcessedStoreTransaction.id).where(
                    ProcessedStoreTransaction.transaction_id == transaction_id
                )
            )
            return existing is not None

    def record_credit_purchase(self, user_id: str, product_id: str, transaction_id: str) -> int:
        """Credit a purchased credit pack exactly once.

        Args:
            user_id: Buyer
            product_id: Store product identifier
            transaction_id: Store transaction identifier, used for idempotency

        Returns:
            Balance after the purchase

        Raises:
            UnknownProductError: If the product is not a known credit pack
            LedgerNotFoundError: If the buyer has no ledger
            StoreTransactionConflictError: If the transaction was credited to another user
        """
        product = get_product(product_id)
        if product is None or product.kind is not ProductKind.CREDIT_PACK:
            raise UnknownProductError(product_id)

        try:
            with self.db.session() as session:
                already = self._processed(session, transaction_id)
                if already is not None:
                    return self._duplicate_balance(session, already, user_id)

                new_balance = self.ledger.apply_purchase(session, user_id, product.credits, product_id)
                session.add(
                    ProcessedStoreTransaction(
                        transaction_id=transaction_id,
                        product_id=product_id,
                        user_id=user_id,
                        credits=product.credits,
                    )
                )
                session.flush()
                return new_balance
        except IntegrityError:
            # A concurrent report of the same transaction committed first
            with self.db.session() as session:
                already = self._processed(session, transaction_id)
                if already is None:
                    raise
                return self._duplicate_balance(session, already, user_id)

    @staticmethod
    def _processed(session: Session, transaction_id: str) -> ProcessedStoreTransaction | None:
        return session.scalar(
            select(ProcessedStoreTransaction).where(
                ProcessedStoreTransaction.transaction_id == transaction_id
            )
        )

    def _duplicate_balance(
        self,
        session: Session,
        already: ProcessedStoreTransaction,
        user_id: str,
    ) -> int:
        if already.user_id != user_id:
            self.logger.warning(
                "store_transaction_foreign",
                user_id=user_id,
                owner_id=already.user_id,
                transaction_id=already.transaction_id,
            )
            raise StoreTransactionConflictError(already.transaction_id)

        balance = session.scalar(select(UserCredits.balance).where(UserCredits.user_id == user_id))
        self.logger.info(
            "store_transaction_duplicate",
            user_id=user_id,
            transaction_id=already.transaction_id,
        )
        return balance or 0

    def record_subscription(
        self,
        user_id: str,
        product_id: str,
        active: bool,
        expires_at: datetime | None = None,
    ) -> bool:
        """Apply a subscription status change.

        Returns:
            Whether the user is premium afterwards
        """
        product = get_product(product_id)
        if product is None or product.kind is not ProductKind.SUBSCRIPTION:
            raise UnknownProductError(product_id)

        profile = self.profiles.set_premium(user_id, active, expires_at)
        self.logger.info(
            "subscription_recorded",
            user_id=user_id,
            product_id=product_id,
            active=active,
        )
        return profile.premium_active()


# Singleton instance
store_service = StoreService()
