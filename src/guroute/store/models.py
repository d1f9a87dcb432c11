"""Store bookkeeping models."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from guroute.storage.models import Base


class ProcessedStoreTransaction(Base):
    """Store transaction that has already been credited.

    Keeps purchase reporting idempotent when the app retries.
    """

    __tablename__ = "processed_store_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    processed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ProcessedStoreTransaction(transaction_id={self.transaction_id}, credits={self.credits})>"
