"""Credit ledger module.

Balances live in ``user_credits``; every change is appended to
``credit_transactions`` in the same database transaction.
"""

from guroute.credits.exceptions import (
    InvalidAmountError,
    LedgerError,
    LedgerNotFoundError,
    RefundNotAllowedError,
    StoreTransactionConflictError,
    UnknownProductError,
)
from guroute.credits.models import CreditTransaction, TransactionType, UserCredits
from guroute.credits.service import (
    InitializeResult,
    LedgerService,
    MonthlyGrantResult,
    ReconciliationReport,
    SpendResult,
    eligible_for_monthly_credit,
    ledger_service,
)

__all__ = [
    "CreditTransaction",
    "InitializeResult",
    "InvalidAmountError",
    "LedgerError",
    "LedgerNotFoundError",
    "LedgerService",
    "MonthlyGrantResult",
    "ReconciliationReport",
    "RefundNotAllowedError",
    "SpendResult",
    "StoreTransactionConflictError",
    "TransactionType",
    "UnknownProductError",
    "UserCredits",
    "eligible_for_monthly_credit",
    "ledger_service",
]
