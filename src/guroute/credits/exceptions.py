"""Ledger exceptions."""


class LedgerError(Exception):
    """Base class for ledger errors."""


class LedgerNotFoundError(LedgerError):
    """Raised when a user has no credit ledger yet."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No credit ledger for user {user_id}")


class InvalidAmountError(LedgerError):
    """Raised when a credit amount is not a positive integer."""

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Amount must be a positive integer, got {amount!r}")


class RefundNotAllowedError(LedgerError):
    """Raised when a trip charge cannot be refunded."""


class UnknownProductError(LedgerError):
    """Raised for store products that are not in the catalogue."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Unknown product: {product_id}")


class StoreTransactionConflictError(LedgerError):
    """Raised when a store transaction was already credited to another user."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Store transaction {transaction_id} belongs to another user")
