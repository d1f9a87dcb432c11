"""Declarative base shared by all ledger tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def load_all_models() -> None:
    """Import every model module so ``Base.metadata`` knows all tables."""
    import guroute.accounts.models  # noqa: F401
    import guroute.credits.models  # noqa: F401
    import guroute.referral.models  # noqa: F401
    import guroute.store.models  # noqa: F401
