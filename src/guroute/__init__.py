"""Guroute credit and referral ledger backend."""

__version__ = "0.1.0"
