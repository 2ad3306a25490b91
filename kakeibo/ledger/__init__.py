"""
Ledger Package

Pure double-entry arithmetic and trial balance aggregation. The
storage-backed LedgerService lives in kakeibo.ledger.service.
"""

from kakeibo.ledger.arithmetic import (
    BalanceCheck,
    format_currency,
    normal_side,
    signed_balance,
    validate_balanced,
)
from kakeibo.ledger.trial_balance import AccountBalance, TrialBalance, aggregate

__all__ = [
    "AccountBalance",
    "BalanceCheck",
    "TrialBalance",
    "aggregate",
    "format_currency",
    "normal_side",
    "signed_balance",
    "validate_balanced",
]
