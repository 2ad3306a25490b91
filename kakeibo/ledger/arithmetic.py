"""
Ledger Arithmetic

Pure functions behind every balance shown or checked in the ledger.
No storage, no I/O.
"""

from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

from pydantic import BaseModel

from kakeibo.models.ledger import AccountType, NormalSide


class BalanceCheck(BaseModel):
    """Debit/credit totals of an entry set and whether they balance."""

    is_balanced: bool
    debit_total: int
    credit_total: int
    difference: int


def _amount(entry: Any, field: str) -> int:
    if isinstance(entry, Mapping):
        value = entry.get(field)
    else:
        value = getattr(entry, field, None)
    return value or 0


def validate_balanced(entries: Iterable[Any]) -> BalanceCheck:
    """
    Check the Balance Law for a set of entries.

    Entries may be models or mappings; a missing or None amount counts as 0.
    An all-zero (or empty) entry set is NOT balanced.
    """
    entries = list(entries)
    debit_total = sum(_amount(e, "debit_amount") for e in entries)
    credit_total = sum(_amount(e, "credit_amount") for e in entries)
    return BalanceCheck(
        is_balanced=debit_total == credit_total and debit_total > 0,
        debit_total=debit_total,
        credit_total=credit_total,
        difference=debit_total - credit_total,
    )


_DEBIT_NORMAL = frozenset({AccountType.ASSET, AccountType.EXPENSE})


def normal_side(account_type: Union[AccountType, str]) -> NormalSide:
    """Assets and expenses grow on the debit side; everything else on credit."""
    account_type = AccountType(account_type)
    if account_type in _DEBIT_NORMAL:
        return NormalSide.DEBIT
    return NormalSide.CREDIT


def signed_balance(
    account_type: Union[AccountType, str],
    debit_total: int,
    credit_total: int,
) -> int:
    """
    Balance that is positive while the account sits on its normal side.

    A negative result means the account is "backwards", e.g. an overdrawn asset.
    """
    if normal_side(account_type) == NormalSide.DEBIT:
        return debit_total - credit_total
    return credit_total - debit_total


def format_currency(amount: Union[int, float, Decimal]) -> str:
    """Format as whole yen, ja-JP style: ￥1,200 / -￥1,200."""
    if isinstance(amount, int):
        value = amount
    else:
        value = int(Decimal(str(amount)).to_integral_value(rounding=ROUND_HALF_UP))
    sign = "-" if value < 0 else ""
    return f"{sign}￥{abs(value):,}"
