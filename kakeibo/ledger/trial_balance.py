"""
Trial Balance Aggregator

Folds every journal entry into per-account debit/credit totals and signed
balances. Because each journal satisfied the Balance Law when it was
committed, the grand totals must always agree; when they do not, the
ledger data has been corrupted outside the engine.
"""

from collections.abc import Iterable
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from kakeibo.ledger.arithmetic import signed_balance
from kakeibo.models.ledger import Account, JournalWithEntries

logger = structlog.get_logger(__name__)


class AccountBalance(BaseModel):
    """Aggregated totals for one account."""

    account: Account
    debit_total: int = 0
    credit_total: int = 0
    balance: int = 0


class TrialBalance(BaseModel):
    """Per-account totals plus grand totals."""

    rows: list[AccountBalance] = Field(default_factory=list)
    grand_debit_total: int = 0
    grand_credit_total: int = 0
    skipped_entries: int = Field(
        default=0,
        description="Entries that referenced an account not in the account list"
    )

    @property
    def is_trial_balanced(self) -> bool:
        return self.grand_debit_total == self.grand_credit_total

    def row_for(self, account_id: UUID) -> AccountBalance:
        for row in self.rows:
            if row.account.id == account_id:
                return row
        raise KeyError(f"Account not in trial balance: {account_id}")


def aggregate(
    accounts: Iterable[Account],
    journals: Iterable[JournalWithEntries],
) -> TrialBalance:
    """Build the trial balance of the given accounts over the given journals."""
    ordered = sorted(accounts, key=lambda a: (a.sort_order, a.code))
    totals: dict[UUID, list[int]] = {a.id: [0, 0] for a in ordered}
    skipped = 0

    for journal in journals:
        for entry in journal.entries:
            bucket = totals.get(entry.account_id)
            if bucket is None:
                skipped += 1
                continue
            bucket[0] += entry.debit_amount
            bucket[1] += entry.credit_amount

    rows = [
        AccountBalance(
            account=account,
            debit_total=totals[account.id][0],
            credit_total=totals[account.id][1],
            balance=signed_balance(account.type, *totals[account.id]),
        )
        for account in ordered
    ]

    result = TrialBalance(
        rows=rows,
        grand_debit_total=sum(r.debit_total for r in rows),
        grand_credit_total=sum(r.credit_total for r in rows),
        skipped_entries=skipped,
    )

    if skipped:
        logger.warning("trial_balance_skipped_orphan_entries", count=skipped)
    if not result.is_trial_balanced:
        logger.error(
            "trial_balance_mismatch",
            debit_total=result.grand_debit_total,
            credit_total=result.grand_credit_total,
        )

    return result
