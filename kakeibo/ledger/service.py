"""
Ledger Service

Owner-scoped operations over the ledger storage. This is the only path by
which a journal reaches storage, so the Balance Law is enforced here:
a journal that fails validation is rejected before anything is written.
"""

import datetime as dt
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from kakeibo.audit import AuditLogger
from kakeibo.config import LedgerSettings, get_settings
from kakeibo.ledger.trial_balance import TrialBalance, aggregate
from kakeibo.models.ledger import (
    DEFAULT_ACCOUNTS,
    Account,
    AccountType,
    Journal,
    JournalEntryDraft,
    JournalWithEntries,
    SourceType,
)
from kakeibo.models.validation import ValidationResult
from kakeibo.services.storage import LedgerStorageInterface, ReferentialIntegrityError
from kakeibo.validation.validator import JournalValidator

logger = structlog.get_logger(__name__)


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class JournalValidationError(LedgerError):
    """The journal violates the Balance Law or references bad data; nothing was written."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Journal rejected: {messages}")


class AccountInUseError(LedgerError):
    """The account is referenced by journal entries and cannot be deleted."""

    def __init__(self, account: Account):
        self.account = account
        super().__init__(
            f"Account '{account.name}' is used by existing journals and cannot be deleted"
        )


class CategoryTotal(BaseModel):
    account_id: UUID
    name: str
    amount: int


class MonthlySummary(BaseModel):
    """Revenue, expense and top expense categories for one month."""

    year: int
    month: int
    total_revenue: int = 0
    total_expense: int = 0
    top_categories: list[CategoryTotal] = Field(default_factory=list)
    journal_count: int = 0

    @property
    def balance(self) -> int:
        return self.total_revenue - self.total_expense


class LedgerService:
    """
    Accounts, journals and reports for one storage backend.

    Every operation takes the owner id explicitly.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[JournalValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().app
        self._validator = validator or JournalValidator(self._settings)
        self._audit = audit_logger or AuditLogger()

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def seed_default_accounts(self, owner_id: str) -> list[Account]:
        """
        Create the default chart of accounts for a new owner.

        Codes the owner already has are left alone, so this is safe to re-run.
        """
        existing = {a.code for a in await self._storage.list_accounts(owner_id)}
        created = []
        for template in DEFAULT_ACCOUNTS:
            if template.code in existing:
                continue
            account = Account(owner_id=owner_id, **template.model_dump())
            created.append(await self._storage.create_account(account))

        logger.info("default_accounts_seeded", owner_id=owner_id, created=len(created))
        return created

    async def list_accounts(self, owner_id: str) -> list[Account]:
        return await self._storage.list_accounts(owner_id)

    async def create_account(
        self,
        owner_id: str,
        code: str,
        name: str,
        type: AccountType,
        sort_order: int = 0,
    ) -> Account:
        account = Account(
            owner_id=owner_id,
            code=code,
            name=name,
            type=type,
            sort_order=sort_order,
        )
        return await self._storage.create_account(account)

    async def delete_account(self, owner_id: str, account_id: UUID) -> bool:
        """
        Delete an account that no entry references.

        Raises:
            AccountInUseError: If journal entries still reference the account
        """
        account = await self._storage.get_account(owner_id, account_id)
        if account is None:
            return False

        try:
            return await self._storage.delete_account(owner_id, account_id)
        except ReferentialIntegrityError:
            await self._audit.log_account_delete_blocked(owner_id, account_id, account.code)
            raise AccountInUseError(account)

    # =========================================================================
    # JOURNALS
    # =========================================================================

    async def create_journal(
        self,
        owner_id: str,
        date: dt.date,
        description: str,
        entries: list[JournalEntryDraft],
        source_type: SourceType = SourceType.MANUAL,
        source_image_ref: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> JournalWithEntries:
        """
        Validate and persist a journal with its entries.

        Raises:
            JournalValidationError: If validation finds any error (nothing is written)
            StorageError: If the write itself fails
        """
        accounts = await self._storage.list_accounts(owner_id)
        result = self._validator.validate(entries, accounts, description)

        if not result.is_valid:
            await self._audit.log_journal_rejected(
                owner_id=owner_id,
                issues=[issue.model_dump() for issue in result.issues],
                correlation_id=correlation_id,
            )
            raise JournalValidationError(result)

        for warning in result.warnings:
            logger.warning("journal_validation_warning", owner_id=owner_id, warning=warning)

        journal = Journal(
            owner_id=owner_id,
            date=date,
            description=description,
            source_type=source_type,
            source_image_ref=source_image_ref,
        )
        stored = await self._storage.create_journal(journal, list(entries))

        await self._audit.log_journal_committed(
            owner_id=owner_id,
            journal_id=stored.id,
            description=stored.description,
            amount=stored.total_amount,
            correlation_id=correlation_id,
        )
        return stored

    async def list_journals(
        self,
        owner_id: str,
        date_from: Optional[dt.date] = None,
        date_to: Optional[dt.date] = None,
    ) -> list[JournalWithEntries]:
        return await self._storage.list_journals(owner_id, date_from, date_to)

    async def delete_journal(self, owner_id: str, journal_id: UUID) -> bool:
        """Delete a journal together with its entries."""
        deleted = await self._storage.delete_journal(owner_id, journal_id)
        if deleted:
            await self._audit.log_journal_deleted(owner_id, journal_id)
        return deleted

    # =========================================================================
    # REPORTS
    # =========================================================================

    async def trial_balance(
        self,
        owner_id: str,
        date_from: Optional[dt.date] = None,
        date_to: Optional[dt.date] = None,
    ) -> TrialBalance:
        """Trial balance over the owner's journals; a mismatch is audited."""
        accounts = await self._storage.list_accounts(owner_id)
        journals = await self._storage.list_journals(owner_id, date_from, date_to)
        result = aggregate(accounts, journals)

        if not result.is_trial_balanced:
            await self._audit.log_trial_balance_mismatch(
                owner_id=owner_id,
                debit_total=result.grand_debit_total,
                credit_total=result.grand_credit_total,
            )
        return result

    async def monthly_summary(
        self,
        owner_id: str,
        year: int,
        month: int,
        top_n: int = 5,
    ) -> MonthlySummary:
        """
        Revenue (credits to revenue accounts), expense (debits to expense
        accounts) and the largest expense categories for one month.
        """
        first_day = dt.date(year, month, 1)
        if month == 12:
            last_day = dt.date(year + 1, 1, 1) - dt.timedelta(days=1)
        else:
            last_day = dt.date(year, month + 1, 1) - dt.timedelta(days=1)

        accounts = {a.id: a for a in await self._storage.list_accounts(owner_id)}
        journals = await self._storage.list_journals(owner_id, first_day, last_day)

        summary = MonthlySummary(year=year, month=month, journal_count=len(journals))
        by_category: dict[UUID, int] = {}

        for journal in journals:
            for entry in journal.entries:
                account = accounts.get(entry.account_id)
                if account is None:
                    continue
                if account.type == AccountType.REVENUE:
                    summary.total_revenue += entry.credit_amount
                elif account.type == AccountType.EXPENSE:
                    summary.total_expense += entry.debit_amount
                    by_category[account.id] = by_category.get(account.id, 0) + entry.debit_amount

        ranked = sorted(by_category.items(), key=lambda item: item[1], reverse=True)[:top_n]
        summary.top_categories = [
            CategoryTotal(account_id=account_id, name=accounts[account_id].name, amount=amount)
            for account_id, amount in ranked
        ]
        return summary
