"""
In-Memory Storage Implementation

Backs the test suite and local experiments. Unlike Google Sheets it can
offer real all-or-nothing transactions: the whole store is snapshotted on
entry and restored if the block raises.
"""

import copy
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Optional
from uuid import UUID

from kakeibo.models.audit import AuditEvent
from kakeibo.models.ledger import (
    Account,
    CategoryRule,
    Journal,
    JournalEntry,
    JournalEntryDraft,
    JournalWithEntries,
)
from kakeibo.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    ReferentialIntegrityError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger storage. Returned models are copies."""

    def __init__(self):
        self._accounts: dict[UUID, Account] = {}
        self._journals: dict[UUID, JournalWithEntries] = {}
        self._rules: dict[UUID, CategoryRule] = {}

    @property
    def supports_transactions(self) -> bool:
        return True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        snapshot = copy.deepcopy((self._accounts, self._journals, self._rules))
        try:
            yield
        except BaseException:
            self._accounts, self._journals, self._rules = snapshot
            raise

    # Accounts

    async def create_account(self, account: Account) -> Account:
        for existing in self._accounts.values():
            if existing.owner_id == account.owner_id and existing.code == account.code:
                raise DuplicateError(f"Account code already exists: {account.code}")
        self._accounts[account.id] = account.model_copy(deep=True)
        return account

    async def list_accounts(self, owner_id: str) -> list[Account]:
        accounts = [a.model_copy(deep=True) for a in self._accounts.values() if a.owner_id == owner_id]
        accounts.sort(key=lambda a: (a.sort_order, a.code))
        return accounts

    async def get_account(self, owner_id: str, account_id: UUID) -> Optional[Account]:
        account = self._accounts.get(account_id)
        if account is None or account.owner_id != owner_id:
            return None
        return account.model_copy(deep=True)

    async def delete_account(self, owner_id: str, account_id: UUID) -> bool:
        account = self._accounts.get(account_id)
        if account is None or account.owner_id != owner_id:
            return False
        for journal in self._journals.values():
            if any(entry.account_id == account_id for entry in journal.entries):
                raise ReferentialIntegrityError(
                    f"Account {account.code} is referenced by journal {journal.id}"
                )
        del self._accounts[account_id]
        return True

    # Journals

    async def create_journal(
        self,
        journal: Journal,
        entries: list[JournalEntryDraft],
    ) -> JournalWithEntries:
        stored = JournalWithEntries(
            **journal.model_dump(include=set(Journal.model_fields)),
            entries=[
                JournalEntry(journal_id=journal.id, **draft.model_dump())
                for draft in entries
            ],
        )
        self._journals[stored.id] = stored
        return stored.model_copy(deep=True)

    async def list_journals(
        self,
        owner_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[JournalWithEntries]:
        journals = []
        for journal in self._journals.values():
            if journal.owner_id != owner_id:
                continue
            if date_from and journal.date < date_from:
                continue
            if date_to and journal.date > date_to:
                continue
            journals.append(journal.model_copy(deep=True))

        journals.sort(key=lambda j: (j.date, j.created_at), reverse=True)
        return journals

    async def delete_journal(self, owner_id: str, journal_id: UUID) -> bool:
        journal = self._journals.get(journal_id)
        if journal is None or journal.owner_id != owner_id:
            return False
        del self._journals[journal_id]
        return True

    # Category rules

    async def list_rules(self, owner_id: str) -> list[CategoryRule]:
        rules = [r.model_copy() for r in self._rules.values() if r.owner_id == owner_id]
        rules.sort(key=lambda r: r.updated_at, reverse=True)
        return rules

    async def get_rule_by_keyword(self, owner_id: str, keyword: str) -> Optional[CategoryRule]:
        for rule in self._rules.values():
            if rule.owner_id == owner_id and rule.keyword == keyword:
                return rule.model_copy()
        return None

    async def create_rule(self, rule: CategoryRule) -> CategoryRule:
        if await self.get_rule_by_keyword(rule.owner_id, rule.keyword) is not None:
            raise DuplicateError(f"Rule already exists for keyword: {rule.keyword}")
        self._rules[rule.id] = rule.model_copy()
        return rule

    async def update_rule(self, rule: CategoryRule) -> CategoryRule:
        existing = self._rules.get(rule.id)
        if existing is None or existing.owner_id != rule.owner_id:
            raise NotFoundError(f"Rule not found: {rule.id}")
        self._rules[rule.id] = rule.model_copy()
        return rule


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
