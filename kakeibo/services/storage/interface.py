"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for ledger persistence.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the accounting engine decoupled from storage implementation

Every read and write is scoped by an explicit owner id. There is no
implicit "current user" anywhere below this line.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Optional
from uuid import UUID

from kakeibo.models.audit import AuditEvent
from kakeibo.models.ledger import (
    Account,
    CategoryRule,
    Journal,
    JournalEntryDraft,
    JournalWithEntries,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # Transactions

    @property
    def supports_transactions(self) -> bool:
        """Whether transaction() gives all-or-nothing semantics."""
        return False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Group several writes into one all-or-nothing unit.

        Backends without transactions raise; callers must check
        supports_transactions first.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support transactions")
        yield  # pragma: no cover

    # Accounts

    @abstractmethod
    async def create_account(self, account: Account) -> Account:
        """
        Save a new account.

        Raises:
            DuplicateError: If the owner already has an account with this code
        """
        pass

    @abstractmethod
    async def list_accounts(self, owner_id: str) -> list[Account]:
        """List the owner's accounts ordered by sort_order, then code."""
        pass

    @abstractmethod
    async def get_account(self, owner_id: str, account_id: UUID) -> Optional[Account]:
        pass

    @abstractmethod
    async def delete_account(self, owner_id: str, account_id: UUID) -> bool:
        """
        Delete an account.

        Returns:
            True if deleted, False if it did not exist

        Raises:
            ReferentialIntegrityError: If any journal entry references it
        """
        pass

    # Journals

    @abstractmethod
    async def create_journal(
        self,
        journal: Journal,
        entries: list[JournalEntryDraft],
    ) -> JournalWithEntries:
        """
        Persist a journal header with its entries as one unit.

        A journal is never left partially persisted: if the entries cannot
        be written, the header is not kept either.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_journals(
        self,
        owner_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[JournalWithEntries]:
        """List the owner's journals with entries, newest first."""
        pass

    @abstractmethod
    async def delete_journal(self, owner_id: str, journal_id: UUID) -> bool:
        """Delete a journal and, by cascade, its entries."""
        pass

    # Category rules

    @abstractmethod
    async def list_rules(self, owner_id: str) -> list[CategoryRule]:
        """List the owner's rules, most recently updated first."""
        pass

    @abstractmethod
    async def get_rule_by_keyword(self, owner_id: str, keyword: str) -> Optional[CategoryRule]:
        pass

    @abstractmethod
    async def create_rule(self, rule: CategoryRule) -> CategoryRule:
        """
        Raises:
            DuplicateError: If the owner already has a rule for this keyword
        """
        pass

    @abstractmethod
    async def update_rule(self, rule: CategoryRule) -> CategoryRule:
        """
        Raises:
            NotFoundError: If the rule doesn't exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one scan session in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ReferentialIntegrityError(StorageError):
    """Attempted to delete a record that other records still reference."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
