"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the initial storage backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (a journal header is removed again if its entries fail)
- Limited query capabilities (we filter in Python)

Layout: one worksheet per record kind (Accounts, Journals, JournalEntries,
CategoryRules, AuditLog), each with a header row.
"""

import json
from datetime import date, datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from kakeibo.config import GoogleSheetsSettings, get_settings
from kakeibo.models.audit import AuditEvent, AuditEventType, AuditSeverity
from kakeibo.models.ledger import (
    Account,
    AccountType,
    CategoryRule,
    Journal,
    JournalEntry,
    JournalEntryDraft,
    JournalWithEntries,
    SourceType,
)
from kakeibo.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    ReferentialIntegrityError,
    StorageError,
)

logger = structlog.get_logger(__name__)


ACCOUNT_COLUMNS = ["id", "owner_id", "code", "name", "type", "sort_order", "created_at"]

JOURNAL_COLUMNS = [
    "id",
    "owner_id",
    "date",
    "description",
    "source_type",
    "source_image_ref",
    "created_at",
]

ENTRY_COLUMNS = ["id", "journal_id", "account_id", "debit_amount", "credit_amount"]

RULE_COLUMNS = ["id", "owner_id", "keyword", "account_id", "updated_at"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Handle short rows and blank cells gracefully."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=200)

    def get_journals_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.journals_sheet_name, JOURNAL_COLUMNS)

    def get_entries_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.entries_sheet_name, ENTRY_COLUMNS, rows=3000)

    def get_rules_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.rules_sheet_name, RULE_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Journals and their entries live on separate worksheets joined by
    journal_id. Sheets has no transactions, so create_journal writes the
    header first and deletes it again if the entries cannot be written.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # Row conversion

    @staticmethod
    def _account_to_row(account: Account) -> list:
        return [
            str(account.id),
            account.owner_id,
            account.code,
            account.name,
            account.type.value,
            account.sort_order,
            account.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_account(row: list) -> Account:
        return Account(
            id=UUID(_cell(row, 0)),
            owner_id=_cell(row, 1),
            code=_cell(row, 2),
            name=_cell(row, 3),
            type=AccountType(_cell(row, 4)),
            sort_order=int(_cell(row, 5, "0")),
            created_at=datetime.fromisoformat(_cell(row, 6)),
        )

    @staticmethod
    def _journal_to_row(journal: Journal) -> list:
        return [
            str(journal.id),
            journal.owner_id,
            journal.date.isoformat(),
            journal.description,
            journal.source_type.value,
            journal.source_image_ref or "",
            journal.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_journal(row: list, entries: list[JournalEntry]) -> JournalWithEntries:
        return JournalWithEntries(
            id=UUID(_cell(row, 0)),
            owner_id=_cell(row, 1),
            date=date.fromisoformat(_cell(row, 2)),
            description=_cell(row, 3),
            source_type=SourceType(_cell(row, 4, SourceType.MANUAL.value)),
            source_image_ref=_cell(row, 5) or None,
            created_at=datetime.fromisoformat(_cell(row, 6)),
            entries=entries,
        )

    @staticmethod
    def _entry_to_row(entry: JournalEntry) -> list:
        return [
            str(entry.id),
            str(entry.journal_id),
            str(entry.account_id),
            entry.debit_amount,
            entry.credit_amount,
        ]

    @staticmethod
    def _row_to_entry(row: list) -> JournalEntry:
        return JournalEntry(
            id=UUID(_cell(row, 0)),
            journal_id=UUID(_cell(row, 1)),
            account_id=UUID(_cell(row, 2)),
            debit_amount=int(_cell(row, 3, "0")),
            credit_amount=int(_cell(row, 4, "0")),
        )

    @staticmethod
    def _rule_to_row(rule: CategoryRule) -> list:
        return [
            str(rule.id),
            rule.owner_id,
            rule.keyword,
            str(rule.account_id),
            rule.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_rule(row: list) -> CategoryRule:
        return CategoryRule(
            id=UUID(_cell(row, 0)),
            owner_id=_cell(row, 1),
            keyword=_cell(row, 2),
            account_id=UUID(_cell(row, 3)),
            updated_at=datetime.fromisoformat(_cell(row, 4)),
        )

    @staticmethod
    def _find_row_index(rows: list[list], value: str, column: int = 0) -> Optional[int]:
        """1-based sheet row index of the first data row matching value."""
        for idx, row in enumerate(rows[1:], start=2):  # Row 1 is the header
            if row and _cell(row, column) == value:
                return idx
        return None

    # Accounts

    async def create_account(self, account: Account) -> Account:
        existing = await self.list_accounts(account.owner_id)
        if any(a.code == account.code for a in existing):
            raise DuplicateError(f"Account code already exists: {account.code}")
        try:
            sheet = self._client.get_accounts_sheet()
            sheet.append_row(self._account_to_row(account), value_input_option="RAW")
            return account
        except Exception as e:
            raise StorageError(f"Failed to save account: {e}")

    async def list_accounts(self, owner_id: str) -> list[Account]:
        try:
            sheet = self._client.get_accounts_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

        accounts = []
        for row in all_rows:
            if not row or _cell(row, 1) != owner_id:
                continue
            try:
                accounts.append(self._row_to_account(row))
            except ValueError:
                logger.warning("sheets_malformed_row", sheet="accounts", row_id=_cell(row, 0))

        accounts.sort(key=lambda a: (a.sort_order, a.code))
        return accounts

    async def get_account(self, owner_id: str, account_id: UUID) -> Optional[Account]:
        for account in await self.list_accounts(owner_id):
            if account.id == account_id:
                return account
        return None

    async def delete_account(self, owner_id: str, account_id: UUID) -> bool:
        try:
            entry_rows = self._client.get_entries_sheet().get_all_values()[1:]
            sheet = self._client.get_accounts_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to delete account: {e}")

        idx = self._find_row_index(all_rows, str(account_id))
        if idx is None or _cell(all_rows[idx - 1], 1) != owner_id:
            return False

        if any(_cell(row, 2) == str(account_id) for row in entry_rows):
            raise ReferentialIntegrityError(
                f"Account {_cell(all_rows[idx - 1], 2)} is referenced by journal entries"
            )

        try:
            sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete account: {e}")
        return True

    # Journals

    async def create_journal(
        self,
        journal: Journal,
        entries: list[JournalEntryDraft],
    ) -> JournalWithEntries:
        # Appends are not idempotent, so this is never retried
        stored_entries = [
            JournalEntry(journal_id=journal.id, **draft.model_dump())
            for draft in entries
        ]

        try:
            journals_sheet = self._client.get_journals_sheet()
            entries_sheet = self._client.get_entries_sheet()
            journals_sheet.append_row(self._journal_to_row(journal), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save journal: {e}")

        try:
            entries_sheet.append_rows(
                [self._entry_to_row(entry) for entry in stored_entries],
                value_input_option="RAW",
            )
        except Exception as e:
            self._remove_partial_journal(journals_sheet, entries_sheet, journal.id)
            raise StorageError(f"Failed to save journal entries: {e}")

        return JournalWithEntries(
            **journal.model_dump(include=set(Journal.model_fields)),
            entries=stored_entries,
        )

    def _remove_partial_journal(
        self,
        journals_sheet: gspread.Worksheet,
        entries_sheet: gspread.Worksheet,
        journal_id: UUID,
    ) -> None:
        """
        Compensating delete after a failed entries append.

        The append may have reached the sheet before the error surfaced,
        so entry rows of this journal are removed along with the header.
        """
        try:
            entry_rows = entries_sheet.get_all_values()
            for entry_idx in range(len(entry_rows), 1, -1):
                if _cell(entry_rows[entry_idx - 1], 1) == str(journal_id):
                    entries_sheet.delete_rows(entry_idx)

            idx = self._find_row_index(journals_sheet.get_all_values(), str(journal_id))
            if idx is not None:
                journals_sheet.delete_rows(idx)
        except Exception as e:
            logger.error("sheets_partial_journal_left", journal_id=str(journal_id), error=str(e))

    async def list_journals(
        self,
        owner_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[JournalWithEntries]:
        try:
            journal_rows = self._client.get_journals_sheet().get_all_values()[1:]
            entry_rows = self._client.get_entries_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list journals: {e}")

        entries_by_journal: dict[str, list[JournalEntry]] = {}
        for row in entry_rows:
            if not row or not row[0]:
                continue
            try:
                entry = self._row_to_entry(row)
            except ValueError:
                logger.warning("sheets_malformed_row", sheet="entries", row_id=_cell(row, 0))
                continue
            entries_by_journal.setdefault(str(entry.journal_id), []).append(entry)

        journals = []
        for row in journal_rows:
            if not row or _cell(row, 1) != owner_id:
                continue
            try:
                journal = self._row_to_journal(row, entries_by_journal.get(_cell(row, 0), []))
            except ValueError:
                logger.warning("sheets_malformed_row", sheet="journals", row_id=_cell(row, 0))
                continue

            if date_from and journal.date < date_from:
                continue
            if date_to and journal.date > date_to:
                continue
            journals.append(journal)

        # Newest first
        journals.sort(key=lambda j: (j.date, j.created_at), reverse=True)
        return journals

    async def delete_journal(self, owner_id: str, journal_id: UUID) -> bool:
        try:
            journals_sheet = self._client.get_journals_sheet()
            journal_rows = journals_sheet.get_all_values()
            idx = self._find_row_index(journal_rows, str(journal_id))
            if idx is None or _cell(journal_rows[idx - 1], 1) != owner_id:
                return False

            entries_sheet = self._client.get_entries_sheet()
            entry_rows = entries_sheet.get_all_values()
            # Delete bottom-up so earlier indices stay valid
            for entry_idx in range(len(entry_rows), 1, -1):
                if _cell(entry_rows[entry_idx - 1], 1) == str(journal_id):
                    entries_sheet.delete_rows(entry_idx)

            journals_sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete journal: {e}")

    # Category rules

    async def list_rules(self, owner_id: str) -> list[CategoryRule]:
        try:
            all_rows = self._client.get_rules_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list rules: {e}")

        rules = []
        for row in all_rows:
            if not row or _cell(row, 1) != owner_id:
                continue
            try:
                rules.append(self._row_to_rule(row))
            except ValueError:
                logger.warning("sheets_malformed_row", sheet="rules", row_id=_cell(row, 0))

        rules.sort(key=lambda r: r.updated_at, reverse=True)
        return rules

    async def get_rule_by_keyword(self, owner_id: str, keyword: str) -> Optional[CategoryRule]:
        for rule in await self.list_rules(owner_id):
            if rule.keyword == keyword:
                return rule
        return None

    async def create_rule(self, rule: CategoryRule) -> CategoryRule:
        if await self.get_rule_by_keyword(rule.owner_id, rule.keyword) is not None:
            raise DuplicateError(f"Rule already exists for keyword: {rule.keyword}")
        try:
            sheet = self._client.get_rules_sheet()
            sheet.append_row(self._rule_to_row(rule), value_input_option="RAW")
            return rule
        except Exception as e:
            raise StorageError(f"Failed to save rule: {e}")

    async def update_rule(self, rule: CategoryRule) -> CategoryRule:
        try:
            sheet = self._client.get_rules_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to update rule: {e}")

        idx = self._find_row_index(all_rows, str(rule.id))
        if idx is None or _cell(all_rows[idx - 1], 1) != rule.owner_id:
            raise NotFoundError(f"Rule not found: {rule.id}")

        try:
            sheet.update(
                range_name=f"A{idx}:E{idx}",
                values=[self._rule_to_row(rule)],
                value_input_option="RAW",
            )
            return rule
        except Exception as e:
            raise StorageError(f"Failed to update rule: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            owner_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_cell(row, 11).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", event_id=str(event.event_id), error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
