"""
Data Models Package

This package contains all Pydantic models used in Kakeibo.
All data flowing through the ledger must conform to these schemas.
"""

from kakeibo.models.ledger import (
    ACCOUNT_TYPE_LABELS,
    DEFAULT_ACCOUNTS,
    Account,
    AccountTemplate,
    AccountType,
    CategoryRule,
    Journal,
    JournalEntry,
    JournalEntryDraft,
    JournalWithEntries,
    NormalSide,
    SourceType,
)
from kakeibo.models.scan import (
    CommitOutcome,
    CommitResult,
    CommittedOutcome,
    ExtractedReceipt,
    ExtractedStatement,
    FailedOutcome,
    InvalidSessionStateError,
    PartialCommitError,
    PendingOutcome,
    ReceiptLineItem,
    ScanSession,
    ScanState,
    ScannedCandidate,
    StatementLine,
)
from kakeibo.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from kakeibo.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ACCOUNT_TYPE_LABELS",
    "DEFAULT_ACCOUNTS",
    "Account",
    "AccountTemplate",
    "AccountType",
    "CategoryRule",
    "Journal",
    "JournalEntry",
    "JournalEntryDraft",
    "JournalWithEntries",
    "NormalSide",
    "SourceType",
    # Scan models
    "CommitOutcome",
    "CommitResult",
    "CommittedOutcome",
    "ExtractedReceipt",
    "ExtractedStatement",
    "FailedOutcome",
    "InvalidSessionStateError",
    "PartialCommitError",
    "PendingOutcome",
    "ReceiptLineItem",
    "ScanSession",
    "ScanState",
    "ScannedCandidate",
    "StatementLine",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
