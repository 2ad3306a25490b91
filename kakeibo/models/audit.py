"""
Audit Models for Kakeibo

Every significant ledger action is logged for audit purposes:
scans, extractions, commits, rule learning and integrity problems.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Scan session
    IMAGE_UPLOADED = "image_uploaded"
    IMAGE_REJECTED = "image_rejected"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"
    CATEGORIZATION_FALLBACK = "categorization_fallback"
    REVIEW_PRESENTED = "review_presented"
    SESSION_DISCARDED = "session_discarded"

    # Persistence
    JOURNAL_COMMITTED = "journal_committed"
    JOURNAL_REJECTED = "journal_rejected"
    JOURNAL_DELETED = "journal_deleted"
    COMMIT_FAILED = "commit_failed"
    ACCOUNT_DELETE_BLOCKED = "account_delete_blocked"

    # Rule learning
    RULE_LEARNED = "rule_learned"
    RULE_LEARNING_FAILED = "rule_learning_failed"

    # Integrity
    TRIAL_BALANCE_MISMATCH = "trial_balance_mismatch"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    owner_id: Optional[str] = Field(
        default=None,
        description="Ledger owner the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'journal', 'scan', 'rule')"
    )
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one scan session)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.image_uploaded(owner_id, session_id, ...)
        event = AuditEventBuilder.journal_committed(owner_id, journal_id, ...)
    """

    @staticmethod
    def image_uploaded(
        owner_id: str,
        session_id: UUID,
        filename: str,
        file_size: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMAGE_UPLOADED,
            owner_id=owner_id,
            entity_type="scan",
            entity_id=session_id,
            correlation_id=correlation_id,
            description=f"Image uploaded: {filename}",
            details={"filename": filename, "file_size_bytes": file_size},
            is_user_action=True,
        )

    @staticmethod
    def image_rejected(
        owner_id: str,
        session_id: UUID,
        issues: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMAGE_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="scan",
            entity_id=session_id,
            correlation_id=correlation_id,
            description="Image rejected before extraction",
            details={"issues": issues},
        )

    @staticmethod
    def extraction_completed(
        owner_id: str,
        session_id: UUID,
        source_type: str,
        candidate_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            owner_id=owner_id,
            entity_type="scan",
            entity_id=session_id,
            correlation_id=correlation_id,
            description=f"Extraction produced {candidate_count} candidate(s)",
            details={"source_type": source_type, "candidate_count": candidate_count},
        )

    @staticmethod
    def extraction_failed(
        owner_id: str,
        session_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="scan",
            entity_id=session_id,
            correlation_id=correlation_id,
            description="Extraction failed",
            error_message=error_message,
        )

    @staticmethod
    def categorization_fallback(
        owner_id: str,
        description: str,
        source: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIZATION_FALLBACK,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="candidate",
            correlation_id=correlation_id,
            description=f"Categorization fell back to {source}",
            details={"description": description[:100], "source": source},
        )

    @staticmethod
    def review_presented(
        owner_id: str,
        session_id: UUID,
        candidate_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REVIEW_PRESENTED,
            owner_id=owner_id,
            entity_type="scan",
            entity_id=session_id,
            correlation_id=correlation_id,
            description=f"{candidate_count} candidate(s) presented for review",
            details={"candidate_count": candidate_count},
        )

    @staticmethod
    def session_discarded(
        owner_id: str,
        session_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_DISCARDED,
            owner_id=owner_id,
            entity_type="scan",
            entity_id=session_id,
            correlation_id=correlation_id,
            description="User discarded the scan before commit",
            is_user_action=True,
        )

    @staticmethod
    def journal_committed(
        owner_id: str,
        journal_id: UUID,
        description: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOURNAL_COMMITTED,
            owner_id=owner_id,
            entity_type="journal",
            entity_id=journal_id,
            correlation_id=correlation_id,
            description=f"Journal saved: {description[:100]} ¥{amount:,}",
            details={"amount": amount},
        )

    @staticmethod
    def journal_rejected(
        owner_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOURNAL_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="journal",
            correlation_id=correlation_id,
            description=f"Journal rejected with {len(issues)} issue(s)",
            details={"issues": issues},
        )

    @staticmethod
    def journal_deleted(owner_id: str, journal_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOURNAL_DELETED,
            owner_id=owner_id,
            entity_type="journal",
            entity_id=journal_id,
            description="Journal deleted with its entries",
            is_user_action=True,
        )

    @staticmethod
    def commit_failed(
        owner_id: str,
        session_id: UUID,
        committed: int,
        remaining: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMIT_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="scan",
            entity_id=session_id,
            correlation_id=correlation_id,
            description=f"Commit stopped after {committed} journal(s); {remaining} not saved",
            details={"committed": committed, "remaining": remaining},
            error_message=error_message,
        )

    @staticmethod
    def account_delete_blocked(
        owner_id: str,
        account_id: UUID,
        code: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETE_BLOCKED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account {code} is referenced by journal entries",
            is_user_action=True,
        )

    @staticmethod
    def rule_learned(
        owner_id: str,
        rule_id: UUID,
        keyword: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_LEARNED,
            owner_id=owner_id,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Category rule learned for '{keyword[:100]}'",
            details={"keyword": keyword},
        )

    @staticmethod
    def rule_learning_failed(
        owner_id: str,
        keyword: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_LEARNING_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="rule",
            correlation_id=correlation_id,
            description=f"Could not learn category rule for '{keyword[:100]}'",
            error_message=error_message,
        )

    @staticmethod
    def trial_balance_mismatch(
        owner_id: str,
        debit_total: int,
        credit_total: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRIAL_BALANCE_MISMATCH,
            severity=AuditSeverity.CRITICAL,
            owner_id=owner_id,
            entity_type="ledger",
            description="Trial balance does not balance: data integrity violation",
            details={"debit_total": debit_total, "credit_total": credit_total},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
