"""
Audit Logger

DESIGN DECISION: Every significant ledger action is logged.
This provides:
1. Complete traceability from scanned image to committed journal
2. Debugging capability
3. User can see history of their interactions
4. A record of integrity problems (unbalanced trial balance)

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from kakeibo.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from kakeibo.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("kakeibo.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # Scan session

    async def log_image_uploaded(
        self,
        owner_id: str,
        session_id: UUID,
        filename: str,
        file_size: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.image_uploaded(
            owner_id=owner_id,
            session_id=session_id,
            filename=filename,
            file_size=file_size,
            correlation_id=correlation_id,
        ))

    async def log_image_rejected(
        self,
        owner_id: str,
        session_id: UUID,
        issues: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.image_rejected(
            owner_id=owner_id,
            session_id=session_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_extraction_completed(
        self,
        owner_id: str,
        session_id: UUID,
        source_type: str,
        candidate_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            owner_id=owner_id,
            session_id=session_id,
            source_type=source_type,
            candidate_count=candidate_count,
            correlation_id=correlation_id,
        ))

    async def log_extraction_failed(
        self,
        owner_id: str,
        session_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_failed(
            owner_id=owner_id,
            session_id=session_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_categorization_fallback(
        self,
        owner_id: str,
        description: str,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.categorization_fallback(
            owner_id=owner_id,
            description=description,
            source=source,
            correlation_id=correlation_id,
        ))

    async def log_review_presented(
        self,
        owner_id: str,
        session_id: UUID,
        candidate_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.review_presented(
            owner_id=owner_id,
            session_id=session_id,
            candidate_count=candidate_count,
            correlation_id=correlation_id,
        ))

    async def log_session_discarded(
        self,
        owner_id: str,
        session_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.session_discarded(
            owner_id=owner_id,
            session_id=session_id,
            correlation_id=correlation_id,
        ))

    # Journals and accounts

    async def log_journal_committed(
        self,
        owner_id: str,
        journal_id: UUID,
        description: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.journal_committed(
            owner_id=owner_id,
            journal_id=journal_id,
            description=description,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_journal_rejected(
        self,
        owner_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.journal_rejected(
            owner_id=owner_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_journal_deleted(self, owner_id: str, journal_id: UUID) -> None:
        await self.log(AuditEventBuilder.journal_deleted(owner_id, journal_id))

    async def log_commit_failed(
        self,
        owner_id: str,
        session_id: UUID,
        committed: int,
        remaining: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.commit_failed(
            owner_id=owner_id,
            session_id=session_id,
            committed=committed,
            remaining=remaining,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_account_delete_blocked(
        self,
        owner_id: str,
        account_id: UUID,
        code: str,
    ) -> None:
        await self.log(AuditEventBuilder.account_delete_blocked(owner_id, account_id, code))

    # Rules and integrity

    async def log_rule_learned(
        self,
        owner_id: str,
        rule_id: UUID,
        keyword: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rule_learned(
            owner_id=owner_id,
            rule_id=rule_id,
            keyword=keyword,
            correlation_id=correlation_id,
        ))

    async def log_rule_learning_failed(
        self,
        owner_id: str,
        keyword: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rule_learning_failed(
            owner_id=owner_id,
            keyword=keyword,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_trial_balance_mismatch(
        self,
        owner_id: str,
        debit_total: int,
        credit_total: int,
    ) -> None:
        await self.log(AuditEventBuilder.trial_balance_mismatch(
            owner_id=owner_id,
            debit_total=debit_total,
            credit_total=credit_total,
        ))

    # System

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., an image scan).
    Pass it through all subsequent operations.
    """
    return uuid4()
