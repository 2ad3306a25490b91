"""
Main Orchestrator for Kakeibo

This module ties together all the components and defines the end-to-end
scan flow for both supported documents:

1. Receipt (one transaction): paid in cash
2. Card statement screenshot (many transactions): charged to the card

    Idle → Uploading → Extracting → Categorizing → ReviewPending → Committing → Done
                 ↘           ↘              ↘                           ↘
                                          Failed

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is persisted before a human has reviewed the candidates
- Every journal goes through LedgerService, so the Balance Law holds
- A failed commit reports exactly which candidates were not saved
- Rule learning never decides whether a commit succeeded
- Every step is audited under the session's correlation id
"""

import datetime as dt
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from kakeibo.agents import ExtractionAgentInterface, ExtractionError, GeminiExtractionAgent
from kakeibo.audit import AuditLogger, create_correlation_id
from kakeibo.categorization import CategorizationEngine, CategorizationSource, RuleLearner
from kakeibo.config import LedgerSettings, get_settings
from kakeibo.ledger.service import JournalValidationError, LedgerService
from kakeibo.models.ledger import Account, CategoryRule, JournalEntryDraft, SourceType
from kakeibo.models.scan import (
    CommitResult,
    CommittedOutcome,
    FailedOutcome,
    InvalidSessionStateError,
    PendingOutcome,
    ScanSession,
    ScanState,
    ScannedCandidate,
)
from kakeibo.models.validation import ValidationIssue, ValidationResult
from kakeibo.services.image import (
    CloudinaryImageHost,
    ImageHostInterface,
    ImageUploadError,
    inspect_image,
)
from kakeibo.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageError,
)

logger = structlog.get_logger(__name__)

RETRY_MESSAGE = "Could not read the image. Please try again with a clearer photo."


class _JournalWriteFailed(Exception):
    """Internal: writing the candidate at `index` failed."""

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(reason)


class ScanIngestionFlow:
    """
    Orchestrates the scan flow for one owner at a time.

    Flow:
    1. Upload → inspect the image, optionally host it
    2. Extract → one vision call for the whole image
    3. Categorize → one cascade per candidate, sequentially
    4. Review → the caller edits the session (PAUSE - requires a human)
    5. Commit → one journal per included candidate, then rule learning

    Human review (step 4) is MANDATORY.
    The system NEVER auto-saves.
    """

    def __init__(
        self,
        ledger: LedgerService,
        agent: ExtractionAgentInterface,
        engine: Optional[CategorizationEngine] = None,
        rule_learner: Optional[RuleLearner] = None,
        image_host: Optional[ImageHostInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._settings = settings or get_settings().app
        self._ledger = ledger
        self._agent = agent
        self._engine = engine or CategorizationEngine(
            agent,
            timeout_seconds=self._settings.categorization_timeout_seconds,
            fallback_code=self._settings.fallback_expense_code,
        )
        self._rule_learner = rule_learner or RuleLearner(
            ledger.storage,
            separator=self._settings.rule_keyword_separator,
        )
        self._image_host = image_host
        self._audit = audit_logger or AuditLogger()

    # =========================================================================
    # SCAN → REVIEW
    # =========================================================================

    async def start_session(
        self,
        owner_id: str,
        image_bytes: bytes,
        filename: str,
        mime_type: str,
        source_type: SourceType,
    ) -> ScanSession:
        """
        Run a scan from upload up to review.

        Never raises for a bad image or a failed extraction: the returned
        session is then FAILED with a retry-prompting error_message.
        Otherwise it is REVIEW_PENDING with one candidate per transaction.
        """
        if source_type == SourceType.MANUAL:
            raise ValueError("Manual journals are not scanned; use LedgerService.create_journal")

        session = ScanSession(
            owner_id=owner_id,
            source_type=source_type,
            correlation_id=create_correlation_id(),
        )
        log = logger.bind(
            owner_id=owner_id,
            session_id=str(session.session_id),
            correlation_id=str(session.correlation_id),
        )

        # Step 1: Upload
        session.transition_to(ScanState.UPLOADING)
        await self._audit.log_image_uploaded(
            owner_id=owner_id,
            session_id=session.session_id,
            filename=filename,
            file_size=len(image_bytes),
            correlation_id=session.correlation_id,
        )

        if not await self._accept_image(session, image_bytes, filename, mime_type):
            return session

        # Step 2: Extract
        session.transition_to(ScanState.EXTRACTING)
        try:
            candidates = await self._extract_candidates(session, image_bytes, mime_type)
        except Exception as e:
            if not isinstance(e, ExtractionError):
                log.exception("extraction_unexpected_error")
            await self._audit.log_extraction_failed(
                owner_id=owner_id,
                session_id=session.session_id,
                error_message=str(e),
                correlation_id=session.correlation_id,
            )
            session.fail(RETRY_MESSAGE)
            return session

        if not candidates:
            await self._audit.log_extraction_failed(
                owner_id=owner_id,
                session_id=session.session_id,
                error_message="No transactions found",
                correlation_id=session.correlation_id,
            )
            session.fail("No transactions were found in the image. Please try again.")
            return session

        await self._audit.log_extraction_completed(
            owner_id=owner_id,
            session_id=session.session_id,
            source_type=source_type.value,
            candidate_count=len(candidates),
            correlation_id=session.correlation_id,
        )

        # Step 3: Categorize
        session.transition_to(ScanState.CATEGORIZING)
        try:
            await self._categorize_candidates(session, candidates)
        except StorageError as e:
            log.error("categorization_storage_error", error=str(e))
            await self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"stage": ScanState.CATEGORIZING.value},
                correlation_id=session.correlation_id,
            )
            session.fail("Could not load your accounts. Please try again.")
            return session

        # Step 4: Review
        session.candidates = candidates
        session.transition_to(ScanState.REVIEW_PENDING)
        await self._audit.log_review_presented(
            owner_id=owner_id,
            session_id=session.session_id,
            candidate_count=len(candidates),
            correlation_id=session.correlation_id,
        )
        log.info("scan_ready_for_review", candidates=len(candidates))
        return session

    async def _accept_image(
        self,
        session: ScanSession,
        image_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> bool:
        inspection = inspect_image(image_bytes, mime_type, filename, self._settings)
        if not inspection.is_acceptable:
            await self._audit.log_image_rejected(
                owner_id=session.owner_id,
                session_id=session.session_id,
                issues=inspection.blocking_issues,
                correlation_id=session.correlation_id,
            )
            session.fail(" ".join(inspection.blocking_issues))
            return False

        session.messages.extend(inspection.warnings)

        if self._image_host is not None:
            try:
                session.source_image_ref = await self._image_host.upload(
                    image_bytes, session.session_id, filename
                )
            except ImageUploadError as e:
                # Hosting is optional; the scan continues without a reference
                await self._audit.log_external_service_error(
                    service="cloudinary",
                    error_message=str(e),
                    correlation_id=session.correlation_id,
                )
                session.messages.append("The image could not be stored; journals will not link to it.")

        return True

    async def _extract_candidates(
        self,
        session: ScanSession,
        image_bytes: bytes,
        mime_type: str,
    ) -> list[ScannedCandidate]:
        """One extraction call; candidates without accounts yet."""
        today = dt.date.today()

        if session.source_type == SourceType.RECEIPT_OCR:
            receipt = await self._agent.extract_receipt(image_bytes, mime_type)
            notes = list(receipt.notes)
            if receipt.date is None:
                notes.append("date: not found, using today")
            return [ScannedCandidate(
                date=receipt.date or today,
                description=receipt.store_name,
                amount=receipt.total,
                notes=notes,
            )]

        statement = await self._agent.extract_statement(image_bytes, mime_type)
        if statement.skipped_rows:
            session.messages.append(
                f"{statement.skipped_rows} row(s) had no readable amount and were skipped."
            )

        candidates = []
        for line in statement.items:
            notes = list(line.notes)
            if line.date is None:
                notes.append("date: not found, using today")
            candidates.append(ScannedCandidate(
                date=line.date or today,
                description=line.description,
                amount=line.amount,
                notes=notes,
            ))
        return candidates

    async def _categorize_candidates(
        self,
        session: ScanSession,
        candidates: list[ScannedCandidate],
    ) -> None:
        accounts = await self._ledger.list_accounts(session.owner_id)
        rules = await self._ledger.storage.list_rules(session.owner_id)
        default_debit, credit = self._default_accounts(session.source_type, accounts)

        # Sequential: a slow suggestion for item k never touches item k-1
        for candidate in candidates:
            result = await self._engine.categorize_with_source(candidate.description, rules, accounts)
            if result.source in (CategorizationSource.DEFAULT, CategorizationSource.NO_EXPENSE_ACCOUNTS):
                await self._audit.log_categorization_fallback(
                    owner_id=session.owner_id,
                    description=candidate.description,
                    source=result.source.value,
                    correlation_id=session.correlation_id,
                )
            candidate.debit_account_id = result.account_id or default_debit
            candidate.credit_account_id = credit

    def _default_accounts(
        self,
        source_type: SourceType,
        accounts: list[Account],
    ) -> tuple[Optional[UUID], Optional[UUID]]:
        """(fallback debit, credit) account ids for a scan source."""
        by_code = {a.code: a.id for a in accounts}
        if source_type == SourceType.RECEIPT_OCR:
            return (
                by_code.get(self._settings.receipt_default_expense_code),
                by_code.get(self._settings.cash_account_code),
            )
        return (
            by_code.get(self._settings.fallback_expense_code),
            by_code.get(self._settings.card_account_code),
        )

    # =========================================================================
    # REVIEW
    # =========================================================================

    async def add_candidate(
        self,
        session: ScanSession,
        on_date: Optional[dt.date] = None,
    ) -> ScannedCandidate:
        """
        Append a blank row for the reviewer: zero amount, "other expense"
        debit, and the cash or card account as credit.
        """
        accounts = await self._ledger.list_accounts(session.owner_id)
        by_code = {a.code: a.id for a in accounts}
        credit_code = (
            self._settings.cash_account_code
            if session.source_type == SourceType.RECEIPT_OCR
            else self._settings.card_account_code
        )
        return session.add_candidate(
            debit_account_id=by_code.get(self._settings.fallback_expense_code),
            credit_account_id=by_code.get(credit_code),
            on_date=on_date,
        )

    async def discard_session(self, session: ScanSession) -> None:
        """Abandon a session before commit. Nothing was persisted, nothing is undone."""
        session.transition_to(ScanState.IDLE)
        session.candidates = []
        await self._audit.log_session_discarded(
            owner_id=session.owner_id,
            session_id=session.session_id,
            correlation_id=session.correlation_id,
        )

    def resume_review(self, session: ScanSession) -> ScanSession:
        """Return a session whose commit failed to review, holding only unsaved candidates."""
        if session.state != ScanState.FAILED or not session.candidates:
            raise InvalidSessionStateError(session.state, "resume review")
        session.transition_to(ScanState.REVIEW_PENDING)
        session.error_message = None
        return session

    # =========================================================================
    # COMMIT
    # =========================================================================

    def _preflight(self, session: ScanSession) -> list[ScannedCandidate]:
        """Included candidates, or JournalValidationError before any write."""
        included = session.included_candidates
        issues = []
        if not included:
            issues.append(ValidationIssue(
                field="candidates",
                issue_type="empty",
                message="No candidates are selected for saving",
                severity="error",
            ))
        for index, candidate in enumerate(session.candidates):
            if not candidate.included:
                continue
            for problem in candidate.problems():
                issues.append(ValidationIssue(
                    field=f"candidates[{index}]",
                    issue_type="invalid_candidate",
                    message=f"Row {index + 1}: {problem}",
                    severity="error",
                ))

        if issues:
            raise JournalValidationError(ValidationResult(
                structure_valid=False,
                semantic_valid=False,
                is_valid=False,
                issues=issues,
            ))
        return included

    async def _write_journals(
        self,
        session: ScanSession,
        candidates: list[ScannedCandidate],
        outcomes: list,
    ) -> None:
        """Create one journal per candidate, in order, stopping at the first failure."""
        for index, candidate in enumerate(candidates):
            entries = [
                JournalEntryDraft(account_id=candidate.debit_account_id, debit_amount=candidate.amount),
                JournalEntryDraft(account_id=candidate.credit_account_id, credit_amount=candidate.amount),
            ]
            try:
                journal = await self._ledger.create_journal(
                    owner_id=session.owner_id,
                    date=candidate.date,
                    description=candidate.description,
                    entries=entries,
                    source_type=session.source_type,
                    source_image_ref=session.source_image_ref,
                    correlation_id=session.correlation_id,
                )
            except Exception as e:
                raise _JournalWriteFailed(index, str(e)) from e
            outcomes.append(CommittedOutcome(candidate_id=candidate.id, journal=journal))

    async def commit(self, session: ScanSession) -> CommitResult:
        """
        Persist every included candidate as a two-entry journal.

        With a transactional store (and atomic_bulk_commit) the batch is
        all-or-nothing. Otherwise journals are written one at a time and a
        failure stops the batch: earlier journals stay saved, the rest are
        reported as failed/pending and kept on the session for a retry.

        Committing the same candidates twice creates two sets of journals.

        Raises:
            InvalidSessionStateError: If the session is not in review
            JournalValidationError: If an included candidate cannot be
                committed; nothing is written
        """
        if session.state != ScanState.REVIEW_PENDING:
            raise InvalidSessionStateError(session.state, "commit")
        included = self._preflight(session)

        session.transition_to(ScanState.COMMITTING)
        storage = self._ledger.storage
        atomic = storage.supports_transactions and self._settings.atomic_bulk_commit
        result = CommitResult(session_id=session.session_id, atomic=atomic)
        outcomes: list = []

        try:
            if atomic:
                async with storage.transaction():
                    await self._write_journals(session, included, outcomes)
            else:
                await self._write_journals(session, included, outcomes)
        except _JournalWriteFailed as failure:
            if atomic:
                # Rolled back: nothing from this batch is saved
                outcomes = [PendingOutcome(candidate_id=c.id) for c in included]
                outcomes[failure.index] = FailedOutcome(
                    candidate_id=included[failure.index].id, reason=failure.reason
                )
                remaining = list(included)
            else:
                outcomes.append(FailedOutcome(
                    candidate_id=included[failure.index].id, reason=failure.reason
                ))
                outcomes.extend(PendingOutcome(candidate_id=c.id) for c in included[failure.index + 1:])
                remaining = included[failure.index:]

            result.outcomes = outcomes
            result.remaining = remaining
            session.candidates = remaining
            session.fail(result.user_message())
            await self._audit.log_commit_failed(
                owner_id=session.owner_id,
                session_id=session.session_id,
                committed=len(result.committed_journals),
                remaining=len(remaining),
                error_message=failure.reason,
                correlation_id=session.correlation_id,
            )
            return result

        result.outcomes = outcomes
        session.transition_to(ScanState.DONE)

        # Rule learning only after every journal is saved; failures are reported, not raised
        for candidate in included:
            learned = await self._learn_rule(session, candidate, result)
            if learned is not None:
                result.learned_rules.append(learned)

        logger.info(
            "scan_committed",
            session_id=str(session.session_id),
            journals=len(result.committed_journals),
            rules=len(result.learned_rules),
        )
        return result

    async def _learn_rule(
        self,
        session: ScanSession,
        candidate: ScannedCandidate,
        result: CommitResult,
    ) -> Optional[CategoryRule]:
        keyword = self._rule_learner.keyword_for(candidate.description)
        if not keyword:
            return None
        try:
            rule = await self._rule_learner.learn_rule(
                session.owner_id, keyword, candidate.debit_account_id
            )
        except Exception as e:
            result.rule_learning_errors.append(f"{keyword}: {e}")
            await self._audit.log_rule_learning_failed(
                owner_id=session.owner_id,
                keyword=keyword,
                error_message=str(e),
                correlation_id=session.correlation_id,
            )
            return None

        await self._audit.log_rule_learned(
            owner_id=session.owner_id,
            rule_id=rule.id,
            keyword=keyword,
            correlation_id=session.correlation_id,
        )
        return rule


def create_app_components(
    use_storage: bool = True,
) -> tuple[ScanIngestionFlow, LedgerService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to keep the ledger in memory.

    Returns:
        (scan_flow, ledger_service, sheets_client)
    """
    settings = get_settings()
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except (ValidationError, StorageError) as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            ledger_storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        ledger_storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    try:
        image_host: Optional[ImageHostInterface] = CloudinaryImageHost()
    except ValidationError:
        logger.info("image_hosting_disabled")
        image_host = None

    ledger = LedgerService(ledger_storage, audit_logger=audit_logger, settings=settings.app)
    scan_flow = ScanIngestionFlow(
        ledger=ledger,
        agent=GeminiExtractionAgent(),
        image_host=image_host,
        audit_logger=audit_logger,
        settings=settings.app,
    )
    return scan_flow, ledger, sheets_client
