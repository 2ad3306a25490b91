"""
Tests for Kakeibo models

Test strategy:
1. Unit tests for individual components (models, arithmetic, validators)
2. Integration tests for flows (with fake external services)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date
from uuid import uuid4

from kakeibo.models import (
    DEFAULT_ACCOUNTS,
    Account,
    AccountType,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    CommitResult,
    CommittedOutcome,
    FailedOutcome,
    InvalidSessionStateError,
    Journal,
    JournalEntry,
    JournalWithEntries,
    PartialCommitError,
    PendingOutcome,
    ScanSession,
    ScanState,
    ScannedCandidate,
    SourceType,
    ValidationIssue,
    ValidationResult,
)


def review_session(**candidate_fields) -> ScanSession:
    """A session already moved to REVIEW_PENDING with one candidate."""
    session = ScanSession(owner_id="user-1", source_type=SourceType.CARD_SCREENSHOT)
    for state in (
        ScanState.UPLOADING,
        ScanState.EXTRACTING,
        ScanState.CATEGORIZING,
        ScanState.REVIEW_PENDING,
    ):
        session.transition_to(state)
    fields = {"date": date(2025, 1, 10), "description": "コンビニ", "amount": 500}
    fields.update(candidate_fields)
    session.candidates.append(ScannedCandidate(**fields))
    return session


class TestLedgerModels:
    """Tests for ledger-related Pydantic models."""

    def test_account_label(self):
        account = Account(owner_id="u", code="5001", name="食費", type=AccountType.EXPENSE)
        assert account.label == "5001 食費"
        assert account.type_label == "費用"

    def test_account_strips_whitespace(self):
        account = Account(owner_id="u", code=" 5001 ", name="  食費 ", type="expense")
        assert account.code == "5001"
        assert account.name == "食費"
        assert account.type == AccountType.EXPENSE

    def test_entry_rejects_negative_amount(self):
        with pytest.raises(ValueError):
            JournalEntry(journal_id=uuid4(), account_id=uuid4(), debit_amount=-100)

    def test_journal_requires_description(self):
        with pytest.raises(ValueError):
            Journal(owner_id="u", date=date(2025, 1, 1), description="   ")

    def test_journal_total_amount_is_debit_sum(self):
        journal_id = uuid4()
        journal = JournalWithEntries(
            id=journal_id,
            owner_id="u",
            date=date(2025, 1, 1),
            description="スーパー",
            entries=[
                JournalEntry(journal_id=journal_id, account_id=uuid4(), debit_amount=1200),
                JournalEntry(journal_id=journal_id, account_id=uuid4(), credit_amount=1200),
            ],
        )
        assert journal.total_amount == 1200
        assert journal.source_type == SourceType.MANUAL


class TestDefaultAccounts:
    """Tests for the onboarding chart of accounts."""

    def test_has_all_seed_accounts(self):
        assert len(DEFAULT_ACCOUNTS) == 25

    def test_codes_are_unique(self):
        codes = [template.code for template in DEFAULT_ACCOUNTS]
        assert len(codes) == len(set(codes))

    def test_designated_accounts_present(self):
        by_code = {template.code: template for template in DEFAULT_ACCOUNTS}
        assert by_code["1001"].type == AccountType.ASSET
        assert by_code["2001"].type == AccountType.LIABILITY
        assert by_code["5001"].type == AccountType.EXPENSE
        assert by_code["5099"].name == "その他費用"


class TestScanSession:
    """Tests for the scan session state machine."""

    def test_happy_path_transitions(self):
        session = review_session()
        session.transition_to(ScanState.COMMITTING)
        session.transition_to(ScanState.DONE)
        assert session.history == [
            ScanState.IDLE,
            ScanState.UPLOADING,
            ScanState.EXTRACTING,
            ScanState.CATEGORIZING,
            ScanState.REVIEW_PENDING,
            ScanState.COMMITTING,
            ScanState.DONE,
        ]

    def test_illegal_transition_raises(self):
        session = ScanSession(owner_id="u", source_type=SourceType.RECEIPT_OCR)
        with pytest.raises(InvalidSessionStateError):
            session.transition_to(ScanState.COMMITTING)

    def test_done_is_terminal(self):
        session = review_session()
        session.transition_to(ScanState.COMMITTING)
        session.transition_to(ScanState.DONE)
        with pytest.raises(InvalidSessionStateError):
            session.transition_to(ScanState.IDLE)

    def test_fail_records_message(self):
        session = ScanSession(owner_id="u", source_type=SourceType.RECEIPT_OCR)
        session.transition_to(ScanState.UPLOADING)
        session.fail("bad image")
        assert session.state == ScanState.FAILED
        assert session.error_message == "bad image"

    def test_cannot_fail_from_review(self):
        session = review_session()
        with pytest.raises(InvalidSessionStateError):
            session.fail("nope")

    def test_update_candidate_revalidates(self):
        session = review_session()
        candidate = session.candidates[0]
        updated = session.update_candidate(candidate.id, amount=800, description="  薬局 ")
        assert updated.id == candidate.id
        assert updated.amount == 800
        assert updated.description == "薬局"
        with pytest.raises(ValueError):
            session.update_candidate(candidate.id, amount=-1)

    def test_update_candidate_rejects_id_change(self):
        session = review_session()
        with pytest.raises(ValueError):
            session.update_candidate(session.candidates[0].id, id=uuid4())

    def test_review_ops_require_review_state(self):
        session = ScanSession(owner_id="u", source_type=SourceType.RECEIPT_OCR)
        with pytest.raises(InvalidSessionStateError):
            session.add_candidate(None, None)

    def test_add_and_remove_candidate(self):
        session = review_session()
        debit, credit = uuid4(), uuid4()
        added = session.add_candidate(debit, credit, on_date=date(2025, 2, 1))
        assert added.amount == 0
        assert added.description == ""
        assert added.debit_account_id == debit
        assert len(session.candidates) == 2

        session.remove_candidate(added.id)
        assert len(session.candidates) == 1
        with pytest.raises(KeyError):
            session.get_candidate(added.id)

    def test_included_total(self):
        session = review_session(amount=500)
        session.candidates.append(ScannedCandidate(date=date(2025, 1, 1), description="x", amount=300))
        session.set_included(session.candidates[1].id, False)
        assert session.included_total == 500
        assert len(session.included_candidates) == 1


class TestScannedCandidate:
    """Tests for candidate commit checks."""

    def test_complete_candidate_has_no_problems(self):
        candidate = ScannedCandidate(
            date=date(2025, 1, 1),
            description="スーパー",
            amount=1200,
            debit_account_id=uuid4(),
            credit_account_id=uuid4(),
        )
        assert candidate.problems() == []

    def test_blank_candidate_problems(self):
        candidate = ScannedCandidate(date=date(2025, 1, 1))
        problems = candidate.problems()
        assert "description is empty" in problems
        assert "amount must be greater than zero" in problems
        assert "debit account is not set" in problems

    def test_same_account_both_sides(self):
        account_id = uuid4()
        candidate = ScannedCandidate(
            date=date(2025, 1, 1),
            description="x",
            amount=1,
            debit_account_id=account_id,
            credit_account_id=account_id,
        )
        assert candidate.problems() == ["debit and credit accounts are the same"]


class TestCommitResult:
    """Tests for commit outcome reporting."""

    def test_failed_result_raises_partial_commit(self):
        pending = ScannedCandidate(date=date(2025, 1, 1), description="b", amount=1)
        result = CommitResult(
            session_id=uuid4(),
            outcomes=[
                FailedOutcome(candidate_id=uuid4(), reason="disk full"),
                PendingOutcome(candidate_id=pending.id),
            ],
            remaining=[pending],
        )
        assert not result.is_complete
        assert result.failure.reason == "disk full"
        assert "disk full" in result.user_message()
        with pytest.raises(PartialCommitError) as exc_info:
            result.raise_for_failure()
        assert exc_info.value.remaining == [pending]

    def test_outcomes_parse_by_status(self):
        result = CommitResult.model_validate({
            "session_id": str(uuid4()),
            "outcomes": [{"status": "pending", "candidate_id": str(uuid4())}],
        })
        assert isinstance(result.outcomes[0], PendingOutcome)

    def test_complete_result_message(self):
        journal = JournalWithEntries(owner_id="u", date=date(2025, 1, 1), description="x")
        result = CommitResult(
            session_id=uuid4(),
            outcomes=[CommittedOutcome(candidate_id=uuid4(), journal=journal)],
        )
        assert result.is_complete
        assert result.committed_journals == [journal]
        assert result.user_message().startswith("✅ Saved 1 journal.")
        result.raise_for_failure()


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.IMAGE_UPLOADED,
            description="Test image uploaded",
        )
        assert event.event_type == AuditEventType.IMAGE_UPLOADED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.JOURNAL_COMMITTED,
            owner_id="user-1",
            description="Journal saved",
            details={"amount": 1200},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "journal_committed"
        assert log_dict["owner_id"] == "user-1"
        assert log_dict["details"]["amount"] == 1200

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.SESSION_DISCARDED,
            description="User discarded the scan",
            details={"store": "スーパー"},
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "session_discarded"
        assert "スーパー" in row[9]  # details_json keeps non-ASCII readable
        assert row[11] == "True"

    def test_audit_event_builder_image_uploaded(self):
        correlation_id = uuid4()
        session_id = uuid4()

        event = AuditEventBuilder.image_uploaded(
            owner_id="user-1",
            session_id=session_id,
            filename="receipt.jpg",
            file_size=1024,
            correlation_id=correlation_id,
        )

        assert event.entity_id == session_id
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_trial_balance_mismatch_is_critical(self):
        event = AuditEventBuilder.trial_balance_mismatch("user-1", 100, 90)
        assert event.severity == AuditSeverity.CRITICAL
        assert event.details == {"debit_total": 100, "credit_total": 90}


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        result = ValidationResult(
            structure_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="entries",
                    issue_type="unbalanced",
                    message="Debits do not equal credits",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        result = ValidationResult(
            structure_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="entries[0]",
                    issue_type="double_sided_entry",
                    message="Entry 1 has both a debit and a credit amount",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0

    def test_issue_severity_is_constrained(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
