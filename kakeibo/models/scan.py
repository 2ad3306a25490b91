"""
Scan Models for Kakeibo

Models for the ingestion side of the ledger:
1. What the vision model extracted (already coerced, still unconfirmed)
2. The transient candidates a human reviews
3. The scan session state machine
4. The outcome of committing reviewed candidates

CRITICAL: Nothing in this module is persisted. Candidates only become
journals through an explicit commit after human review.
"""

import datetime as dt
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from kakeibo.models.ledger import CategoryRule, JournalWithEntries, SourceType, utcnow


# =============================================================================
# EXTRACTION RESULTS (coerced at the boundary)
# =============================================================================

class ReceiptLineItem(BaseModel):
    """One purchased item on a receipt."""

    name: str
    amount: int = Field(ge=0)


class ExtractedReceipt(BaseModel):
    """
    A receipt as read by the vision model.

    This is PROPOSED data, NOT verified.
    `notes` records every coercion that was applied so the reviewer sees it.
    """

    store_name: str = ""
    date: Optional[dt.date] = None
    items: list[ReceiptLineItem] = Field(default_factory=list)
    total: int = Field(ge=0)
    notes: list[str] = Field(default_factory=list)


class StatementLine(BaseModel):
    """One transaction row from a card statement screenshot."""

    date: Optional[dt.date] = None
    description: str = ""
    amount: int = Field(ge=0)
    notes: list[str] = Field(default_factory=list)


class ExtractedStatement(BaseModel):
    """All transactions read from one statement screenshot."""

    items: list[StatementLine] = Field(default_factory=list)
    skipped_rows: int = Field(
        default=0,
        ge=0,
        description="Rows dropped because no usable amount could be read"
    )


# =============================================================================
# REVIEW CANDIDATES
# =============================================================================

class ScannedCandidate(BaseModel):
    """
    One proposed transaction awaiting human review.

    Mutable during review; becomes a two-entry journal on commit.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    date: dt.date
    description: str = ""
    amount: int = Field(default=0, ge=0)
    debit_account_id: Optional[UUID] = None
    credit_account_id: Optional[UUID] = None
    included: bool = True
    notes: list[str] = Field(default_factory=list)

    def problems(self) -> list[str]:
        """Reasons this candidate cannot be committed as-is."""
        problems = []
        if not self.description:
            problems.append("description is empty")
        if self.amount <= 0:
            problems.append("amount must be greater than zero")
        if self.debit_account_id is None:
            problems.append("debit account is not set")
        if self.credit_account_id is None:
            problems.append("credit account is not set")
        if (
            self.debit_account_id is not None
            and self.debit_account_id == self.credit_account_id
        ):
            problems.append("debit and credit accounts are the same")
        return problems


# =============================================================================
# SCAN SESSION STATE MACHINE
# =============================================================================

class ScanState(str, Enum):
    """Lifecycle of one scan session."""
    IDLE = "idle"
    UPLOADING = "uploading"
    EXTRACTING = "extracting"
    CATEGORIZING = "categorizing"
    REVIEW_PENDING = "review_pending"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[ScanState, frozenset[ScanState]] = {
    ScanState.IDLE: frozenset({ScanState.UPLOADING}),
    ScanState.UPLOADING: frozenset({ScanState.EXTRACTING, ScanState.FAILED}),
    ScanState.EXTRACTING: frozenset({ScanState.CATEGORIZING, ScanState.FAILED}),
    ScanState.CATEGORIZING: frozenset({ScanState.REVIEW_PENDING, ScanState.FAILED}),
    # IDLE here means the reviewer abandoned the session
    ScanState.REVIEW_PENDING: frozenset({ScanState.COMMITTING, ScanState.IDLE}),
    ScanState.COMMITTING: frozenset({ScanState.DONE, ScanState.FAILED}),
    ScanState.DONE: frozenset(),
    # A failed commit may go back to review so only the pending items are retried
    ScanState.FAILED: frozenset({ScanState.REVIEW_PENDING, ScanState.IDLE}),
}


class InvalidSessionStateError(Exception):
    """Operation not allowed in the session's current state."""

    def __init__(self, current: ScanState, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} while scan session is {current.value}")


class ScanSession(BaseModel):
    """
    Local state of one scan, from upload to commit.

    Everything up to REVIEW_PENDING is purely local; abandoning a session
    before commit has no side effects.
    """

    session_id: UUID = Field(default_factory=uuid4)
    correlation_id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    source_type: SourceType
    state: ScanState = ScanState.IDLE
    history: list[ScanState] = Field(default_factory=lambda: [ScanState.IDLE])
    candidates: list[ScannedCandidate] = Field(default_factory=list)
    source_image_ref: Optional[str] = None
    error_message: Optional[str] = None
    messages: list[str] = Field(
        default_factory=list,
        description="Non-blocking notices for the reviewer"
    )
    created_at: dt.datetime = Field(default_factory=utcnow)

    def transition_to(self, state: ScanState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidSessionStateError(self.state, f"move to {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, message: str) -> None:
        self.transition_to(ScanState.FAILED)
        self.error_message = message

    def _require_review(self, attempted: str) -> None:
        if self.state != ScanState.REVIEW_PENDING:
            raise InvalidSessionStateError(self.state, attempted)

    def get_candidate(self, candidate_id: UUID) -> ScannedCandidate:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        raise KeyError(f"Candidate not found: {candidate_id}")

    # Review operations

    def set_included(self, candidate_id: UUID, included: bool) -> ScannedCandidate:
        return self.update_candidate(candidate_id, included=included)

    def update_candidate(self, candidate_id: UUID, **changes: Any) -> ScannedCandidate:
        """Edit any field of a candidate; the result is re-validated."""
        self._require_review("edit a candidate")
        if "id" in changes:
            raise ValueError("Candidate id cannot be changed")

        current = self.get_candidate(candidate_id)
        updated = ScannedCandidate.model_validate({**current.model_dump(), **changes})
        index = self.candidates.index(current)
        self.candidates[index] = updated
        return updated

    def add_candidate(
        self,
        debit_account_id: Optional[UUID],
        credit_account_id: Optional[UUID],
        on_date: Optional[dt.date] = None,
    ) -> ScannedCandidate:
        """Append a blank row: zero amount, default accounts."""
        self._require_review("add a candidate")
        candidate = ScannedCandidate(
            date=on_date or dt.date.today(),
            description="",
            amount=0,
            debit_account_id=debit_account_id,
            credit_account_id=credit_account_id,
        )
        self.candidates.append(candidate)
        return candidate

    def remove_candidate(self, candidate_id: UUID) -> None:
        self._require_review("remove a candidate")
        self.candidates.remove(self.get_candidate(candidate_id))

    @property
    def included_candidates(self) -> list[ScannedCandidate]:
        return [c for c in self.candidates if c.included]

    @property
    def included_total(self) -> int:
        return sum(c.amount for c in self.included_candidates)


# =============================================================================
# COMMIT OUTCOMES
# =============================================================================

class CommittedOutcome(BaseModel):
    """The candidate was persisted as this journal."""

    status: Literal["committed"] = "committed"
    candidate_id: UUID
    journal: JournalWithEntries


class FailedOutcome(BaseModel):
    """Persisting the candidate failed; nothing was written for it."""

    status: Literal["failed"] = "failed"
    candidate_id: UUID
    reason: str


class PendingOutcome(BaseModel):
    """The candidate was never attempted (or was rolled back)."""

    status: Literal["pending"] = "pending"
    candidate_id: UUID


CommitOutcome = Annotated[
    Union[CommittedOutcome, FailedOutcome, PendingOutcome],
    Field(discriminator="status"),
]


class PartialCommitError(Exception):
    """A bulk commit stopped partway; some candidates are not saved."""

    def __init__(self, message: str, remaining: list[ScannedCandidate]):
        self.remaining = remaining
        super().__init__(message)


class CommitResult(BaseModel):
    """
    Result of committing a reviewed session.

    Committed, failed and pending candidates are always distinguishable,
    so a caller can retry exactly the items that were not saved.
    """

    session_id: UUID
    atomic: bool = Field(
        default=False,
        description="Whether the batch ran inside one storage transaction"
    )
    outcomes: list[CommitOutcome] = Field(default_factory=list)
    remaining: list[ScannedCandidate] = Field(default_factory=list)
    learned_rules: list[CategoryRule] = Field(default_factory=list)
    rule_learning_errors: list[str] = Field(default_factory=list)

    @property
    def committed_journals(self) -> list[JournalWithEntries]:
        return [o.journal for o in self.outcomes if isinstance(o, CommittedOutcome)]

    @property
    def failure(self) -> Optional[FailedOutcome]:
        for outcome in self.outcomes:
            if isinstance(outcome, FailedOutcome):
                return outcome
        return None

    @property
    def is_complete(self) -> bool:
        return all(isinstance(o, CommittedOutcome) for o in self.outcomes)

    def user_message(self) -> str:
        """Inline message describing the commit for the reviewer."""
        saved = len(self.committed_journals)
        if self.is_complete:
            message = f"✅ Saved {saved} journal{'s' if saved != 1 else ''}."
            if self.rule_learning_errors:
                message += " Some category rules could not be learned."
            return message

        failure = self.failure
        reason = failure.reason if failure else "unknown error"
        return (
            f"⚠️ Saved {saved} of {len(self.outcomes)}. "
            f"{len(self.remaining)} item(s) were not saved ({reason}). "
            "Please retry them."
        )

    def raise_for_failure(self) -> None:
        if not self.is_complete:
            raise PartialCommitError(self.user_message(), self.remaining)
