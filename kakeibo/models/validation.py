"""
Validation result models shared by the journal validator and the ledger service.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'unbalanced', 'unknown_account')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage journal validation.

    Stage 1: Structural validation (entry count, description, account references)
    Stage 2: Semantic validation (Balance Law, entry shape, amount sanity)
    """

    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    structure_valid: bool
    semantic_valid: bool
    is_valid: bool = Field(
        ...,
        description="True when no issue has severity 'error'"
    )
    debit_total: int = 0
    credit_total: int = 0
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def has_errors(self) -> bool:
        """Check if there are any blocking errors."""
        return bool(self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors)
