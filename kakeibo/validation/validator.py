"""
Two-Stage Journal Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - STRUCTURAL VALIDATION:
- At least two entries
- Description present
- Every entry references an account the owner actually has

STAGE 2 - SEMANTIC VALIDATION:
- Balance Law: total debits equal total credits and are greater than zero
- Entries carrying both a debit and a credit amount
- Absurd amount detection

Stage 2 only runs when stage 1 passes: balancing entries against
accounts that do not exist produces noise, not information.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the ledger service refuses to write on any error.
"""

from collections.abc import Iterable
from typing import Optional
from uuid import UUID

from kakeibo.config import LedgerSettings, get_settings
from kakeibo.ledger.arithmetic import format_currency, validate_balanced
from kakeibo.models.ledger import Account, JournalEntryDraft
from kakeibo.models.validation import ValidationIssue, ValidationResult


class JournalValidator:
    """
    Validates a journal's entries before it is persisted.

    Both stages are pure: the caller supplies the owner's accounts.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_structure(
        self,
        entries: list[JournalEntryDraft],
        known_account_ids: set[UUID],
        description: Optional[str],
    ) -> list[ValidationIssue]:
        issues = []

        if len(entries) < 2:
            issues.append(ValidationIssue(
                field="entries",
                issue_type="too_few_entries",
                message=f"A journal needs at least two entries (got {len(entries)})",
                severity="error",
                suggested_fix="Add a debit line and a credit line",
            ))

        if not description or not description.strip():
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
            ))

        for index, entry in enumerate(entries):
            if entry.account_id not in known_account_ids:
                issues.append(ValidationIssue(
                    field=f"entries[{index}].account_id",
                    issue_type="unknown_account",
                    message=f"Entry {index + 1} references an unknown account",
                    severity="error",
                    suggested_fix="Pick one of your accounts",
                ))

        return issues

    def _validate_semantic(
        self,
        entries: list[JournalEntryDraft],
    ) -> list[ValidationIssue]:
        issues = []
        balance = validate_balanced(entries)

        if not balance.is_balanced:
            if balance.debit_total == 0 and balance.credit_total == 0:
                message = "Journal has no amounts"
            else:
                message = (
                    f"Debits ({format_currency(balance.debit_total)}) do not equal "
                    f"credits ({format_currency(balance.credit_total)})"
                )
            issues.append(ValidationIssue(
                field="entries",
                issue_type="unbalanced",
                message=message,
                severity="error",
                suggested_fix="Adjust the amounts so both sides match",
            ))

        double_sided_severity = (
            "error" if self._settings.strict_single_sided_entries else "warning"
        )
        for index, entry in enumerate(entries):
            if entry.debit_amount > 0 and entry.credit_amount > 0:
                issues.append(ValidationIssue(
                    field=f"entries[{index}]",
                    issue_type="double_sided_entry",
                    message=f"Entry {index + 1} has both a debit and a credit amount",
                    severity=double_sided_severity,
                    suggested_fix="Split it into one debit line and one credit line",
                ))

        if balance.debit_total > self._settings.max_amount_yen:
            issues.append(ValidationIssue(
                field="entries",
                issue_type="suspicious_value",
                message=f"Amount ({format_currency(balance.debit_total)}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        return issues

    def validate(
        self,
        entries: Iterable[JournalEntryDraft],
        accounts: Iterable[Account],
        description: Optional[str],
    ) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Args:
            entries: The entries of the journal about to be written
            accounts: The owner's accounts
            description: The journal description

        Returns:
            ValidationResult with all issues found
        """
        entries = list(entries)
        known_account_ids = {account.id for account in accounts}

        structure_issues = self._validate_structure(entries, known_account_ids, description)
        structure_valid = not any(i.severity == "error" for i in structure_issues)

        semantic_issues: list[ValidationIssue] = []
        semantic_valid = False
        if structure_valid:
            semantic_issues = self._validate_semantic(entries)
            semantic_valid = not any(i.severity == "error" for i in semantic_issues)

        all_issues = structure_issues + semantic_issues
        balance = validate_balanced(entries)

        return ValidationResult(
            structure_valid=structure_valid,
            semantic_valid=semantic_valid,
            is_valid=structure_valid and semantic_valid,
            debit_total=balance.debit_total,
            credit_total=balance.credit_total,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to the reviewer.
        """
        if result.is_valid and not result.warnings:
            return "✅ Journal is balanced."

        lines = []

        if result.errors:
            lines.append("❌ This journal cannot be saved:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
