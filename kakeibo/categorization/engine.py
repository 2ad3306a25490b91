"""
Categorization Engine

Resolves a free-text transaction description to an account id through a
three-tier cascade:

1. Learned keyword rules (case-insensitive substring, caller's order)
2. A category suggestion from the vision/LLM collaborator
3. A fixed default account (code 5099 unless configured otherwise)

Each tier is total, and a failing suggestion call is absorbed here. It
never reaches the caller.
"""

import asyncio
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Optional, Protocol
from uuid import UUID

import structlog
from pydantic import BaseModel

from kakeibo.models.ledger import Account, AccountType, CategoryRule

logger = structlog.get_logger(__name__)


class CategorySuggester(Protocol):
    async def suggest_category(self, description: str, candidate_names: list[str]) -> str:
        ...


class CategorizationSource(str, Enum):
    """Which tier produced the answer."""
    RULE = "rule"
    SUGGESTION = "suggestion"
    SUGGESTION_FALLBACK = "suggestion_fallback"  # unrecognized name, first expense account
    NO_EXPENSE_ACCOUNTS = "no_expense_accounts"
    DEFAULT = "default"  # suggestion failed


class CategorizationResult(BaseModel):
    account_id: Optional[UUID] = None
    source: CategorizationSource


def match_rule(description: str, rules: Iterable[CategoryRule]) -> Optional[CategoryRule]:
    """First rule whose keyword occurs in the description, ignoring case."""
    folded = description.casefold()
    for rule in rules:
        if rule.keyword and rule.keyword.casefold() in folded:
            return rule
    return None


class CategorizationEngine:
    """
    Three-tier categorizer.

    The suggester is any object with an async
    `suggest_category(description, candidate_names) -> str`.

    A suggestion matches an expense account when it equals the account
    name after surrounding whitespace is trimmed. Nothing else is
    normalized: case, width and partial names must match exactly.
    """

    def __init__(
        self,
        suggester: CategorySuggester,
        timeout_seconds: Optional[float] = None,
        fallback_code: str = "5099",
    ):
        self._suggester = suggester
        self._timeout = timeout_seconds
        self._fallback_code = fallback_code

    async def categorize(
        self,
        description: str,
        rules: Sequence[CategoryRule],
        accounts: Sequence[Account],
    ) -> Optional[UUID]:
        result = await self.categorize_with_source(description, rules, accounts)
        return result.account_id

    async def categorize_with_source(
        self,
        description: str,
        rules: Sequence[CategoryRule],
        accounts: Sequence[Account],
    ) -> CategorizationResult:
        rule = match_rule(description, rules)
        if rule is not None:
            return CategorizationResult(account_id=rule.account_id, source=CategorizationSource.RULE)

        expense_accounts = [a for a in accounts if a.type == AccountType.EXPENSE]
        if not expense_accounts:
            # Nothing to choose from, so there is no point asking
            return CategorizationResult(source=CategorizationSource.NO_EXPENSE_ACCOUNTS)

        try:
            suggested = await self._suggest(description, [a.name for a in expense_accounts])
        except Exception as e:
            logger.warning(
                "category_suggestion_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
            fallback = next((a for a in accounts if a.code == self._fallback_code), None)
            return CategorizationResult(
                account_id=fallback.id if fallback else None,
                source=CategorizationSource.DEFAULT,
            )

        for account in expense_accounts:
            if account.name == suggested:
                return CategorizationResult(
                    account_id=account.id,
                    source=CategorizationSource.SUGGESTION,
                )

        logger.info("category_suggestion_unrecognized", suggested=suggested)
        return CategorizationResult(
            account_id=expense_accounts[0].id,
            source=CategorizationSource.SUGGESTION_FALLBACK,
        )

    async def _suggest(self, description: str, names: list[str]) -> str:
        call = self._suggester.suggest_category(description, names)
        if self._timeout is None:
            suggested = await call
        else:
            suggested = await asyncio.wait_for(call, timeout=self._timeout)
        return (suggested or "").strip()
