"""
Rule Learning

After a human confirms a categorized transaction, remember its keyword so
the next scan of the same merchant is answered by a rule instead of a
remote suggestion.
"""

from typing import Callable, Optional
from uuid import UUID

import structlog

from kakeibo.models.ledger import CategoryRule, utcnow
from kakeibo.services.storage import DuplicateError, LedgerStorageInterface

logger = structlog.get_logger(__name__)


def derive_keyword(description: str, separator: str = " - ") -> str:
    """
    Keyword for a description: the segment before the separator, trimmed,
    or the whole trimmed description when that segment is empty.

    "ローソン - 渋谷店" -> "ローソン"
    """
    description = description.strip()
    if not separator:
        return description
    head = description.split(separator, 1)[0].strip()
    return head or description


class RuleLearner:
    """
    Upserts keyword → account rules.

    Keyword derivation is a policy: pass `keyword_deriver` to replace the
    separator heuristic entirely.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        separator: str = " - ",
        keyword_deriver: Optional[Callable[[str], str]] = None,
    ):
        self._storage = storage
        self._derive = keyword_deriver or (lambda text: derive_keyword(text, separator))

    def keyword_for(self, description: str) -> str:
        return self._derive(description)

    async def learn_rule(self, owner_id: str, keyword: str, account_id: UUID) -> CategoryRule:
        """
        Insert the rule, or point the existing rule for this keyword at the
        new account. The most recent confirmation wins.
        """
        # A prefix of the description still matches it as a substring
        keyword = keyword.strip()[:200]
        if not keyword:
            raise ValueError("Cannot learn a rule for an empty keyword")

        existing = await self._storage.get_rule_by_keyword(owner_id, keyword)
        if existing is not None:
            updated = existing.model_copy(update={"account_id": account_id, "updated_at": utcnow()})
            rule = await self._storage.update_rule(updated)
            logger.info("category_rule_updated", owner_id=owner_id, keyword=keyword)
            return rule

        try:
            rule = await self._storage.create_rule(
                CategoryRule(owner_id=owner_id, keyword=keyword, account_id=account_id)
            )
        except DuplicateError:
            # Created concurrently between lookup and insert; update instead
            existing = await self._storage.get_rule_by_keyword(owner_id, keyword)
            if existing is None:
                raise
            rule = await self._storage.update_rule(
                existing.model_copy(update={"account_id": account_id, "updated_at": utcnow()})
            )

        logger.info("category_rule_learned", owner_id=owner_id, keyword=keyword)
        return rule

    async def learn_from_description(
        self,
        owner_id: str,
        description: str,
        account_id: UUID,
    ) -> Optional[CategoryRule]:
        """Derive the keyword and learn it; empty keywords are skipped (None)."""
        keyword = self.keyword_for(description)
        if not keyword:
            return None
        return await self.learn_rule(owner_id, keyword, account_id)
