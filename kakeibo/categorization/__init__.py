"""Categorization package: the rule → suggestion → default cascade and rule learning."""

from kakeibo.categorization.engine import (
    CategorizationEngine,
    CategorizationResult,
    CategorizationSource,
    match_rule,
)
from kakeibo.categorization.learning import RuleLearner, derive_keyword

__all__ = [
    "CategorizationEngine",
    "CategorizationResult",
    "CategorizationSource",
    "RuleLearner",
    "derive_keyword",
    "match_rule",
]
