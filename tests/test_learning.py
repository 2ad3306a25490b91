"""
Tests for keyword derivation and rule learning.
"""

from uuid import uuid4

import pytest

from conftest import OWNER, run
from kakeibo.categorization import RuleLearner, derive_keyword
from kakeibo.models import CategoryRule
from kakeibo.services.storage import DuplicateError, InMemoryLedgerStorage


class TestDeriveKeyword:
    """Tests for the separator heuristic."""

    def test_keeps_segment_before_separator(self):
        assert derive_keyword("ローソン - 渋谷店") == "ローソン"

    def test_no_separator_keeps_whole_description(self):
        assert derive_keyword("  セブンイレブン  ") == "セブンイレブン"

    def test_empty_head_falls_back_to_description(self):
        assert derive_keyword("/渋谷店", separator="/") == "/渋谷店"

    def test_custom_separator(self):
        assert derive_keyword("AMAZON/MKTP", separator="/") == "AMAZON"

    def test_empty_separator(self):
        assert derive_keyword("A - B", separator="") == "A - B"


class TestRuleLearner:
    """Tests for rule upserts."""

    def test_learn_creates_rule(self, storage):
        learner = RuleLearner(storage)
        account_id = uuid4()

        learned = run(learner.learn_rule(OWNER, "スーパー", account_id))

        stored = run(storage.get_rule_by_keyword(OWNER, "スーパー"))
        assert stored.id == learned.id
        assert stored.account_id == account_id

    def test_relearning_updates_existing_rule(self, storage):
        learner = RuleLearner(storage)
        first = run(learner.learn_rule(OWNER, "スーパー", uuid4()))
        new_account = uuid4()

        second = run(learner.learn_rule(OWNER, "スーパー", new_account))

        rules = run(storage.list_rules(OWNER))
        assert len(rules) == 1
        assert second.id == first.id
        assert rules[0].account_id == new_account
        assert second.updated_at >= first.updated_at

    def test_rules_are_per_owner(self, storage):
        learner = RuleLearner(storage)
        run(learner.learn_rule(OWNER, "スーパー", uuid4()))
        run(learner.learn_rule("someone-else", "スーパー", uuid4()))

        assert len(run(storage.list_rules(OWNER))) == 1
        assert len(run(storage.list_rules("someone-else"))) == 1

    def test_keyword_is_trimmed_and_truncated(self, storage):
        learner = RuleLearner(storage)
        rule = run(learner.learn_rule(OWNER, "  " + "あ" * 250 + "  ", uuid4()))
        assert rule.keyword == "あ" * 200

    def test_empty_keyword_rejected(self, storage):
        with pytest.raises(ValueError):
            run(RuleLearner(storage).learn_rule(OWNER, "   ", uuid4()))

    def test_learn_from_description_uses_separator(self, storage):
        learner = RuleLearner(storage, separator=" / ")
        rule = run(learner.learn_from_description(OWNER, "ファミマ / 新宿", uuid4()))
        assert rule.keyword == "ファミマ"

    def test_custom_keyword_deriver(self, storage):
        learner = RuleLearner(storage, keyword_deriver=lambda text: text.split()[0].upper())
        assert learner.keyword_for("amazon marketplace") == "AMAZON"

    def test_blank_description_learns_nothing(self, storage):
        assert run(RuleLearner(storage).learn_from_description(OWNER, "  ", uuid4())) is None
        assert run(storage.list_rules(OWNER)) == []

    def test_concurrent_insert_falls_back_to_update(self):
        class RacingStorage(InMemoryLedgerStorage):
            """Another writer inserts the keyword between lookup and insert."""

            def __init__(self):
                super().__init__()
                self.raced = False

            async def create_rule(self, rule):
                if not self.raced:
                    self.raced = True
                    await super().create_rule(
                        CategoryRule(owner_id=rule.owner_id, keyword=rule.keyword, account_id=uuid4())
                    )
                    raise DuplicateError("keyword taken")
                return await super().create_rule(rule)

        storage = RacingStorage()
        account_id = uuid4()

        run(RuleLearner(storage).learn_rule(OWNER, "スーパー", account_id))

        rules = run(storage.list_rules(OWNER))
        assert len(rules) == 1
        assert rules[0].account_id == account_id
