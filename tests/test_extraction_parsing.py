"""
Tests for coercion of raw vision-model output into extraction models.
"""

from datetime import date, datetime

import pytest

from kakeibo.validation import (
    MalformedExtractionError,
    coerce_amount,
    coerce_date,
    parse_json_payload,
    parse_receipt,
    parse_statement,
    strip_code_fences,
)


class TestJsonPayload:
    """Tests for parsing the model's text answer."""

    def test_strips_markdown_fences(self):
        text = '```json\n{"total": 100}\n```'
        assert strip_code_fences(text) == '{"total": 100}'
        assert parse_json_payload(text) == {"total": 100}

    def test_plain_json(self):
        assert parse_json_payload('{"items": []}') == {"items": []}

    def test_invalid_json(self):
        with pytest.raises(MalformedExtractionError):
            parse_json_payload("I could not read this receipt, sorry.")

    def test_non_object(self):
        with pytest.raises(MalformedExtractionError):
            parse_json_payload("[1, 2, 3]")

    def test_empty_answer(self):
        with pytest.raises(MalformedExtractionError):
            parse_json_payload(None)


class TestCoerceAmount:
    """Tests for amount coercion to whole yen."""

    @pytest.mark.parametrize("raw,expected", [
        (1200, 1200),
        ("1,200円", 1200),
        ("¥1,200", 1200),
        ("￥ 3,480", 3480),
        ("１，２００", 1200),
        (980.5, 981),
        ("980.4", 980),
        (0, 0),
    ])
    def test_coerces(self, raw, expected):
        assert coerce_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "円"])
    def test_missing(self, raw):
        assert coerce_amount(raw) is None

    @pytest.mark.parametrize("raw", [-100, "-500", "abc", float("nan"), True, [1200], "1e30", 10**30])
    def test_rejects(self, raw):
        with pytest.raises(ValueError):
            coerce_amount(raw)


class TestCoerceDate:
    """Tests for date coercion."""

    @pytest.mark.parametrize("raw", [
        "2025-01-15",
        "2025/01/15",
        "2025/1/15",
        "2025.01.15",
        "2025年1月15日",
        "２０２５年１月１５日",
        "2025-01-15 13:45",
    ])
    def test_accepts(self, raw):
        assert coerce_date(raw) == date(2025, 1, 15)

    def test_accepts_date_objects(self):
        assert coerce_date(datetime(2025, 1, 15, 9, 30)) == date(2025, 1, 15)
        assert coerce_date(date(2025, 1, 15)) == date(2025, 1, 15)

    @pytest.mark.parametrize("raw", ["01/15", "2025-02-30", "yesterday", None, 20250115])
    def test_unreadable(self, raw):
        assert coerce_date(raw) is None


class TestParseReceipt:
    """Tests for receipt payload coercion."""

    def test_full_receipt(self):
        receipt = parse_receipt({
            "store_name": " スーパー ",
            "date": "2025-01-15",
            "items": [
                {"name": "牛乳", "amount": "200"},
                {"name": "パン", "amount": 1000},
            ],
            "total": "1,200円",
        })
        assert receipt.store_name == "スーパー"
        assert receipt.date == date(2025, 1, 15)
        assert [item.amount for item in receipt.items] == [200, 1000]
        assert receipt.total == 1200
        assert receipt.notes == []

    def test_missing_total_uses_item_sum(self):
        receipt = parse_receipt({
            "store_name": "パン屋",
            "items": [{"name": "a", "amount": 300}, {"name": "b", "amount": 250}],
        })
        assert receipt.total == 550
        assert "total: not readable, using the sum of items" in receipt.notes

    def test_no_total_and_no_items(self):
        with pytest.raises(MalformedExtractionError):
            parse_receipt({"store_name": "x", "items": []})

    def test_rounding_is_noted(self):
        receipt = parse_receipt({"store_name": "x", "total": 980.5})
        assert receipt.total == 981
        assert "total: 980.5 rounded to 981" in receipt.notes

    def test_unusable_items_are_skipped(self):
        receipt = parse_receipt({
            "store_name": "x",
            "items": ["牛乳 200", {"name": "パン", "amount": "?"}, {"name": "卵", "amount": 250}],
            "total": 250,
        })
        assert [item.name for item in receipt.items] == ["卵"]
        assert "item 1: skipped, not an object" in receipt.notes
        assert "item 2: skipped, no usable amount" in receipt.notes

    def test_unreadable_date_is_noted(self):
        receipt = parse_receipt({"store_name": "x", "date": "1/15", "total": 100})
        assert receipt.date is None
        assert any(note.startswith("date:") for note in receipt.notes)

    def test_items_not_a_list(self):
        with pytest.raises(MalformedExtractionError):
            parse_receipt({"items": "milk", "total": 100})

    def test_negative_total_without_items(self):
        with pytest.raises(MalformedExtractionError):
            parse_receipt({"store_name": "x", "total": -100})


class TestParseStatement:
    """Tests for statement payload coercion."""

    def test_statement_rows(self):
        statement = parse_statement({"items": [
            {"date": "2025/01/03", "description": "AMAZON.CO.JP", "amount": "3,480"},
            {"date": "2025/01/05", "description": "JR東日本", "amount": 1200},
        ]})
        assert [line.amount for line in statement.items] == [3480, 1200]
        assert statement.items[0].date == date(2025, 1, 3)
        assert statement.skipped_rows == 0

    def test_rows_without_amount_are_counted(self):
        statement = parse_statement({"items": [
            {"date": "2025/01/03", "description": "a", "amount": None},
            {"date": "2025/01/04", "description": "b", "amount": "n/a"},
            "garbage",
            {"date": "2025/01/05", "description": "c", "amount": 500},
        ]})
        assert len(statement.items) == 1
        assert statement.skipped_rows == 3

    def test_out_of_range_row_is_skipped(self):
        statement = parse_statement({"items": [
            {"date": "2025/01/03", "description": "スーパー", "amount": 1200},
            {"date": "2025/01/04", "description": "??", "amount": 10**30},
        ]})
        assert [line.amount for line in statement.items] == [1200]
        assert statement.skipped_rows == 1

    def test_empty_statement(self):
        statement = parse_statement({"items": []})
        assert statement.items == []

    def test_missing_items(self):
        with pytest.raises(MalformedExtractionError):
            parse_statement({"transactions": []})
