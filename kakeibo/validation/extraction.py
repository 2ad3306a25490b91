"""
Extraction Boundary Coercion

The vision model returns loosely typed JSON: amounts as strings with
currency marks, fractional numbers, missing totals, dates in whatever
format was printed on the paper. Everything is coerced HERE, once, into
the strict extraction models. Nothing downstream sees raw model output.

Every coercion that changes what the model said is recorded in `notes`
so the reviewer can see it.
"""

import datetime as dt
import json
import re
import unicodedata
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from kakeibo.models.scan import (
    ExtractedReceipt,
    ExtractedStatement,
    ReceiptLineItem,
    StatementLine,
)


class ExtractionError(Exception):
    """Base exception for extraction errors."""
    pass


class MalformedExtractionError(ExtractionError):
    """The model answered, but not with data we can use."""
    pass


# Largest amount a single receipt or statement row may carry (1 trillion yen)
MAX_AMOUNT = Decimal(10) ** 12

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_CURRENCY_MARKS = ("¥", "￥", "円", ",", " ")
_DATE_PATTERNS = (
    re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})"),
    re.compile(r"^(\d{4})年\s*(\d{1,2})月\s*(\d{1,2})日"),
)


def strip_code_fences(text: str) -> str:
    """Remove ```json ... ``` markdown fences around a JSON answer."""
    return _FENCE_PATTERN.sub("", text).strip()


def parse_json_payload(text: str) -> dict:
    """
    Parse the model's text answer into a JSON object.

    Raises:
        MalformedExtractionError: If the answer is not a JSON object
    """
    cleaned = strip_code_fences(text or "")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedExtractionError(f"Response is not valid JSON: {e}")
    if not isinstance(payload, dict):
        raise MalformedExtractionError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )
    return payload


def _to_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a raw amount into a Decimal.

    Returns None for missing or blank values.

    Raises:
        ValueError: If the value is present but not a usable amount
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")

    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    elif isinstance(value, str):
        text = unicodedata.normalize("NFKC", value)
        for mark in _CURRENCY_MARKS:
            text = text.replace(mark, "")
        text = text.strip()
        if not text:
            return None
    else:
        raise ValueError(f"Not an amount: {value!r}")

    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Not an amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Not an amount: {value!r}")
    if amount < 0:
        raise ValueError(f"Negative amount: {value!r}")
    if amount > MAX_AMOUNT:
        raise ValueError(f"Amount out of range: {value!r}")
    return amount


def _round_yen(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_HALF_UP))


def coerce_amount(value: Any) -> Optional[int]:
    """
    Coerce a raw amount to whole yen, rounding half up.

    "1,200円" -> 1200, 980.5 -> 981, None/"" -> None.

    Raises:
        ValueError: If the value is negative, NaN, a bool, unparseable
            or above MAX_AMOUNT
    """
    amount = _to_decimal(value)
    if amount is None:
        return None
    return _round_yen(amount)


def coerce_date(value: Any) -> Optional[dt.date]:
    """
    Coerce a raw date. Accepts YYYY-MM-DD, YYYY/MM/DD, YYYY.MM.DD and
    YYYY年M月D日 (a trailing time part is ignored). Anything else -> None.
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str):
        return None

    text = unicodedata.normalize("NFKC", value).strip()
    for pattern in _DATE_PATTERNS:
        match = pattern.match(text)
        if match:
            try:
                return dt.date(*(int(part) for part in match.groups()))
            except ValueError:
                return None
    return None


def _amount_with_note(value: Any, label: str, notes: list[str]) -> Optional[int]:
    """coerce_amount that records rounding and rejection in notes."""
    try:
        raw = _to_decimal(value)
    except ValueError as e:
        notes.append(f"{label}: {e}")
        return None
    if raw is None:
        return None

    amount = _round_yen(raw)
    if raw != amount:
        notes.append(f"{label}: {raw} rounded to {amount}")
    return amount


def _date_with_note(value: Any, label: str, notes: list[str]) -> Optional[dt.date]:
    parsed = coerce_date(value)
    if parsed is None and value not in (None, ""):
        notes.append(f"{label}: could not read date {value!r}")
    return parsed


def parse_receipt(payload: dict) -> ExtractedReceipt:
    """
    Coerce a receipt payload: {store_name, date, items[{name, amount}], total}.

    A missing total falls back to the sum of the items.

    Raises:
        MalformedExtractionError: If no total can be determined
    """
    notes: list[str] = []

    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list):
        raise MalformedExtractionError("Receipt 'items' is not a list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            notes.append(f"item {index + 1}: skipped, not an object")
            continue
        name = str(raw.get("name") or "").strip()
        amount = _amount_with_note(raw.get("amount"), f"item {index + 1}", notes)
        if amount is None:
            notes.append(f"item {index + 1}: skipped, no usable amount")
            continue
        items.append(ReceiptLineItem(name=name, amount=amount))

    total = _amount_with_note(payload.get("total"), "total", notes)
    if total is None:
        if not items:
            raise MalformedExtractionError("Receipt has neither a total nor any item amounts")
        total = sum(item.amount for item in items)
        notes.append("total: not readable, using the sum of items")

    return ExtractedReceipt(
        store_name=str(payload.get("store_name") or "").strip(),
        date=_date_with_note(payload.get("date"), "date", notes),
        items=items,
        total=total,
        notes=notes,
    )


def parse_statement(payload: dict) -> ExtractedStatement:
    """
    Coerce a statement payload: {items[{date, description, amount}]}.

    Rows without a usable amount are dropped and counted in skipped_rows.

    Raises:
        MalformedExtractionError: If 'items' is missing or not a list
    """
    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise MalformedExtractionError("Statement 'items' is missing or not a list")

    lines = []
    skipped = 0
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            skipped += 1
            continue
        notes: list[str] = []
        amount = _amount_with_note(raw.get("amount"), "amount", notes)
        if amount is None:
            skipped += 1
            continue
        lines.append(StatementLine(
            date=_date_with_note(raw.get("date"), "date", notes),
            description=str(raw.get("description") or "").strip(),
            amount=amount,
            notes=notes,
        ))

    return ExtractedStatement(items=lines, skipped_rows=skipped)
