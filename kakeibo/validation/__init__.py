"""Validation package: journal validation and extraction boundary coercion."""

from kakeibo.validation.extraction import (
    ExtractionError,
    MalformedExtractionError,
    coerce_amount,
    coerce_date,
    parse_json_payload,
    parse_receipt,
    parse_statement,
    strip_code_fences,
)
from kakeibo.validation.validator import JournalValidator

__all__ = [
    "ExtractionError",
    "JournalValidator",
    "MalformedExtractionError",
    "coerce_amount",
    "coerce_date",
    "parse_json_payload",
    "parse_receipt",
    "parse_statement",
    "strip_code_fences",
]
