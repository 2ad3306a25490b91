"""
Shared fixtures.

No network in tests: the extraction agent is a fake and the ledger lives
in InMemoryLedgerStorage. Async code is driven with asyncio.run.
"""

import asyncio
from io import BytesIO
from typing import Optional

import pytest
from PIL import Image, ImageDraw

from kakeibo.agents import ExtractionAgentInterface, ExtractionFailedError
from kakeibo.audit import AuditLogger
from kakeibo.config import LedgerSettings
from kakeibo.ledger.service import LedgerService
from kakeibo.models import Account, ExtractedReceipt, ExtractedStatement
from kakeibo.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage

OWNER = "user-1"


class FakeExtractionAgent(ExtractionAgentInterface):
    """Returns canned extraction results and records every call."""

    def __init__(
        self,
        receipt: Optional[ExtractedReceipt] = None,
        statement: Optional[ExtractedStatement] = None,
        suggestion: str = "",
        error: Optional[Exception] = None,
        suggestion_error: Optional[Exception] = None,
    ):
        self.receipt = receipt
        self.statement = statement
        self.suggestion = suggestion
        self.error = error
        self.suggestion_error = suggestion_error
        self.calls: list[tuple] = []

    async def extract_receipt(self, image_bytes, mime_type):
        self.calls.append(("extract_receipt", mime_type))
        if self.error:
            raise self.error
        if self.receipt is None:
            raise ExtractionFailedError("no receipt configured")
        return self.receipt

    async def extract_statement(self, image_bytes, mime_type):
        self.calls.append(("extract_statement", mime_type))
        if self.error:
            raise self.error
        if self.statement is None:
            raise ExtractionFailedError("no statement configured")
        return self.statement

    async def suggest_category(self, description, candidate_names):
        self.calls.append(("suggest_category", description, tuple(candidate_names)))
        if self.suggestion_error:
            raise self.suggestion_error
        return self.suggestion


def make_image(width: int = 800, height: int = 1200, fmt: str = "PNG") -> bytes:
    """A readable-looking test image: grey paper with dark text lines."""
    img = Image.new("RGB", (width, height), color=(180, 180, 175))
    draw = ImageDraw.Draw(img)
    for y in range(40, height - 40, 60):
        draw.rectangle([40, y, width - 40, y + 20], fill=(20, 20, 20))
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def owner_id() -> str:
    return OWNER


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(_env_file=None)


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def ledger(storage, audit_logger, settings) -> LedgerService:
    return LedgerService(storage, audit_logger=audit_logger, settings=settings)


@pytest.fixture
def accounts(ledger, owner_id) -> dict[str, Account]:
    """The default chart of accounts, keyed by code."""
    seeded = run(ledger.seed_default_accounts(owner_id))
    return {account.code: account for account in seeded}


@pytest.fixture
def image_bytes() -> bytes:
    return make_image()
