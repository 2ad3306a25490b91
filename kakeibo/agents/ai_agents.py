"""
Extraction Agent (Gemini)

DESIGN DECISION: One vision model does all reading:
1. Receipts → store name, date, line items, total
2. Card statement screenshots → one row per transaction
3. Free-text descriptions → the best-fitting expense account name

CRITICAL BOUNDARIES:
- CAN: Read images and propose data
- CAN: Suggest a category name from the list it is given
- CANNOT: Persist anything (candidates only become journals after review)
- CANNOT: Invent accounts (an unrecognized name falls back deterministically)

The model's answer is untrusted text. It is parsed and coerced by
kakeibo.validation.extraction before anything else sees it.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

import google.generativeai as genai
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from kakeibo.config import GeminiSettings, get_settings
from kakeibo.models.scan import ExtractedReceipt, ExtractedStatement
from kakeibo.validation.extraction import (
    ExtractionError,
    parse_json_payload,
    parse_receipt,
    parse_statement,
)

logger = structlog.get_logger(__name__)


class ExtractionFailedError(ExtractionError):
    """The model call itself failed (network, quota, blocked response)."""
    pass


class ExtractionTimeoutError(ExtractionError):
    """The model did not answer in time."""
    pass


RECEIPT_PROMPT = """このレシート画像を解析して、以下のJSON形式で情報を抽出してください。
金額は整数（円単位）で返してください。日付はYYYY-MM-DD形式で返してください。

{
  "store_name": "店舗名",
  "date": "YYYY-MM-DD",
  "items": [
    { "name": "品目名", "amount": 金額 }
  ],
  "total": 合計金額
}

JSONのみを返してください。説明文は不要です。"""

STATEMENT_PROMPT = """このクレジットカード利用明細のスクリーンショットを解析して、以下のJSON形式で各取引を抽出してください。
金額は整数（円単位）で返してください。日付はYYYY-MM-DD形式で返してください。

{
  "items": [
    { "date": "YYYY-MM-DD", "description": "店舗名・摘要", "amount": 金額 }
  ]
}

JSONのみを返してください。説明文は不要です。"""

CATEGORY_PROMPT = """以下の品目・店舗名に最も適切な費目を、選択肢の中から1つだけ返してください。

品目: "{description}"

選択肢:
{choices}

費目名のみを返してください。説明文は不要です。"""


class ExtractionAgentInterface(ABC):
    """
    The vision/LLM collaborator.

    Implementations raise ExtractionError subclasses and nothing else.
    """

    @abstractmethod
    async def extract_receipt(self, image_bytes: bytes, mime_type: str) -> ExtractedReceipt:
        pass

    @abstractmethod
    async def extract_statement(self, image_bytes: bytes, mime_type: str) -> ExtractedStatement:
        pass

    @abstractmethod
    async def suggest_category(self, description: str, candidate_names: list[str]) -> str:
        """Return one of candidate_names (ideally); callers must not trust it."""
        pass


class GeminiExtractionAgent(ExtractionAgentInterface):
    """
    Gemini implementation of the extraction collaborator.

    Every call is retried on transport errors and bounded by
    request_timeout_seconds; expiry is an ExtractionTimeoutError.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate_with_retry(self, contents: Any) -> str:
        response = await self._model.generate_content_async(contents)
        return response.text

    async def _generate(self, contents: Any, operation: str) -> str:
        try:
            return await asyncio.wait_for(
                self._generate_with_retry(contents),
                timeout=self._settings.request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("gemini_timeout", operation=operation)
            raise ExtractionTimeoutError(
                f"Gemini did not respond within {self._settings.request_timeout_seconds:g}s"
            )
        except Exception as e:
            logger.error("gemini_call_failed", operation=operation, error=str(e))
            raise ExtractionFailedError(f"Gemini {operation} failed: {e}")

    async def extract_receipt(self, image_bytes: bytes, mime_type: str) -> ExtractedReceipt:
        text = await self._generate(
            [RECEIPT_PROMPT, {"mime_type": mime_type or "image/jpeg", "data": image_bytes}],
            operation="receipt extraction",
        )
        receipt = parse_receipt(parse_json_payload(text))
        logger.info("receipt_extracted", items=len(receipt.items), total=receipt.total)
        return receipt

    async def extract_statement(self, image_bytes: bytes, mime_type: str) -> ExtractedStatement:
        text = await self._generate(
            [STATEMENT_PROMPT, {"mime_type": mime_type or "image/jpeg", "data": image_bytes}],
            operation="statement extraction",
        )
        statement = parse_statement(parse_json_payload(text))
        logger.info(
            "statement_extracted",
            rows=len(statement.items),
            skipped_rows=statement.skipped_rows,
        )
        return statement

    async def suggest_category(self, description: str, candidate_names: list[str]) -> str:
        prompt = CATEGORY_PROMPT.format(
            description=description,
            choices="\n".join(f"- {name}" for name in candidate_names),
        )
        text = await self._generate(prompt, operation="category suggestion")
        return text.strip()
