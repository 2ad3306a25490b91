"""AI Agents package."""

from kakeibo.agents.ai_agents import (
    ExtractionAgentInterface,
    ExtractionFailedError,
    ExtractionTimeoutError,
    GeminiExtractionAgent,
)
from kakeibo.validation.extraction import ExtractionError, MalformedExtractionError

__all__ = [
    "ExtractionAgentInterface",
    "ExtractionError",
    "ExtractionFailedError",
    "ExtractionTimeoutError",
    "GeminiExtractionAgent",
    "MalformedExtractionError",
]
