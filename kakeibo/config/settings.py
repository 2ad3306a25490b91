"""
Configuration Management for Kakeibo

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudinarySettings(BaseSettings):
    """Cloudinary image hosting configuration (source image references)."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    folder: str = Field(
        default="kakeibo",
        description="Folder that receives uploaded receipts and screenshots"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per record kind
    accounts_sheet_name: str = Field(default="Accounts")
    journals_sheet_name: str = Field(default="Journals")
    entries_sheet_name: str = Field(default="JournalEntries")
    rules_sheet_name: str = Field(default="CategoryRules")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini vision/LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound for a single image extraction call"
    )

    @field_validator('api_key')
    @classmethod
    def reject_placeholder_key(cls, v: str) -> str:
        if not v or v == "YOUR_GEMINI_API_KEY_HERE":
            raise ValueError("Gemini API key is not configured (GEMINI_API_KEY)")
        return v


class LedgerSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Every field has a default so the ledger core runs without any
    external service configured.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported image formats"
    )
    min_image_dimension_px: int = Field(
        default=200,
        ge=1,
        description="Images smaller than this on their short side are rejected"
    )

    # Designated accounts (by code)
    cash_account_code: str = Field(
        default="1001",
        description="Credit side of receipt scans"
    )
    card_account_code: str = Field(
        default="2001",
        description="Credit side of card statement scans"
    )
    fallback_expense_code: str = Field(
        default="5099",
        description="Uncategorized/other expense account"
    )
    receipt_default_expense_code: str = Field(
        default="5001",
        description="Debit side of a receipt when categorization yields nothing"
    )

    # Categorization and rule learning
    categorization_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Upper bound for one category suggestion call"
    )
    rule_keyword_separator: str = Field(
        default=" - ",
        description="Learned keywords keep the description segment before this token"
    )

    # Journal validation and commit policy
    strict_single_sided_entries: bool = Field(
        default=False,
        description="Reject entries carrying both a debit and a credit amount"
    )
    atomic_bulk_commit: bool = Field(
        default=True,
        description="Commit scanned batches all-or-nothing when storage supports it"
    )
    max_amount_yen: int = Field(
        default=10_000_000,
        ge=1,
        description="Amounts above this are flagged for review"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> LedgerSettings:
        return LedgerSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, Optional[object]]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus "<name>_error" entries
    for the sections that failed. Useful for startup checks.
    """
    results: dict[str, Optional[object]] = {}
    settings = get_settings()

    for name in ("cloudinary", "google_sheets", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
