"""Services package."""

from kakeibo.services.image import (
    CloudinaryImageHost,
    ImageHostInterface,
    ImageInspection,
    ImageUploadError,
    inspect_image,
)
from kakeibo.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    ReferentialIntegrityError,
    StorageError,
)

__all__ = [
    # Image services
    "CloudinaryImageHost",
    "ImageHostInterface",
    "ImageInspection",
    "ImageUploadError",
    "inspect_image",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "ReferentialIntegrityError",
    "StorageError",
]
