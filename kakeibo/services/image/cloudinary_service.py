"""
Source Image Hosting using Cloudinary

DESIGN DECISION: We use Cloudinary because:
1. Reliable cloud infrastructure
2. Simple API
3. Free tier sufficient for personal use

A journal created from a scan keeps a reference (the secure URL) to the
image it was read from, so the reviewer can look at it again later.
Hosting is optional: without it, scans still work and journals simply
carry no source_image_ref.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from kakeibo.config import CloudinarySettings, get_settings

logger = structlog.get_logger(__name__)


class ImageUploadError(Exception):
    """Failed to upload image to the image host."""
    pass


class ImageHostInterface(ABC):
    """Stores a source image and returns a reference to it."""

    @abstractmethod
    async def upload(self, image_bytes: bytes, session_id: UUID, filename: str) -> str:
        """
        Raises:
            ImageUploadError: If the upload fails
        """
        pass


class CloudinaryImageHost(ImageHostInterface):
    """Uploads scanned images to Cloudinary."""

    def __init__(self, settings: Optional[CloudinarySettings] = None):
        self._settings = settings or get_settings().cloudinary
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def _generate_public_id(self, session_id: UUID, filename: str) -> str:
        """
        Generate a unique public ID for Cloudinary.

        Format: {session_id}_{filename_hash}
        """
        filename_hash = hashlib.md5(filename.encode()).hexdigest()[:8]
        return f"{session_id}_{filename_hash}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upload(self, image_bytes: bytes, session_id: UUID, filename: str) -> str:
        self._configure()
        try:
            result = cloudinary.uploader.upload(
                image_bytes,
                public_id=self._generate_public_id(session_id, filename),
                folder=self._settings.folder,
                resource_type="image",
            )
        except cloudinary.exceptions.Error as e:
            raise ImageUploadError(f"Cloudinary error: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise ImageUploadError("No URL returned from Cloudinary")

        logger.info("source_image_uploaded", session_id=str(session_id), url=url)
        return url
