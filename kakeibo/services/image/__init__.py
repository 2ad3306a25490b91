"""Image services package: inspection before extraction and source image hosting."""

from kakeibo.services.image.cloudinary_service import (
    CloudinaryImageHost,
    ImageHostInterface,
    ImageUploadError,
)
from kakeibo.services.image.quality import ImageInspection, inspect_image

__all__ = [
    "CloudinaryImageHost",
    "ImageHostInterface",
    "ImageInspection",
    "ImageUploadError",
    "inspect_image",
]
