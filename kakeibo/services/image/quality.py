"""
Source Image Inspection

Runs before any extraction call. Some problems make an image unusable
(wrong format, too large, not decodable, too small to read) and stop the
scan. Everything else is a heuristic warning shown to the reviewer.

DESIGN DECISION: We use simple PIL heuristics rather than ML-based quality
assessment because:
1. Lower latency
2. More predictable behavior
3. No additional API costs
4. The vision model and the human reviewer catch the rest
"""

from io import BytesIO
from pathlib import PurePath
from typing import Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field

from kakeibo.config import LedgerSettings, get_settings


class ImageInspection(BaseModel):
    """Result of inspecting one uploaded image."""

    mime_type: str
    size_bytes: int
    width: Optional[int] = None
    height: Optional[int] = None
    blocking_issues: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_acceptable(self) -> bool:
        return not self.blocking_issues


def _format_of(mime_type: str, filename: str) -> str:
    if mime_type and "/" in mime_type:
        return mime_type.split("/", 1)[1].lower()
    return PurePath(filename).suffix.lstrip(".").lower()


def _histogram_warnings(img: Image.Image) -> list[str]:
    warnings = []
    gray = img if img.mode == "L" else img.convert("L")
    histogram = gray.histogram()
    total_pixels = sum(histogram) or 1

    if sum(histogram[:50]) / total_pixels > 0.7:
        warnings.append("Image is very dark - please take photo in better lighting")
    if sum(histogram[200:]) / total_pixels > 0.7:
        warnings.append("Image is overexposed - please reduce lighting or angle")

    # Range of pixel values that holds the middle 90% of pixels
    cumsum = 0
    low_percentile = 0
    high_percentile = 255
    for i, count in enumerate(histogram):
        cumsum += count
        if cumsum >= total_pixels * 0.05 and low_percentile == 0:
            low_percentile = i
        if cumsum >= total_pixels * 0.95:
            high_percentile = i
            break
    if high_percentile - low_percentile < 50:
        warnings.append("Image has very low contrast - text may be hard to read")

    return warnings


def inspect_image(
    image_bytes: bytes,
    mime_type: str,
    filename: str = "",
    settings: Optional[LedgerSettings] = None,
) -> ImageInspection:
    """Check format, size, decodability and readability of an uploaded image."""
    settings = settings or get_settings().app
    inspection = ImageInspection(mime_type=mime_type, size_bytes=len(image_bytes))

    image_format = _format_of(mime_type, filename)
    if image_format not in settings.supported_formats_list:
        inspection.blocking_issues.append(
            f"Unsupported image format '{image_format or 'unknown'}' "
            f"(supported: {', '.join(settings.supported_formats_list)})"
        )
        return inspection

    if inspection.size_bytes > settings.max_upload_size_bytes:
        inspection.blocking_issues.append(
            f"Image is larger than {settings.max_upload_size_mb} MB"
        )
        return inspection

    try:
        img = Image.open(BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        inspection.blocking_issues.append(f"Image could not be decoded: {e}")
        return inspection

    inspection.width, inspection.height = img.size
    short_side = min(img.size)

    if short_side < settings.min_image_dimension_px:
        inspection.blocking_issues.append(
            f"Image resolution too low (minimum {settings.min_image_dimension_px}px "
            "on smallest side)"
        )
        return inspection

    if short_side < 500:
        inspection.warnings.append("Image resolution is low, text may be hard to read")

    # Long receipts are legitimately tall; only flag extreme ratios
    if max(img.size) / short_side > 8:
        inspection.warnings.append("Unusual aspect ratio - image may be cropped incorrectly")

    inspection.warnings.extend(_histogram_warnings(img))
    return inspection
