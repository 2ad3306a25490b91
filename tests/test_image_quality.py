"""
Tests for source image inspection.
"""

from io import BytesIO

from PIL import Image

from conftest import make_image
from kakeibo.config import LedgerSettings
from kakeibo.services.image import inspect_image


def solid(width: int, height: int, color, fmt: str = "PNG") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color=color).save(buffer, format=fmt)
    return buffer.getvalue()


class TestBlockingIssues:
    """Problems that stop a scan before extraction."""

    def test_good_image(self, settings):
        inspection = inspect_image(make_image(), "image/png", "receipt.png", settings)
        assert inspection.is_acceptable
        assert inspection.warnings == []
        assert (inspection.width, inspection.height) == (800, 1200)

    def test_jpeg(self, settings):
        inspection = inspect_image(make_image(fmt="JPEG"), "image/jpeg", "receipt.jpg", settings)
        assert inspection.is_acceptable

    def test_unsupported_format(self, settings):
        inspection = inspect_image(b"%PDF-1.4", "application/pdf", "statement.pdf", settings)
        assert not inspection.is_acceptable
        assert "Unsupported image format 'pdf'" in inspection.blocking_issues[0]

    def test_format_from_filename(self, settings):
        inspection = inspect_image(make_image(), "", "receipt.png", settings)
        assert inspection.is_acceptable

    def test_too_large(self):
        settings = LedgerSettings(_env_file=None, max_upload_size_mb=1)
        oversized = b"\x00" * (1024 * 1024 + 1)
        inspection = inspect_image(oversized, "image/png", "big.png", settings)
        assert inspection.blocking_issues == ["Image is larger than 1 MB"]

    def test_not_an_image(self, settings):
        inspection = inspect_image(b"definitely not a png", "image/png", "x.png", settings)
        assert not inspection.is_acceptable
        assert inspection.blocking_issues[0].startswith("Image could not be decoded")

    def test_too_small(self, settings):
        inspection = inspect_image(make_image(150, 150), "image/png", "tiny.png", settings)
        assert not inspection.is_acceptable
        assert "resolution too low" in inspection.blocking_issues[0]


class TestWarnings:
    """Heuristics shown to the reviewer without stopping the scan."""

    def test_low_resolution(self, settings):
        inspection = inspect_image(make_image(400, 600), "image/png", "x.png", settings)
        assert inspection.is_acceptable
        assert any("resolution is low" in w for w in inspection.warnings)

    def test_extreme_aspect_ratio(self, settings):
        inspection = inspect_image(make_image(500, 4500), "image/png", "long.png", settings)
        assert any("aspect ratio" in w for w in inspection.warnings)

    def test_dark_image(self, settings):
        inspection = inspect_image(solid(800, 800, (10, 10, 10)), "image/png", "x.png", settings)
        assert inspection.is_acceptable
        assert any("very dark" in w for w in inspection.warnings)

    def test_overexposed_image(self, settings):
        inspection = inspect_image(solid(800, 800, (250, 250, 250)), "image/png", "x.png", settings)
        assert any("overexposed" in w for w in inspection.warnings)

    def test_low_contrast(self, settings):
        inspection = inspect_image(solid(800, 800, (128, 128, 128)), "image/png", "x.png", settings)
        assert any("low contrast" in w for w in inspection.warnings)
