"""
Tests for Cloudinary source image hosting, with the SDK upload call faked.
"""

from uuid import uuid4

import cloudinary.exceptions
import cloudinary.uploader
import pytest
from tenacity import stop_after_attempt, wait_none

from conftest import run
from kakeibo.config import CloudinarySettings
from kakeibo.services.image import CloudinaryImageHost, ImageUploadError


@pytest.fixture
def host():
    return CloudinaryImageHost(CloudinarySettings(
        cloud_name="demo",
        api_key="key",
        api_secret="secret",
        folder="kakeibo-test",
    ))


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(CloudinaryImageHost.upload.retry, "wait", wait_none())
    monkeypatch.setattr(CloudinaryImageHost.upload.retry, "stop", stop_after_attempt(1))


class TestCloudinaryImageHost:
    def test_upload_returns_secure_url(self, host, monkeypatch):
        calls = []

        def fake_upload(file, **options):
            calls.append(options)
            return {"secure_url": "https://res.cloudinary.com/demo/receipt.png"}

        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
        session_id = uuid4()

        url = run(host.upload(b"img", session_id, "receipt.png"))

        assert url == "https://res.cloudinary.com/demo/receipt.png"
        assert calls[0]["folder"] == "kakeibo-test"
        assert calls[0]["public_id"].startswith(str(session_id))

    def test_public_id_is_stable_per_filename(self, host):
        session_id = uuid4()
        assert host._generate_public_id(session_id, "a.png") == host._generate_public_id(session_id, "a.png")
        assert host._generate_public_id(session_id, "a.png") != host._generate_public_id(session_id, "b.png")

    def test_sdk_error(self, host, monkeypatch):
        def failing_upload(file, **options):
            raise cloudinary.exceptions.Error("Invalid signature")

        monkeypatch.setattr(cloudinary.uploader, "upload", failing_upload)

        with pytest.raises(ImageUploadError):
            run(host.upload(b"img", uuid4(), "receipt.png"))

    def test_missing_url(self, host, monkeypatch):
        monkeypatch.setattr(cloudinary.uploader, "upload", lambda file, **options: {})

        with pytest.raises(ImageUploadError):
            run(host.upload(b"img", uuid4(), "receipt.png"))
