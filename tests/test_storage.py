"""Tests for profile-picture validation and upload to GCS (client mocked)."""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as gcs_exceptions

from app.errors import StorageUnavailable, UploadRejected
from app.utils import storage


def fake_settings(bucket="cozy-pictures"):
    return SimpleNamespace(
        GCP_PROJECT_ID="cozy-project",
        GCS_BUCKET_NAME=bucket,
        GCS_PICTURE_PREFIX="profile-pictures/",
        MAX_UPLOAD_BYTES=1024,
    )


class TestValidation:

    def test_accepts_images(self):
        for content_type in storage.ALLOWED_IMAGE_TYPES:
            storage.validate_picture(b"x", content_type, 10)

    @pytest.mark.parametrize(
        "data,content_type,message",
        [
            (b"x", "application/pdf", "Unsupported"),
            (b"x", None, "unknown"),
            (b"", "image/png", "empty"),
            (b"x" * 11, "image/png", "too large"),
        ],
    )
    def test_rejections(self, data, content_type, message):
        with pytest.raises(UploadRejected, match=message):
            storage.validate_picture(data, content_type, 10)

    def test_key_extension_follows_content_type(self):
        key = storage.build_picture_key("selfie.PNG", "image/jpeg", prefix="pics/")
        assert key.startswith("pics/")
        assert key.endswith(".jpg")

    def test_keys_are_unique(self):
        keys = {storage.build_picture_key("a.png", "image/png") for _ in range(50)}
        assert len(keys) == 50


class TestUpload:

    @pytest.mark.asyncio
    async def test_uploads_and_returns_public_url(self):
        bucket = MagicMock()
        bucket.name = "cozy-pictures"
        with patch.object(storage, "get_settings", return_value=fake_settings()), \
                patch.object(storage, "get_bucket", return_value=bucket):
            result = await storage.upload_profile_picture(b"\x89PNG", "me.png", "image/png")

        assert result["filename"] == "me.png"
        assert result["key"].startswith("profile-pictures/")
        assert result["url"] == f"https://storage.googleapis.com/cozy-pictures/{result['key']}"
        bucket.blob.assert_called_once_with(result["key"])
        bucket.blob.return_value.upload_from_string.assert_called_once_with(
            b"\x89PNG", content_type="image/png"
        )

    @pytest.mark.asyncio
    async def test_missing_bucket(self):
        with patch.object(storage, "get_settings", return_value=fake_settings(bucket="")):
            with pytest.raises(StorageUnavailable, match="GCS_BUCKET_NAME"):
                await storage.upload_profile_picture(b"\x89PNG", "me.png", "image/png")

    @pytest.mark.asyncio
    async def test_validation_runs_before_bucket_check(self):
        with patch.object(storage, "get_settings", return_value=fake_settings(bucket="")):
            with pytest.raises(UploadRejected):
                await storage.upload_profile_picture(b"hello", "notes.txt", "text/plain")

    @pytest.mark.asyncio
    async def test_gcs_errors_are_wrapped(self):
        bucket = MagicMock()
        bucket.blob.return_value.upload_from_string.side_effect = gcs_exceptions.Forbidden("denied")
        with patch.object(storage, "get_settings", return_value=fake_settings()), \
                patch.object(storage, "get_bucket", return_value=bucket):
            with pytest.raises(StorageUnavailable, match="upload failed"):
                await storage.upload_profile_picture(b"\x89PNG", "me.png", "image/png")
