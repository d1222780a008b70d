import asyncio
import os
import secrets
import time
from typing import Optional

from google.api_core import exceptions as gcs_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage as gcs_storage

from app.config import get_settings
from app.errors import StorageUnavailable, UploadRejected

# Content type -> file extension used in the object key.
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
}

def get_storage_client():
    return gcs_storage.Client(project=get_settings().GCP_PROJECT_ID or None)

def get_bucket(bucket_name: Optional[str] = None):
    client = get_storage_client()
    return client.bucket(bucket_name or get_settings().GCS_BUCKET_NAME)

def public_url(bucket_name: str, path: str) -> str:
    return f"https://storage.googleapis.com/{bucket_name}/{path}"

def upload_file(path: str, file_bytes: bytes, content_type: str = "application/octet-stream", bucket_name: Optional[str] = None) -> str:
    """Upload file to GCS bucket. Returns the object's public URL."""
    bucket = get_bucket(bucket_name)
    blob = bucket.blob(path)
    blob.upload_from_string(file_bytes, content_type=content_type)
    return public_url(bucket.name, path)

def build_picture_key(filename: str, content_type: str, prefix: str = "profile-pictures/") -> str:
    """``<prefix><millis>-<random>.<ext>``; the extension follows the content type."""
    ext = ALLOWED_IMAGE_TYPES.get(content_type) or os.path.splitext(filename)[1].lstrip(".").lower() or "bin"
    return f"{prefix}{int(time.time() * 1000)}-{secrets.token_hex(6)}.{ext}"

def validate_picture(file_bytes: bytes, content_type: Optional[str], max_bytes: int) -> None:
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise UploadRejected(f"Unsupported file type: {content_type or 'unknown'}. Please upload an image.")
    if not file_bytes:
        raise UploadRejected("Uploaded file is empty")
    if len(file_bytes) > max_bytes:
        raise UploadRejected(f"File too large: limit is {max_bytes // (1024 * 1024)} MB")

async def upload_profile_picture(file_bytes: bytes, filename: str, content_type: Optional[str]) -> dict:
    """Validate and store a profile picture. Returns ``{url, key, filename}``."""
    settings = get_settings()
    validate_picture(file_bytes, content_type, settings.MAX_UPLOAD_BYTES)
    if not settings.GCS_BUCKET_NAME:
        raise StorageUnavailable("Picture storage not configured: GCS_BUCKET_NAME is missing")

    key = build_picture_key(filename, content_type, settings.GCS_PICTURE_PREFIX)
    try:
        # The GCS SDK is blocking.
        url = await asyncio.to_thread(upload_file, key, file_bytes, content_type)
    except (gcs_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as exc:
        raise StorageUnavailable(f"Picture upload failed: {exc}") from exc
    return {"url": url, "key": key, "filename": filename}
