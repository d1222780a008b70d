"""
Cozy Connect — Profile picture upload API
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, File, UploadFile

from app.api.deps import get_current_email
from app.config import get_settings
from app.errors import UploadRejected
from app.schemas.profile import UploadResponse
from app.utils.storage import upload_profile_picture

logger = structlog.get_logger("cozy.api.upload")

router = APIRouter()


@router.post("", response_model=UploadResponse, summary="Upload a profile picture")
async def upload_picture(
    file: UploadFile = File(..., description="Image file (JPEG, PNG, GIF, WebP or HEIC)"),
    email: str = Depends(get_current_email),
) -> UploadResponse:
    max_bytes = get_settings().MAX_UPLOAD_BYTES
    # Read one byte past the limit so oversize files are detected without
    # buffering all of them.
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadRejected(f"File too large: limit is {max_bytes // (1024 * 1024)} MB")

    result = await upload_profile_picture(data, file.filename or "upload", file.content_type)
    logger.info("picture_uploaded", email=email, key=result["key"], size_bytes=len(data))
    return UploadResponse(**result)
