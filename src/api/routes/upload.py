"""
Pet photo upload endpoint.

Photos are stored in R2 so the provider can fetch them by public URL.
"""

import io
import uuid
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from PIL import Image, UnidentifiedImageError
from starlette.requests import Request

from src.api.deps import get_app_config, get_current_user_id, get_storage
from src.api.rate_limit import UPLOAD_LIMIT, limiter
from src.api.schemas import ErrorResponse, UploadResponse
from src.core.config import AppConfig
from src.core.storage import R2Storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Upload"])

UPLOAD_PREFIX = "uploads"

# PIL format name -> (content type, extension)
ALLOWED_FORMATS = {
    "JPEG": ("image/jpeg", "jpg"),
    "PNG": ("image/png", "png"),
    "WEBP": ("image/webp", "webp"),
    "GIF": ("image/gif", "gif"),
}


def detect_image_format(data: bytes) -> Optional[str]:
    """Return the PIL format name for supported images, else None."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError):
        return None
    return fmt if fmt in ALLOWED_FORMATS else None


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}},
)
@limiter.limit(UPLOAD_LIMIT)
async def upload_photo(
    request: Request,
    file: UploadFile = File(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    config: AppConfig = Depends(get_app_config),
    storage: Optional[R2Storage] = Depends(get_storage),
) -> UploadResponse:
    """Upload a pet photo and return its public URL."""
    if storage is None:
        raise HTTPException(status_code=500, detail="Storage not configured")

    max_bytes = config.storage.max_upload_bytes
    data = await file.read(max_bytes + 1)
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB",
        )

    fmt = detect_image_format(data)
    if fmt is None:
        raise HTTPException(status_code=400, detail="File must be a JPEG, PNG, WebP or GIF image")

    content_type, extension = ALLOWED_FORMATS[fmt]
    key = f"{UPLOAD_PREFIX}/{user_id}/{uuid.uuid4().hex}.{extension}"
    try:
        url = await storage.upload_bytes(data, key, content_type=content_type)
    except Exception as e:
        logger.error(f"Upload of {key} failed for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to upload file")
    logger.info(f"Stored upload {key} for user {user_id} ({len(data)} bytes)")

    return UploadResponse(url=url, pathname=key, content_type=content_type)
