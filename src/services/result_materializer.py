"""
Copies provider result images into our own storage.

Provider result URLs expire, so a task is only considered successful once
its image has been re-uploaded to R2 under a name we control.
"""

import io
import logging
import secrets
import string
import time
from typing import Optional

import httpx
from PIL import Image, UnidentifiedImageError

from src.core.retry import async_retry
from src.core.storage import R2Storage

logger = logging.getLogger(__name__)

RESULT_PREFIX = "generated"
_BASE36 = string.digits + string.ascii_lowercase


class MaterializationError(Exception):
    """Raised when a result image cannot be downloaded or stored."""


def generate_result_key(prefix: str = RESULT_PREFIX, extension: str = "png") -> str:
    """``{prefix}/{epoch_ms}-{6 random base36 chars}.{extension}``"""
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}/{timestamp}-{suffix}.{extension}"


def normalize_image_bytes(raw: bytes) -> bytes:
    """Validate image bytes with PIL and re-encode as PNG.

    Providers may hand back WebP or JPEG regardless of the requested output
    format; storing PNG keeps the stored name and content type honest.
    """
    img = Image.open(io.BytesIO(raw))
    img.load()  # force full decode, raises early on corrupt data
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class ResultMaterializer:
    """Download a remote result and persist it to durable storage."""

    def __init__(self, storage: Optional[R2Storage], client: httpx.AsyncClient):
        self.storage = storage
        self._client = client

    @async_retry(max_attempts=3, backoff_base=1.0, retry_on=(httpx.TransportError,))
    async def _download(self, url: str) -> httpx.Response:
        return await self._client.get(url, follow_redirects=True)

    async def save_result_image(self, remote_url: str) -> str:
        """Return the durable URL of the stored copy. Raises MaterializationError."""
        if self.storage is None:
            raise MaterializationError("R2 storage is not configured")

        try:
            response = await self._download(remote_url)
        except httpx.HTTPError as e:
            raise MaterializationError(f"Failed to download image: {e}") from e

        if response.status_code >= 400:
            raise MaterializationError(f"Failed to download image: {response.status_code}")
        if not response.content:
            raise MaterializationError("Downloaded image is empty")

        try:
            image_bytes = normalize_image_bytes(response.content)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise MaterializationError(f"Downloaded file is not a valid image: {e}") from e

        key = generate_result_key()
        try:
            url = await self.storage.upload_bytes(image_bytes, key, content_type="image/png")
        except Exception as e:
            raise MaterializationError(f"Failed to store image: {e}") from e

        logger.info(f"Stored result image {key} ({len(image_bytes)} bytes)")
        return url

    async def discard(self, durable_url: str) -> None:
        """Best-effort removal of a stored copy that lost a completion race."""
        if self.storage is None:
            return
        key = self.storage.key_from_url(durable_url)
        if key is None:
            return
        try:
            await self.storage.delete(key)
        except Exception as e:
            logger.warning(f"Failed to delete orphaned result {key}: {e}")
