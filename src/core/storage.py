"""
Async Cloudflare R2 storage client (S3-compatible).

Uses aioboto3 so uploads never block the event loop. Objects are served
from a public bucket domain, so every stored key has a stable URL.
"""

import logging

import aioboto3
from botocore.config import Config as BotoConfig

from src.core.config import StorageConfig

logger = logging.getLogger(__name__)


class StorageNotConfiguredError(RuntimeError):
    """Raised when R2 settings are missing."""


class R2Storage:
    """Async wrapper around Cloudflare R2 (S3-compatible) using aioboto3."""

    def __init__(
        self,
        account_id: str,
        access_key_id: str,
        secret_access_key: str,
        bucket_name: str,
        public_base_url: str,
    ):
        self.bucket_name = bucket_name
        self.endpoint_url = f"https://{account_id}.r2.cloudflarestorage.com"
        self.public_base_url = public_base_url.rstrip("/")
        self._session = aioboto3.Session()
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key

    @classmethod
    def from_config(cls, config: StorageConfig) -> "R2Storage":
        if not config.validate():
            raise StorageNotConfiguredError(
                "R2 storage not configured. Set R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, "
                "R2_SECRET_ACCESS_KEY, R2_BUCKET_NAME and R2_PUBLIC_BASE_URL."
            )
        return cls(
            account_id=config.account_id,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
            bucket_name=config.bucket_name,
            public_base_url=config.public_base_url,
        )

    def _client(self):
        """Return an async context-manager S3 client."""
        return self._session.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self._access_key_id,
            aws_secret_access_key=self._secret_access_key,
            config=BotoConfig(signature_version="s3v4"),
        )

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key.lstrip('/')}"

    async def upload_bytes(
        self, data: bytes, key: str, content_type: str = "application/octet-stream"
    ) -> str:
        """Upload raw bytes to R2 and return the object's public URL."""
        async with self._client() as client:
            await client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        logger.debug(f"Uploaded {len(data)} bytes to {key}")
        return self.public_url(key)

    async def delete(self, key: str) -> None:
        """Delete a single object. No error if missing."""
        async with self._client() as client:
            await client.delete_object(Bucket=self.bucket_name, Key=key)

    def key_from_url(self, url: str) -> str | None:
        """Inverse of public_url; None for URLs outside this bucket."""
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix):]
