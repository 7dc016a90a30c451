"""S3-compatible object store adapter (AWS S3 or DigitalOcean Spaces).

Presigned GET URLs are generated locally by boto3; the bytes are then
streamed over HTTP with a shared httpx client, the same way any other
short-lived URL would be fetched.
"""

import asyncio
from typing import AsyncIterator, Optional

import httpx

from constants import STREAM_CHUNK_SIZE
from core.config import Settings
from core.logging import get_logger

logger = get_logger(__name__)



class ObjectStoreNotConfigured(RuntimeError):
    """S3 bucket or credentials are missing."""


class S3ObjectStore:
    """Resolves object keys to presigned URLs and streams their bytes."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.bucket = settings.s3_bucket_name
        self.url_expiry = settings.s3_url_expiry
        self._client = None
        self._http = http_client
        self._owns_http = http_client is None

    def _s3(self):
        if self._client is None:
            if not self.bucket:
                raise ObjectStoreNotConfigured("S3_BUCKET_NAME is not set")
            import boto3

            self._client = boto3.client(
                "s3",
                region_name=self.settings.s3_region,
                endpoint_url=self.settings.s3_endpoint or None,
                aws_access_key_id=self.settings.s3_access_key_id,
                aws_secret_access_key=self.settings.s3_secret_access_key,
            )
        return self._client

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            timeout = httpx.Timeout(self.settings.item_fetch_timeout)
            self._http = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        return self._http

    async def resolve_download_location(self, object_key: str) -> str:
        """Presigned GET URL for ``object_key``, valid for ``S3_URL_EXPIRY`` seconds."""
        client = self._s3()
        return await asyncio.to_thread(
            client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": object_key},
            ExpiresIn=self.url_expiry,
        )

    async def fetch_bytes(self, url: str) -> AsyncIterator[bytes]:
        """Stream the body at ``url``; non-2xx responses raise ``httpx.HTTPStatusError``."""
        async with self._http_client().stream("GET", url) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes(STREAM_CHUNK_SIZE):
                yield chunk

    async def check_connection(self) -> bool:
        """Preflight: confirm the bucket is reachable with the configured credentials."""
        if not self.bucket:
            logger.warning("S3 preflight skipped, S3_BUCKET_NAME not configured")
            return False
        try:
            await asyncio.to_thread(self._s3().head_bucket, Bucket=self.bucket)
        except Exception as e:
            logger.error("S3 preflight failed",
                         bucket=self.bucket,
                         endpoint=self.settings.s3_endpoint or "AWS S3 (default)",
                         error=f"{type(e).__name__}: {e}")
            return False
        logger.info("S3 preflight passed",
                    bucket=self.bucket,
                    region=self.settings.s3_region,
                    endpoint=self.settings.s3_endpoint or "AWS S3 (default)")
        return True

    async def close(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
