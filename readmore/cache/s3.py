"""S3-compatible object storage cache (AWS S3, Cloudflare R2, MinIO)."""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Optional
from urllib.parse import urlsplit

from minio import Minio
from minio.error import S3Error

from ..config import Settings
from ..document import CacheEntry, Snapshot
from ..errors import CacheConfigError, CacheError
from .base import Cache, dump_entry, load_entry

LOGGER = logging.getLogger(__name__)

CONTENT_TYPE = "application/json;charset=UTF-8"
_MISSING_CODES = frozenset({"NoSuchKey", "NoSuchObject"})


def _split_endpoint(endpoint: str) -> tuple[str, bool]:
    """``https://host:port`` to ``("host:port", True)``; bare hosts are secure."""
    if "://" not in endpoint:
        return endpoint.strip("/"), True
    parts = urlsplit(endpoint)
    return parts.netloc, parts.scheme == "https"


class S3Cache(Cache):
    """One JSON object per digest; the Minio client is synchronous and runs in threads."""

    name = "s3"

    def __init__(self, settings: Settings, client: Optional[Minio] = None) -> None:
        super().__init__(settings.cache_duration_ms)
        for env_name, value in (
            ("S3_ENDPOINT", settings.s3_endpoint),
            ("S3_ACCESS_KEY_ID", settings.s3_access_key_id),
            ("S3_SECRET_ACCESS_KEY", settings.s3_secret_access_key),
            ("S3_BUCKET", settings.s3_bucket),
        ):
            if not value:
                raise CacheConfigError(f"{env_name} is required for the s3 cache")

        self.bucket = str(settings.s3_bucket)
        if client is None:
            endpoint, secure = _split_endpoint(str(settings.s3_endpoint))
            client = Minio(
                endpoint=endpoint,
                access_key=settings.s3_access_key_id,
                secret_key=settings.s3_secret_access_key,
                secure=secure,
                region=settings.s3_region,
            )
        self._client = client

    async def get(self, key: str) -> Optional[CacheEntry]:
        payload = await asyncio.to_thread(self._read, key)
        if payload is None:
            return None
        return load_entry(payload)

    async def save(self, url: str, key: str, snapshot: Snapshot) -> None:
        body = dump_entry(self.build_entry(url, key, snapshot))
        await asyncio.to_thread(self._write, key, body)

    async def remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.remove_object, bucket_name=self.bucket, object_name=key
            )
        except S3Error as exc:
            raise CacheError(f"S3 delete of {key} failed: {exc}") from exc

    def _read(self, key: str) -> Optional[bytes]:
        try:
            response = self._client.get_object(bucket_name=self.bucket, object_name=key)
        except S3Error as exc:
            if exc.code in _MISSING_CODES:
                return None
            raise CacheError(f"S3 read of {key} failed: {exc}") from exc
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def _write(self, key: str, body: bytes) -> None:
        try:
            self._client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(body),
                length=len(body),
                content_type=CONTENT_TYPE,
            )
        except S3Error as exc:
            raise CacheError(f"S3 write of {key} failed: {exc}") from exc
