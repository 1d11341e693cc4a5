"""Supabase Storage cache, talking to the Storage REST API with httpx."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import Settings
from ..document import CacheEntry, Snapshot
from ..errors import CacheConfigError, CacheError
from .base import Cache, dump_entry, load_entry

LOGGER = logging.getLogger(__name__)

STORAGE_PATH = "/storage/v1/object"
# Storage answers a missing object with 400 "Object not found" on some versions.
_MISSING_STATUSES = frozenset({400, 404})


class SupabaseCache(Cache):
    """Entries are ``<digest>.json`` blobs inside one bucket."""

    name = "supabase"

    def __init__(
        self, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        super().__init__(settings.cache_duration_ms)
        for env_name, value in (
            ("SUPABASE_URL", settings.supabase_url),
            ("SUPABASE_KEY", settings.supabase_key),
            ("SUPABASE_BUCKET", settings.supabase_bucket),
        ):
            if not value:
                raise CacheConfigError(f"{env_name} is required for the supabase cache")
        self._base_url = str(settings.supabase_url).rstrip("/")
        self._key = str(settings.supabase_key)
        self.bucket = str(settings.supabase_bucket)
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Create the shared client on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self._key}",
                    "apikey": self._key,
                },
                timeout=30.0,
            )
        return self._client

    async def get(self, key: str) -> Optional[CacheEntry]:
        path = f"{STORAGE_PATH}/authenticated/{self.bucket}/{key}.json"
        try:
            response = await self._get_client().get(path)
            if response.status_code in _MISSING_STATUSES:
                return None
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CacheError(
                f"Supabase download of {key} failed: {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise CacheError(f"Supabase download of {key} failed: {exc}") from exc
        return load_entry(response.content)

    async def save(self, url: str, key: str, snapshot: Snapshot) -> None:
        path = f"{STORAGE_PATH}/{self.bucket}/{key}.json"
        body = dump_entry(self.build_entry(url, key, snapshot))
        try:
            response = await self._get_client().post(
                path,
                content=body,
                headers={"Content-Type": "application/json", "x-upsert": "true"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CacheError(
                f"Supabase upload of {key} failed: "
                f"{exc.response.status_code} - {exc.response.text}"
            ) from exc
        except httpx.RequestError as exc:
            raise CacheError(f"Supabase upload of {key} failed: {exc}") from exc

    async def remove(self, key: str) -> None:
        try:
            response = await self._get_client().request(
                "DELETE",
                f"{STORAGE_PATH}/{self.bucket}",
                json={"prefixes": [f"{key}.json"]},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CacheError(f"Supabase delete of {key} failed: {exc}") from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
