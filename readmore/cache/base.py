"""Cache contract shared by every storage adapter."""

from __future__ import annotations

import abc
import hashlib
import json
import time
from typing import Any, Dict, Optional
from urllib.parse import urldefrag

from ..config import DEFAULT_CACHE_DURATION_MS
from ..document import CacheEntry, Snapshot


def now_ms() -> int:
    return int(time.time() * 1000)


def url_digest(url: str) -> str:
    """Cache key for ``url``: MD5 of the lowercased URL without its fragment."""
    without_fragment, _ = urldefrag(url)
    return hashlib.md5(without_fragment.lower().encode("utf-8")).hexdigest()


def dump_entry(entry: CacheEntry) -> bytes:
    return json.dumps(entry.to_dict(), ensure_ascii=False).encode("utf-8")


def load_entry(payload: bytes | str) -> CacheEntry:
    data: Dict[str, Any] = json.loads(payload)
    return CacheEntry.from_dict(data)


class Cache(abc.ABC):
    """Key/value store of :class:`CacheEntry` objects keyed by URL digest.

    Adapters raise :class:`readmore.errors.CacheConfigError` from
    ``__init__`` when required settings are missing and
    :class:`readmore.errors.CacheError` on backend failures.
    """

    name = "base"

    def __init__(self, duration_ms: int = DEFAULT_CACHE_DURATION_MS) -> None:
        self.duration_ms = duration_ms

    def build_entry(
        self, url: str, key: str, snapshot: Snapshot, created_at: Optional[int] = None
    ) -> CacheEntry:
        created = now_ms() if created_at is None else created_at
        return CacheEntry(
            url=url,
            created_at=created,
            expire_at=created + self.duration_ms,
            url_digest=key,
            snapshot=snapshot,
        )

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Stored entry for ``key``, or None."""

    @abc.abstractmethod
    async def save(self, url: str, key: str, snapshot: Snapshot) -> None:
        """Store ``snapshot`` under ``key`` with a fresh expiry."""

    @abc.abstractmethod
    async def remove(self, key: str) -> None:
        """Delete the entry for ``key`` if present."""

    async def close(self) -> None:
        """Release backend connections."""
