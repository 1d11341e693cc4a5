"""In-process cache, mostly useful for single-process deployments and tests."""

from __future__ import annotations

from typing import Dict, Optional

from ..document import CacheEntry, Snapshot
from .base import Cache, dump_entry, load_entry


class MemoryCache(Cache):
    name = "memory"

    def __init__(self, duration_ms: int) -> None:
        super().__init__(duration_ms)
        # Serialized payloads, so callers never share mutable state.
        self._entries: Dict[str, bytes] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get(self, key: str) -> Optional[CacheEntry]:
        payload = self._entries.get(key)
        if payload is None:
            return None
        return load_entry(payload)

    async def save(self, url: str, key: str, snapshot: Snapshot) -> None:
        self._entries[key] = dump_entry(self.build_entry(url, key, snapshot))

    def put(self, entry: CacheEntry) -> None:
        """Store a prebuilt entry as is."""
        self._entries[entry.url_digest] = dump_entry(entry)

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)
