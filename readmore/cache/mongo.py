"""MongoDB cache: one document per URL digest."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from ..config import Settings
from ..document import CacheEntry, Snapshot
from ..errors import CacheConfigError, CacheError
from .base import Cache

LOGGER = logging.getLogger(__name__)

DEFAULT_DATABASE = "readmore"
SERVER_SELECTION_TIMEOUT_MS = 5000


class MongoCache(Cache):
    """Documents are shaped like :meth:`CacheEntry.to_dict` and upserted on ``urlDigest``.

    The client connects on first use and is reused afterwards; pymongo
    pools connections internally, so calls from worker threads need no
    extra locking.
    """

    name = "mongo"

    def __init__(
        self, settings: Settings, client: Optional[MongoClient] = None
    ) -> None:
        super().__init__(settings.cache_duration_ms)
        if not settings.mongo_url:
            raise CacheConfigError("MONGO_URL is required for the mongo cache")
        if not settings.mongo_collection:
            raise CacheConfigError("MONGO_COLLECTION is required for the mongo cache")
        self._url = settings.mongo_url
        self._collection_name = settings.mongo_collection
        self._client = client
        self._collection: Optional[Collection] = None
        self._lock = threading.Lock()

    def _get_collection(self) -> Collection:
        with self._lock:
            if self._collection is None:
                if self._client is None:
                    self._client = MongoClient(
                        self._url, serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS
                    )
                    LOGGER.info("Connected Mongo cache client")
                database = self._client.get_default_database(default=DEFAULT_DATABASE)
                self._collection = database[self._collection_name]
            return self._collection

    async def get(self, key: str) -> Optional[CacheEntry]:
        document = await self._run(self._find, key)
        if document is None:
            return None
        return CacheEntry.from_dict(document)

    async def save(self, url: str, key: str, snapshot: Snapshot) -> None:
        entry = self.build_entry(url, key, snapshot)
        await self._run(self._upsert, key, entry.to_dict())

    async def remove(self, key: str) -> None:
        await self._run(self._delete, key)

    async def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
            self._collection = None
        if client is not None:
            await asyncio.to_thread(client.close)

    async def _run(self, func: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except PyMongoError as exc:
            raise CacheError(f"Mongo cache operation failed: {exc}") from exc

    def _find(self, key: str) -> Optional[Dict[str, Any]]:
        return self._get_collection().find_one({"urlDigest": key}, {"_id": 0})

    def _upsert(self, key: str, document: Dict[str, Any]) -> None:
        self._get_collection().update_one(
            {"urlDigest": key}, {"$set": document}, upsert=True
        )

    def _delete(self, key: str) -> None:
        self._get_collection().delete_many({"urlDigest": key})
