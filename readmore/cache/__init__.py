"""Result cache: the :class:`Cache` contract and its storage adapters.

Exactly one provider is active per process, chosen by ``CACHE_PROVIDER``::

    cache = create_cache(Settings.from_env())   # None when disabled
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import CACHE_PROVIDERS, Settings
from ..errors import CacheConfigError
from .base import Cache, now_ms, url_digest
from .memory import MemoryCache
from .mongo import MongoCache
from .s3 import S3Cache
from .supabase import SupabaseCache

LOGGER = logging.getLogger(__name__)

__all__ = [
    "Cache",
    "MemoryCache",
    "MongoCache",
    "S3Cache",
    "SupabaseCache",
    "create_cache",
    "now_ms",
    "url_digest",
]


def create_cache(settings: Settings) -> Optional[Cache]:
    """Build the configured cache adapter, or None for ``none``.

    Raises:
        CacheConfigError: For an unknown provider or missing adapter settings.
    """
    provider = settings.cache_provider
    if provider == "none":
        return None
    if provider == "memory":
        cache: Cache = MemoryCache(settings.cache_duration_ms)
    elif provider == "s3":
        cache = S3Cache(settings)
    elif provider == "mongo":
        cache = MongoCache(settings)
    elif provider == "supabase":
        cache = SupabaseCache(settings)
    else:
        raise CacheConfigError(
            f"Unknown CACHE_PROVIDER {provider!r}; expected one of "
            f"{', '.join(CACHE_PROVIDERS)}"
        )
    LOGGER.info("Using %s cache (duration %d ms)", cache.name, cache.duration_ms)
    return cache
