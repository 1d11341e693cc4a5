"""Long-lived composition of engine, pool, cache, crawler and formatter."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

from .browser import BrowserEngine
from .cache import Cache, create_cache
from .config import (
    ACQUIRE_TIMEOUT_SECONDS,
    MIN_POOL_SIZE,
    Settings,
    compute_max_pool_size,
)
from .crawl import PageCrawler
from .document import CrawlOptions, FormattedContent
from .errors import CrawlError
from .markdown import ContentFormatter
from .pool import WorkerPool
from .urls import normalize_url

LOGGER = logging.getLogger(__name__)

_UNSET: Any = object()


class ReadMoreService:
    """Owns the process-wide crawl resources.

    Construct once, ``await start()`` (or use ``async with``), then call
    :meth:`read_url` from as many concurrent tasks as needed.

    Raises:
        CacheConfigError: From the constructor, when the selected cache
            provider is unknown or misconfigured.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        engine: Optional[BrowserEngine] = None,
        cache: Optional[Cache] = _UNSET,
        formatter: Optional[ContentFormatter] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.engine = engine or BrowserEngine()
        self.cache = create_cache(self.settings) if cache is _UNSET else cache
        max_size = self.settings.max_workers or compute_max_pool_size()
        self.pool: WorkerPool = WorkerPool(
            self.engine,
            max_size=max_size,
            min_size=MIN_POOL_SIZE,
            acquire_timeout=ACQUIRE_TIMEOUT_SECONDS,
        )
        self.crawler = PageCrawler(
            self.pool,
            self.cache,
            engine=self.engine,
            archive_url=self.settings.archive_url,
        )
        self.formatter = formatter or ContentFormatter()

    async def start(self) -> None:
        """Launch the engine and warm the pool; partial starts are undone.

        Raises:
            EngineUnavailableError: If the browser cannot be launched.
        """
        try:
            await self.engine.start()
            await self.pool.start()
        except BaseException:
            await self.close()
            raise
        LOGGER.info("Crawl service ready (max %d workers)", self.pool.max_size)

    async def close(self) -> None:
        await self.pool.close()
        await self.engine.close()
        if self.cache is not None:
            await self.cache.close()

    async def __aenter__(self) -> "ReadMoreService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def read(
        self, url: str, options: Optional[CrawlOptions] = None
    ) -> FormattedContent:
        """Crawl ``url`` and format the result.

        Raises:
            ClientInputError: If ``url`` is not a valid http(s) URL.
            CrawlError: If the crawl failed.
        """
        options = options or CrawlOptions()
        target = normalize_url(url)
        snapshot = await self.crawler.crawl(target, options)
        if snapshot is None:
            raise CrawlError("Failed to crawl", url=target)
        formatted = await self.formatter.format(snapshot, target)
        formatted.screenshot = snapshot.screenshot
        return formatted

    async def read_url(
        self, url: str, options: Optional[CrawlOptions] = None
    ) -> Union[str, Dict[str, Any]]:
        """Text rendering when ``options.markdown``, else the structured dict."""
        options = options or CrawlOptions()
        formatted = await self.read(url, options)
        if options.markdown:
            return str(formatted)
        return formatted.to_dict()
