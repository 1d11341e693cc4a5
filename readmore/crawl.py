"""Crawl orchestration: cache lookup, render, extract, salvage, cache write."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol, Tuple
from urllib.parse import quote

import httpx

from .cache import Cache, now_ms, url_digest
from .config import (
    DEFAULT_ARCHIVE_URL,
    FRESHNESS_WINDOW_MS,
    NAVIGATION_TIMEOUT_MS,
    SALVAGE_NAVIGATION_TIMEOUT_MS,
    SALVAGE_PROBE_TIMEOUT,
    SALVAGE_USER_AGENT,
)
from .document import CrawlOptions, Snapshot
from .errors import CrawlError, NavigationError
from .pool import WorkerPool

LOGGER = logging.getLogger(__name__)


class PageWorker(Protocol):
    async def goto(self, url: str, timeout_ms: int = ...) -> object: ...

    async def snapshot(self) -> Snapshot: ...

    async def screenshot(self) -> str: ...


class EngineHandle(Protocol):
    def ensure_ready(self) -> None: ...


def _default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=SALVAGE_PROBE_TIMEOUT,
    )


def archive_url_for(url: str, template: str = DEFAULT_ARCHIVE_URL) -> str:
    """Address of the archived copy of ``url`` under ``template``."""
    return template.format(url=quote(url, safe="!'()*"))


class PageCrawler:
    """Runs the crawl protocol for one URL at a time per call.

    Many calls may run concurrently; they share only the worker pool and
    the cache.
    """

    def __init__(
        self,
        pool: WorkerPool,
        cache: Optional[Cache] = None,
        *,
        engine: Optional[EngineHandle] = None,
        archive_url: str = DEFAULT_ARCHIVE_URL,
        http_client_factory: Callable[[], httpx.AsyncClient] = _default_http_client,
        freshness_window_ms: int = FRESHNESS_WINDOW_MS,
    ) -> None:
        self.pool = pool
        self.cache = cache
        self.engine = engine
        self.archive_url = archive_url
        self._http_client_factory = http_client_factory
        self.freshness_window_ms = freshness_window_ms
        self._warned_no_cache = False

    async def crawl(
        self, url: str, options: Optional[CrawlOptions] = None
    ) -> Optional[Snapshot]:
        """Render ``url`` and return its snapshot.

        Returns None only if extraction never produced a snapshot.

        Raises:
            PoolExhaustedError: If no worker became available in time.
            EngineUnavailableError: If the engine is not ready.
            NavigationError: If navigation failed and nothing usable was
                extracted, even after salvage.
        """
        options = options or CrawlOptions()
        key: Optional[str] = None
        if options.use_cache:
            if self.cache is None:
                if not self._warned_no_cache:
                    LOGGER.warning("Cache requested but no CACHE_PROVIDER is configured")
                    self._warned_no_cache = True
            else:
                key = url_digest(url)
                cached = await self._read_cache(key, options)
                if cached is not None:
                    LOGGER.debug("Cache hit for %s", url)
                    return cached

        if self.engine is not None:
            self.engine.ensure_ready()

        worker = await self.pool.acquire()
        try:
            snapshot, navigation_error = await self._render(worker, url, options)
            if snapshot is None or (navigation_error is not None and snapshot.is_empty):
                if navigation_error is not None:
                    raise NavigationError(
                        f"Navigation to {url} failed: {navigation_error}", url=url
                    ) from navigation_error
                return None
            if not snapshot.href:
                raise CrawlError(f"Snapshot of {url} has no location", url=url)

            LOGGER.info("Snapshot of %s done: %r", snapshot.href, snapshot.title)
            if key is not None and self.cache is not None:
                await self._write_cache(url, key, snapshot)
            return snapshot
        finally:
            await self.pool.release(worker)

    # ------------------------------------------------------------------
    # Render protocol
    # ------------------------------------------------------------------

    async def _render(
        self, worker: PageWorker, url: str, options: CrawlOptions
    ) -> Tuple[Optional[Snapshot], Optional[Exception]]:
        navigation_error: Optional[Exception] = None
        try:
            await worker.goto(url, NAVIGATION_TIMEOUT_MS)
        except Exception as exc:
            LOGGER.error("Browsing of %s failed: %s", url, exc)
            navigation_error = exc

        snapshot = await self._extract(worker, url, options)
        if snapshot is None or snapshot.is_empty:
            if await self._salvage(worker, url):
                salvaged = await self._extract(worker, url, options)
                if salvaged is not None and not salvaged.is_empty:
                    return salvaged, None
                if salvaged is not None:
                    snapshot = salvaged
        return snapshot, navigation_error

    async def _extract(
        self, worker: PageWorker, url: str, options: CrawlOptions
    ) -> Optional[Snapshot]:
        screenshot: Optional[str] = None
        if options.use_screenshot:
            try:
                screenshot = await worker.screenshot()
            except Exception as exc:
                LOGGER.warning("Screenshot of %s failed: %s", url, exc)
        try:
            snapshot = await worker.snapshot()
        except Exception as exc:
            LOGGER.error("Extraction from %s failed: %s", url, exc)
            return None
        return snapshot.with_screenshot(screenshot) if screenshot else snapshot

    async def _salvage(self, worker: PageWorker, url: str) -> bool:
        """Point ``worker`` at the archived copy of ``url``; False if unavailable."""
        target = archive_url_for(url, self.archive_url)
        LOGGER.info("Salvaging %s from %s", url, target)
        try:
            async with self._http_client_factory() as client:
                async with client.stream(
                    "GET", target, headers={"User-Agent": SALVAGE_USER_AGENT}
                ) as response:
                    status = response.status_code
        except httpx.HTTPError as exc:
            LOGGER.warning("No salvation found for %s: %s", url, exc)
            return False
        if not 200 <= status < 300:
            LOGGER.warning("No salvation found for %s (HTTP %d)", url, status)
            return False

        try:
            await worker.goto(target, SALVAGE_NAVIGATION_TIMEOUT_MS)
        except Exception as exc:
            LOGGER.warning("Browsing of archived %s failed: %s", url, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _read_cache(self, key: str, options: CrawlOptions) -> Optional[Snapshot]:
        if self.cache is None:
            return None
        try:
            entry = await self.cache.get(key)
        except Exception as exc:
            LOGGER.error("Failed to read %s from cache: %s", key, exc)
            return None
        if entry is None:
            return None

        now = now_ms()
        if entry.is_expired(now):
            try:
                await self.cache.remove(key)
            except Exception as exc:
                LOGGER.error("Failed to remove expired %s from cache: %s", key, exc)
            return None
        if not entry.is_fresh(now, self.freshness_window_ms):
            return None
        if options.use_screenshot and not entry.snapshot.screenshot:
            return None
        return entry.snapshot

    async def _write_cache(self, url: str, key: str, snapshot: Snapshot) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.save(url, key, snapshot)
        except Exception as exc:
            LOGGER.error("Failed to save snapshot of %s to cache: %s", url, exc)
