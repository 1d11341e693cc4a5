"""Headless Chromium engine and the per-crawl page workers it hands out.

The engine owns one Playwright browser process. Each :class:`Worker` is
an isolated browser context with a single page, prepared so that the
snapshot function is present before any page script runs.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Response,
    Route,
    async_playwright,
)

from .config import (
    ENGINE_LAUNCH_TIMEOUT_MS,
    NAVIGATION_TIMEOUT_MS,
    SCREENSHOT_QUALITY,
    VIEWPORT,
    WAIT_UNTIL,
)
from .document import Snapshot
from .errors import EngineUnavailableError
from .extraction import REPORT_BINDING, SNAPSHOT_EXPRESSION, SNAPSHOT_JS, build_snapshot

LOGGER = logging.getLogger(__name__)

# Resource types never fetched by workers.
BLOCKED_RESOURCE_TYPES = frozenset({"media"})


class EngineStatus(str, Enum):
    NEW = "new"
    READY = "ready"
    ERROR = "error"
    DISCONNECTED = "disconnected"


@dataclass
class Worker:
    """One browser context and page, borrowed for a single crawl."""

    context: BrowserContext
    page: Page
    last_report: Optional[Dict[str, Any]] = None

    async def goto(
        self, url: str, timeout_ms: int = NAVIGATION_TIMEOUT_MS
    ) -> Optional[Response]:
        """Navigate and wait for every load condition within one deadline.

        Raises:
            playwright.async_api.Error: On navigation failure or timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        response = await self.page.goto(url, wait_until=WAIT_UNTIL[0], timeout=timeout_ms)
        for state in WAIT_UNTIL[1:]:
            remaining_ms = max(1, int((deadline - loop.time()) * 1000))
            await self.page.wait_for_load_state(state, timeout=remaining_ms)
        return response

    async def snapshot(self) -> Snapshot:
        """Extract the current document state."""
        raw = await self.page.evaluate(SNAPSHOT_EXPRESSION)
        return await asyncio.to_thread(build_snapshot, raw)

    async def screenshot(self) -> str:
        """Base64-encoded JPEG of the viewport."""
        image = await self.page.screenshot(type="jpeg", quality=SCREENSHOT_QUALITY)
        return base64.b64encode(image).decode("ascii")

    def is_alive(self) -> bool:
        return not self.page.is_closed()

    async def close(self) -> None:
        await self.context.close()

    def _on_report(self, _source: Any, payload: Any) -> None:
        if isinstance(payload, dict):
            self.last_report = payload


class BrowserEngine:
    """Launches Chromium and creates/validates/destroys :class:`Worker` objects.

    Implements the hooks expected by :class:`readmore.pool.WorkerPool`.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        launch_timeout_ms: int = ENGINE_LAUNCH_TIMEOUT_MS,
    ) -> None:
        self._headless = headless
        self._launch_timeout_ms = launch_timeout_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self.status = EngineStatus.NEW

    @property
    def browser(self) -> Optional[Browser]:
        return self._browser

    def is_ready(self) -> bool:
        return (
            self.status is EngineStatus.READY
            and self._browser is not None
            and self._browser.is_connected()
        )

    async def start(self) -> None:
        """Launch the browser process.

        Raises:
            EngineUnavailableError: If the launch fails or times out.
        """
        if self._browser is not None and self._browser.is_connected():
            await self._browser.close()
        self._browser = None

        try:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless, timeout=self._launch_timeout_ms
            )
        except Exception as exc:
            LOGGER.error("Browser launch failed: %s", exc)
            self.status = EngineStatus.ERROR
            await self._stop_playwright()
            raise EngineUnavailableError(f"Browser launch failed: {exc}") from exc

        self._browser.on("disconnected", self._on_disconnected)
        self.status = EngineStatus.READY
        LOGGER.info("Browser launched: Chromium %s", self._browser.version)

    async def close(self) -> None:
        browser, self._browser = self._browser, None
        if browser is not None and browser.is_connected():
            await browser.close()
        await self._stop_playwright()
        self.status = EngineStatus.NEW

    async def _stop_playwright(self) -> None:
        playwright, self._playwright = self._playwright, None
        if playwright is None:
            return
        try:
            await playwright.stop()
        except Exception as exc:
            LOGGER.warning("Failed to stop Playwright: %s", exc)

    def ensure_ready(self) -> None:
        """Raise if the engine cannot serve crawls right now."""
        if not self.is_ready():
            raise EngineUnavailableError(f"Browser engine is {self.status.value}")

    # ------------------------------------------------------------------
    # Pool hooks
    # ------------------------------------------------------------------

    async def create(self) -> Worker:
        self.ensure_ready()
        if self._browser is None:
            raise EngineUnavailableError("Browser engine is not started")
        context = await self._browser.new_context(bypass_csp=True, viewport=VIEWPORT)
        try:
            await context.route("**/*", _block_resources)
            page = await context.new_page()
            worker = Worker(context=context, page=page)
            await page.expose_binding(REPORT_BINDING, worker._on_report)
            await page.add_init_script(SNAPSHOT_JS)
        except BaseException:
            await context.close()
            raise
        return worker

    async def validate(self, worker: Worker) -> bool:
        return self.is_ready() and worker.is_alive()

    async def destroy(self, worker: Worker) -> None:
        if self._browser is None or not self._browser.is_connected():
            return
        await worker.close()

    def _on_disconnected(self, _browser: Browser) -> None:
        LOGGER.warning("Browser disconnected")
        self.status = EngineStatus.DISCONNECTED


async def _block_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()
