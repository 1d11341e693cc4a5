"""Tests for readmore.browser module with Playwright objects mocked out."""

from __future__ import annotations

import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from readmore import browser as browser_module
from readmore.browser import BrowserEngine, EngineStatus, Worker
from readmore.config import VIEWPORT
from readmore.errors import EngineUnavailableError
from readmore.extraction import REPORT_BINDING, SNAPSHOT_EXPRESSION, SNAPSHOT_JS


def _fake_page(closed: bool = False) -> MagicMock:
    page = MagicMock()
    page.is_closed.return_value = closed
    page.goto = AsyncMock(return_value=SimpleNamespace(status=200))
    page.wait_for_load_state = AsyncMock()
    page.evaluate = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"\xff\xd8jpeg")
    page.expose_binding = AsyncMock()
    page.add_init_script = AsyncMock()
    return page


def _fake_browser(page: MagicMock) -> MagicMock:
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.route = AsyncMock()
    context.close = AsyncMock()

    fake = MagicMock()
    fake.version = "120.0"
    fake.is_connected.return_value = True
    fake.new_context = AsyncMock(return_value=context)
    fake.close = AsyncMock()
    fake.handlers = {}
    fake.on.side_effect = lambda event, handler: fake.handlers.setdefault(event, handler)
    return fake


def _patch_playwright(monkeypatch, fake_browser=None, launch_error=None):
    chromium = SimpleNamespace(
        launch=AsyncMock(return_value=fake_browser, side_effect=launch_error)
    )
    playwright = SimpleNamespace(chromium=chromium, stop=AsyncMock())
    starter = SimpleNamespace(start=AsyncMock(return_value=playwright))
    monkeypatch.setattr(browser_module, "async_playwright", lambda: starter)
    return playwright


class TestBrowserEngine:
    @pytest.mark.asyncio
    async def test_start_launches_headless_with_timeout(self, monkeypatch):
        fake = _fake_browser(_fake_page())
        playwright = _patch_playwright(monkeypatch, fake)
        engine = BrowserEngine()
        assert engine.status is EngineStatus.NEW

        await engine.start()

        playwright.chromium.launch.assert_awaited_once_with(headless=True, timeout=10_000)
        assert engine.status is EngineStatus.READY
        assert engine.is_ready()

    @pytest.mark.asyncio
    async def test_launch_failure_sets_error(self, monkeypatch):
        playwright = _patch_playwright(
            monkeypatch, launch_error=RuntimeError("no chromium")
        )
        engine = BrowserEngine()
        with pytest.raises(EngineUnavailableError, match="no chromium"):
            await engine.start()
        assert engine.status is EngineStatus.ERROR
        playwright.stop.assert_awaited_once()
        with pytest.raises(EngineUnavailableError):
            await engine.create()

    @pytest.mark.asyncio
    async def test_disconnect_degrades_status(self, monkeypatch):
        fake = _fake_browser(_fake_page())
        _patch_playwright(monkeypatch, fake)
        engine = BrowserEngine()
        await engine.start()

        fake.is_connected.return_value = False
        fake.handlers["disconnected"](fake)

        assert engine.status is EngineStatus.DISCONNECTED
        with pytest.raises(EngineUnavailableError, match="disconnected"):
            engine.ensure_ready()

    @pytest.mark.asyncio
    async def test_create_prepares_isolated_worker(self, monkeypatch):
        page = _fake_page()
        fake = _fake_browser(page)
        _patch_playwright(monkeypatch, fake)
        engine = BrowserEngine()
        await engine.start()

        worker = await engine.create()

        fake.new_context.assert_awaited_once_with(bypass_csp=True, viewport=VIEWPORT)
        page.add_init_script.assert_awaited_once_with(SNAPSHOT_JS)
        assert page.expose_binding.await_args.args[0] == REPORT_BINDING
        assert worker.page is page
        assert await engine.validate(worker)

        page.is_closed.return_value = True
        assert not await engine.validate(worker)

        await engine.destroy(worker)
        worker.context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_stops_playwright(self, monkeypatch):
        fake = _fake_browser(_fake_page())
        playwright = _patch_playwright(monkeypatch, fake)
        engine = BrowserEngine()
        await engine.start()
        await engine.close()
        fake.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert engine.browser is None


class TestWorker:
    @pytest.mark.asyncio
    async def test_goto_waits_for_every_load_state(self):
        page = _fake_page()
        worker = Worker(context=MagicMock(), page=page)
        await worker.goto("https://example.com/", 30_000)

        assert page.goto.await_args.kwargs == {"wait_until": "load", "timeout": 30_000}
        states = [call.args[0] for call in page.wait_for_load_state.await_args_list]
        assert states == ["domcontentloaded", "networkidle"]

    @pytest.mark.asyncio
    async def test_snapshot_evaluates_script(self):
        page = _fake_page()
        page.evaluate.return_value = {
            "title": "T",
            "href": "https://example.com/",
            "html": "",
            "text": "hi",
            "imgs": [],
        }
        worker = Worker(context=MagicMock(), page=page)
        snapshot = await worker.snapshot()
        page.evaluate.assert_awaited_once_with(SNAPSHOT_EXPRESSION)
        assert snapshot.title == "T"
        assert snapshot.text == "hi"

    @pytest.mark.asyncio
    async def test_screenshot_is_base64_jpeg(self):
        page = _fake_page()
        worker = Worker(context=MagicMock(), page=page)
        encoded = await worker.screenshot()
        page.screenshot.assert_awaited_once_with(type="jpeg", quality=75)
        assert base64.b64decode(encoded) == b"\xff\xd8jpeg"

    def test_report_binding_keeps_last_payload(self):
        worker = Worker(context=MagicMock(), page=_fake_page())
        worker._on_report(None, {"title": "a"})
        worker._on_report(None, {"title": "b"})
        worker._on_report(None, "not a snapshot")
        assert worker.last_report == {"title": "b"}


class TestEngineGuards:
    @pytest.mark.asyncio
    async def test_create_before_start_is_unavailable(self):
        with pytest.raises(EngineUnavailableError, match="new"):
            await BrowserEngine().create()
