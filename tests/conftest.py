"""Shared fakes: no test launches a browser or touches the network."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import pytest

from readmore.document import ImageBrief, ParsedArticle, Snapshot


def make_snapshot(
    *,
    title: str = "Example Domain",
    href: str = "https://example.com/",
    content: Optional[str] = "<div><p>Hello world</p></div>",
    text: str = "Hello world",
    html: str = "<html><body><p>Hello world</p></body></html>",
    published_time: Optional[str] = None,
    imgs: Optional[List[ImageBrief]] = None,
    screenshot: Optional[str] = None,
) -> Snapshot:
    parsed = None
    if content is not None:
        parsed = ParsedArticle(
            title=title or None,
            content=content,
            text_content=text,
            published_time=published_time,
            length=len(text),
        )
    return Snapshot(
        title=title,
        href=href,
        html=html,
        text=text,
        parsed=parsed,
        screenshot=screenshot,
        imgs=imgs or [],
    )


EMPTY_SNAPSHOT = Snapshot(
    title="",
    href="chrome-error://chromewebdata/",
    html="<html><head></head><body></body></html>",
    text="",
)


class FakeWorker:
    """Stands in for :class:`readmore.browser.Worker`.

    ``snapshots`` are returned in order by successive ``snapshot()``
    calls (the last one repeats); an exception instance is raised instead.
    """

    def __init__(
        self,
        snapshots: List[Union[Snapshot, Exception]],
        *,
        goto_errors: Optional[Dict[str, Exception]] = None,
        screenshot: str = "c2NyZWVuc2hvdA==",
    ) -> None:
        self.snapshots = list(snapshots)
        self.goto_errors = goto_errors or {}
        self.screenshot_data = screenshot
        self.goto_calls: List[tuple] = []
        self.snapshot_calls = 0
        self.screenshot_calls = 0

    async def goto(self, url: str, timeout_ms: int = 30_000) -> None:
        self.goto_calls.append((url, timeout_ms))
        error = self.goto_errors.get(url)
        if error is not None:
            raise error

    async def snapshot(self) -> Snapshot:
        self.snapshot_calls += 1
        value = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(value, Exception):
            raise value
        return value

    async def screenshot(self) -> str:
        self.screenshot_calls += 1
        return self.screenshot_data


class FakePool:
    """Hands out one worker and counts acquire/release calls."""

    def __init__(self, worker: Any, acquire_error: Optional[Exception] = None) -> None:
        self.worker = worker
        self.acquire_error = acquire_error
        self.acquired = 0
        self.released = 0

    async def acquire(self) -> Any:
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        return self.worker

    async def release(self, worker: Any) -> None:
        assert worker is self.worker
        self.released += 1


class FakeFactory:
    """Worker factory for pool tests; workers are plain dicts."""

    def __init__(self) -> None:
        self.created: List[Dict[str, Any]] = []
        self.destroyed: List[Dict[str, Any]] = []

    async def create(self) -> Dict[str, Any]:
        worker = {"id": len(self.created), "alive": True}
        self.created.append(worker)
        return worker

    async def destroy(self, worker: Dict[str, Any]) -> None:
        self.destroyed.append(worker)

    async def validate(self, worker: Dict[str, Any]) -> bool:
        return bool(worker["alive"])


@pytest.fixture
def snapshot() -> Snapshot:
    return make_snapshot()


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()
