"""Data structures representing page snapshots and formatted output."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class ImageBrief:
    """Per-image metadata gathered from the rendered page."""

    src: str
    loaded: bool = False
    width: int = 0
    height: int = 0
    natural_width: int = 0
    natural_height: int = 0
    alt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "src": self.src,
            "loaded": self.loaded,
            "width": self.width,
            "height": self.height,
            "naturalWidth": self.natural_width,
            "naturalHeight": self.natural_height,
            "alt": self.alt,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageBrief":
        return cls(
            src=str(data.get("src") or ""),
            loaded=bool(data.get("loaded")),
            width=_as_int(data.get("width")),
            height=_as_int(data.get("height")),
            natural_width=_as_int(data.get("naturalWidth")),
            natural_height=_as_int(data.get("naturalHeight")),
            alt=data.get("alt") or None,
        )


@dataclass(slots=True)
class ParsedArticle:
    """Readability projection of a page."""

    title: Optional[str] = None
    content: Optional[str] = None
    text_content: Optional[str] = None
    excerpt: Optional[str] = None
    byline: Optional[str] = None
    lang: Optional[str] = None
    published_time: Optional[str] = None
    site_name: Optional[str] = None
    length: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "textContent": self.text_content,
            "excerpt": self.excerpt,
            "byline": self.byline,
            "lang": self.lang,
            "publishedTime": self.published_time,
            "siteName": self.site_name,
            "length": self.length,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParsedArticle":
        return cls(
            title=data.get("title"),
            content=data.get("content"),
            text_content=data.get("textContent"),
            excerpt=data.get("excerpt"),
            byline=data.get("byline"),
            lang=data.get("lang"),
            published_time=data.get("publishedTime"),
            site_name=data.get("siteName"),
            length=_as_int(data.get("length")),
        )


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Result of rendering and extracting one URL.

    Snapshots are immutable; :meth:`with_screenshot` returns a copy with
    the screenshot attached.
    """

    title: str
    href: str
    html: str
    text: str
    parsed: Optional[ParsedArticle] = None
    screenshot: Optional[str] = None
    imgs: List[ImageBrief] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when the page yielded neither a title nor article content."""
        return not self.title and not (self.parsed and self.parsed.content)

    def with_screenshot(self, screenshot: Optional[str]) -> "Snapshot":
        return replace(self, screenshot=screenshot)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "href": self.href,
            "html": self.html,
            "text": self.text,
            "parsed": self.parsed.to_dict() if self.parsed else None,
            "screenshot": self.screenshot,
            "imgs": [img.to_dict() for img in self.imgs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        parsed = data.get("parsed")
        return cls(
            title=str(data.get("title") or ""),
            href=str(data.get("href") or ""),
            html=str(data.get("html") or ""),
            text=str(data.get("text") or ""),
            parsed=ParsedArticle.from_dict(parsed) if parsed else None,
            screenshot=data.get("screenshot") or None,
            imgs=[ImageBrief.from_dict(img) for img in data.get("imgs") or []],
        )


@dataclass(slots=True)
class CacheEntry:
    """Persisted cache record; timestamps are epoch milliseconds."""

    url: str
    created_at: int
    expire_at: int
    url_digest: str
    snapshot: Snapshot

    def is_expired(self, now_ms: int) -> bool:
        return self.expire_at <= now_ms

    def is_fresh(self, now_ms: int, window_ms: int) -> bool:
        return now_ms - self.created_at < window_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "createdAt": self.created_at,
            "expireAt": self.expire_at,
            "urlDigest": self.url_digest,
            "snapshot": self.snapshot.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            url=str(data["url"]),
            created_at=int(data["createdAt"]),
            expire_at=int(data["expireAt"]),
            url_digest=str(data["urlDigest"]),
            snapshot=Snapshot.from_dict(data["snapshot"]),
        )


@dataclass(frozen=True, slots=True)
class CrawlOptions:
    """Request-scoped crawl switches."""

    use_screenshot: bool = False
    use_cache: bool = False
    markdown: bool = True


@dataclass(slots=True)
class FormattedContent:
    """Final, reader-facing rendition of a snapshot."""

    title: str
    url: str
    content: str
    published_time: Optional[str] = None
    screenshot: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "title": data["title"],
            "url": data["url"],
            "content": data["content"],
            "publishedTime": data["published_time"],
            "screenshot": data["screenshot"],
        }

    def __str__(self) -> str:
        mixins = ""
        if self.published_time:
            mixins = f"\nPublished Time: {self.published_time}\n"
        return (
            f"Title: {self.title}\n"
            "\n"
            f"URL Source: {self.url}\n"
            f"{mixins}"
            "\n"
            "Markdown Content:\n"
            f"{self.content}\n"
        )


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
