"""Render web pages in headless Chromium and return their readable content.

Pages are loaded by a pool of isolated browser contexts, reduced to
their main article with readability, and converted to markdown. Pages
that fail to render are retried against a public web-archive mirror,
and results can be memoized in a pluggable cache.

Example usage:

    from readmore import ReadMoreService, CrawlOptions, read_url_async

    # One-off crawl (starts and stops a browser)
    text = await read_url_async("https://example.com")
    print(text)

    # Long-lived service shared by many requests
    async with ReadMoreService() as service:
        data = await service.read_url(
            "https://example.com",
            CrawlOptions(use_screenshot=True, markdown=False),
        )
        print(data["title"], len(data["screenshot"]))
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Union

from .config import Settings
from .document import (
    CacheEntry,
    CrawlOptions,
    FormattedContent,
    ImageBrief,
    ParsedArticle,
    Snapshot,
)
from .errors import (
    CacheConfigError,
    CacheError,
    ClientInputError,
    ConversionError,
    CrawlError,
    EngineUnavailableError,
    NavigationError,
    PoolExhaustedError,
    ReadMoreError,
)
from .service import ReadMoreService

__all__ = [
    # Document types
    "CacheEntry",
    "CrawlOptions",
    "FormattedContent",
    "ImageBrief",
    "ParsedArticle",
    "Snapshot",
    # Errors
    "CacheConfigError",
    "CacheError",
    "ClientInputError",
    "ConversionError",
    "CrawlError",
    "EngineUnavailableError",
    "NavigationError",
    "PoolExhaustedError",
    "ReadMoreError",
    # Service
    "ReadMoreService",
    "Settings",
    "read_url",
    "read_url_async",
    # MCP
    "get_mcp_server",
    "mcp",
]


def get_mcp_server():
    """Get the MCP server instance (lazy import to avoid dependency if not needed)."""
    from .mcp_server import mcp

    return mcp


# Lazy import for mcp to avoid requiring fastmcp if not used
def __getattr__(name):
    if name == "mcp":
        from .mcp_server import mcp

        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


async def read_url_async(
    url: str,
    *,
    use_screenshot: bool = False,
    use_cache: bool = False,
    markdown: bool = True,
    settings: Optional[Settings] = None,
) -> Union[str, Dict[str, Any]]:
    """
    Crawl a single page with a short-lived service.

    Args:
        url: The URL to crawl; the scheme defaults to http.
        use_screenshot: Attach a base64 JPEG screenshot.
        use_cache: Use the configured result cache.
        markdown: Return the plain-text rendering instead of a dict.
        settings: Configuration; read from the environment when None.

    Returns:
        Plain-text rendering, or a dict with title, url, content,
        publishedTime and screenshot.

    Raises:
        ClientInputError: If the URL is invalid or not http(s).
        CrawlError: If the page could not be crawled.
    """
    options = CrawlOptions(
        use_screenshot=use_screenshot, use_cache=use_cache, markdown=markdown
    )
    async with ReadMoreService(settings) as service:
        return await service.read_url(url, options)


def read_url(
    url: str,
    *,
    use_screenshot: bool = False,
    use_cache: bool = False,
    markdown: bool = True,
    settings: Optional[Settings] = None,
) -> Union[str, Dict[str, Any]]:
    """Synchronous wrapper for read_url_async."""
    return asyncio.run(
        read_url_async(
            url,
            use_screenshot=use_screenshot,
            use_cache=use_cache,
            markdown=markdown,
            settings=settings,
        )
    )
