"""MCP server exposing the readmore crawler as a single ``crawl`` tool.

Supports both STDIO and HTTP transports.

Usage:
    # STDIO (for desktop MCP clients)
    python -m readmore.mcp_server

    # HTTP (for remote access)
    python -m readmore.mcp_server --transport http --port 8000

    # Or via FastMCP CLI
    fastmcp run readmore/mcp_server.py:mcp --transport http --port 8000

Environment Variables:
    CACHE_PROVIDER: none (default), memory, s3, mongo or supabase
    CACHE_DURATION: Backend TTL in milliseconds (default: 7 days)
    LOG_LEVEL: Logging level (default: INFO)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from .config import Settings, load_config
from .document import CrawlOptions
from .errors import CacheConfigError, ClientInputError, CrawlError
from .service import ReadMoreService

# Load .env before reading environment variables
load_config()
SETTINGS = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, SETTINGS.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
LOGGER = logging.getLogger(__name__)

_service: Optional[ReadMoreService] = None
_service_started = False
_service_lock = asyncio.Lock()


def build_service() -> ReadMoreService:
    """Construct the shared crawl service without launching the browser.

    Raises:
        CacheConfigError: If the configured cache provider is unusable.
    """
    global _service
    if _service is None:
        _service = ReadMoreService(SETTINGS)
    return _service


async def get_service() -> ReadMoreService:
    """Start the shared crawl service on first use."""
    global _service, _service_started
    async with _service_lock:
        service = build_service()
        if not _service_started:
            try:
                await service.start()
            except BaseException:
                _service = None
                raise
            _service_started = True
    return service


async def shutdown_service() -> None:
    global _service, _service_started
    async with _service_lock:
        service, _service = _service, None
        _service_started = False
    if service is not None:
        await service.close()


@asynccontextmanager
async def _lifespan(_server: FastMCP) -> AsyncIterator[Dict[str, Any]]:
    try:
        yield {}
    finally:
        await shutdown_service()


mcp = FastMCP(
    name="ReadMore Crawler",
    instructions="""
    Renders a web page in headless Chromium and returns its readable
    content as markdown.

    Tool:
       - crawl: Crawl one URL (http or https)

    Output:
    - markdown=true (default): plain text with Title, URL Source,
      optional Published Time and the Markdown Content
    - markdown=false: JSON object with title, url, content,
      publishedTime and screenshot (base64 JPEG when requested)
    """,
    lifespan=_lifespan,
)


# =============================================================================
# CRAWL TOOL
# =============================================================================


async def crawl(
    url: str,
    use_screenshot: bool = False,
    use_cache: bool = False,
    markdown: bool = True,
):
    """
    Crawl a web page and extract its readable content as markdown.

    Args:
        url: URL to crawl; the scheme defaults to http when omitted
        use_screenshot: Attach a base64 JPEG screenshot (default: false)
        use_cache: Serve a snapshot cached within the last 5 minutes and
            store the new one (default: false)
        markdown: Return plain text (default) or a structured object

    Returns:
        Plain-text rendering, or a dict with title, url, content,
        publishedTime and screenshot.

    Examples:
        crawl(url="https://example.com")
        crawl(url="https://example.com", use_screenshot=True, markdown=False)
    """
    options = CrawlOptions(
        use_screenshot=use_screenshot, use_cache=use_cache, markdown=markdown
    )
    LOGGER.info("Crawling %s", url)
    try:
        service = await get_service()
        return await service.read_url(url, options)
    except ClientInputError as exc:
        raise ToolError(f"Invalid request: {exc}") from exc
    except CacheConfigError as exc:
        LOGGER.error("Cache misconfigured: %s", exc)
        raise ToolError(f"Server misconfigured: {exc}") from exc
    except CrawlError as exc:
        LOGGER.error("Failed to crawl %s: %s", url, exc)
        raise ToolError(f"Failed to crawl {url}: {exc}") from exc


mcp.tool(crawl)


def main():
    """CLI entry point for running the MCP server."""
    parser = argparse.ArgumentParser(
        description="Run the readmore crawler MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # STDIO transport (default)
    python -m readmore.mcp_server

    # HTTP transport (for remote access)
    python -m readmore.mcp_server --transport http --port 8000

    # Custom host/port
    python -m readmore.mcp_server --transport http --host 0.0.0.0 --port 9000
""",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to for HTTP transport (default: 8000)",
    )

    args = parser.parse_args()

    LOGGER.info("Cache provider: %s", SETTINGS.cache_provider)
    try:
        build_service()
    except CacheConfigError as exc:
        LOGGER.error("Invalid cache configuration: %s", exc)
        raise SystemExit(2) from exc

    if args.transport == "http":
        LOGGER.info("Starting MCP server on http://%s:%d/mcp", args.host, args.port)
        mcp.run(transport="http", host=args.host, port=args.port)
    else:
        LOGGER.info("Starting MCP server with STDIO transport")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
