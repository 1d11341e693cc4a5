"""Exception hierarchy shared by the crawl pipeline."""

from __future__ import annotations


class ReadMoreError(Exception):
    """Base class for all errors raised by readmore."""


class ClientInputError(ReadMoreError, ValueError):
    """Raised when the caller supplied an unusable URL or option."""


class CrawlError(ReadMoreError):
    """Raised when a crawl could not produce a snapshot."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


class PoolExhaustedError(CrawlError):
    """Raised when no worker became available within the acquire timeout."""


class NavigationError(CrawlError):
    """Raised when navigation failed and nothing usable was extracted."""


class EngineUnavailableError(CrawlError):
    """Raised when the rendering engine failed to launch or disconnected."""


class CacheError(ReadMoreError):
    """Raised by cache adapters on backend failures."""


class CacheConfigError(CacheError):
    """Raised when a cache provider is selected without its settings."""


class ConversionError(ReadMoreError):
    """Raised when HTML to markdown conversion fails."""
