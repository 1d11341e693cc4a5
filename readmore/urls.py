"""URL normalization for the inbound crawl operation."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit, urlunsplit

from .errors import ClientInputError

LOGGER = logging.getLogger(__name__)

ALLOWED_SCHEMES = frozenset({"http", "https"})

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """Normalize and validate a user-supplied URL.

    Scheme-less input gets ``http://`` prepended; scheme and host are
    lowercased and default ports dropped. Path, trailing slashes, ``www.``,
    query and fragment are left untouched.

    Raises:
        ClientInputError: If the URL is empty, has no host, or uses a
            scheme other than http/https.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise ClientInputError("URL must not be empty")

    if candidate.startswith("//"):
        candidate = "http:" + candidate
    elif not _SCHEME_RE.match(candidate) or _looks_like_host_port(candidate):
        candidate = "http://" + candidate

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as exc:
        raise ClientInputError(f"Invalid URL {url!r}: {exc}") from exc

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        LOGGER.error("Invalid protocol %s: for %s", scheme, url)
        raise ClientInputError(f"Invalid protocol {scheme}:")

    host = (parts.hostname or "").lower()
    if not host:
        raise ClientInputError(f"Invalid URL {url!r}: missing host")

    netloc = host
    if ":" in host:
        netloc = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    if parts.username:
        credentials = parts.username
        if parts.password:
            credentials = f"{credentials}:{parts.password}"
        netloc = f"{credentials}@{netloc}"

    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def _looks_like_host_port(candidate: str) -> bool:
    # "example.com:8080/path" parses as scheme "example.com".
    head, _, rest = candidate.partition(":")
    return "." in head and rest[:1].isdigit()
