"""Settings, runtime constants and markdown generator factory.

Environment variables are read at call time (inside ``Settings.from_env``)
so that tests can monkeypatch them freely and late ``.env`` loading works.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from crawl4ai.markdown_generation_strategy import DefaultMarkdownGenerator
from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "readmore"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"

GIB = 1024 * 1024 * 1024

# Worker pool
MIN_POOL_SIZE = 1
MIN_MAX_POOL_SIZE = 16
ACQUIRE_TIMEOUT_SECONDS = 60.0

# Rendering engine
ENGINE_LAUNCH_TIMEOUT_MS = 10_000
VIEWPORT = {"width": 1024, "height": 1024}
NAVIGATION_TIMEOUT_MS = 30_000
SALVAGE_NAVIGATION_TIMEOUT_MS = 15_000
# Playwright accepts a single wait_until; the remaining states are awaited
# with wait_for_load_state in this order.
WAIT_UNTIL: Tuple[str, ...] = ("load", "domcontentloaded", "networkidle")
SCREENSHOT_QUALITY = 75

# Cache
DEFAULT_CACHE_DURATION_MS = 1000 * 3600 * 24 * 7
FRESHNESS_WINDOW_MS = 300_000
CACHE_PROVIDERS = ("none", "memory", "s3", "mongo", "supabase")

# Salvage
DEFAULT_ARCHIVE_URL = "https://webcache.googleusercontent.com/search?q=cache:{url}"
SALVAGE_USER_AGENT = (
    "Mozilla/5.0 AppleWebKit/537.36 "
    "(KHTML, like Gecko; compatible; GPTBot/1.0; +https://openai.com/gptbot)"
)
SALVAGE_PROBE_TIMEOUT = 15.0


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, resolved once at service construction."""

    log_level: str = "INFO"
    cache_provider: str = "none"
    cache_duration_ms: int = DEFAULT_CACHE_DURATION_MS
    s3_endpoint: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_bucket: Optional[str] = None
    s3_region: str = "auto"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_bucket: Optional[str] = None
    mongo_url: Optional[str] = None
    mongo_collection: Optional[str] = None
    max_workers: Optional[int] = None
    archive_url: str = DEFAULT_ARCHIVE_URL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        max_workers = _to_int(env.get("READMORE_MAX_WORKERS"), 0)
        return cls(
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
            cache_provider=(env.get("CACHE_PROVIDER") or "none").strip().lower(),
            cache_duration_ms=_to_int(
                env.get("CACHE_DURATION"), DEFAULT_CACHE_DURATION_MS
            ),
            s3_endpoint=env.get("S3_ENDPOINT") or None,
            s3_access_key_id=env.get("S3_ACCESS_KEY_ID") or None,
            s3_secret_access_key=env.get("S3_SECRET_ACCESS_KEY") or None,
            s3_bucket=env.get("S3_BUCKET") or None,
            s3_region=env.get("S3_REGION") or "auto",
            supabase_url=env.get("SUPABASE_URL") or None,
            supabase_key=env.get("SUPABASE_KEY") or None,
            supabase_bucket=env.get("SUPABASE_BUCKET") or None,
            mongo_url=env.get("MONGO_URL") or None,
            mongo_collection=env.get("MONGO_COLLECTION") or None,
            max_workers=max_workers or None,
            archive_url=env.get("READMORE_ARCHIVE_URL") or DEFAULT_ARCHIVE_URL,
        )


def _to_int(value: Optional[str], default: int) -> int:
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Ignoring non-integer setting %r; using %d.", value, default)
        return default


def free_memory_bytes() -> int:
    """Available physical memory, or 0 when the platform does not report it."""
    try:
        return os.sysconf("SC_AVPHYS_PAGES") * os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, OSError, ValueError):
        return 0


def compute_max_pool_size(free_bytes: Optional[int] = None) -> int:
    """One worker per free GiB, never fewer than ``MIN_MAX_POOL_SIZE``."""
    if free_bytes is None:
        free_bytes = free_memory_bytes()
    return max(1 + free_bytes // GIB, MIN_MAX_POOL_SIZE, 1)


def load_config(cwd: Optional[Path] = None) -> None:
    """Load .env configuration with fallback to the user config directory.

    Search order:
    1. .env in current working directory
    2. ~/.config/readmore/.env

    If neither exists and .env.example is found next to the package, it is
    copied to ~/.config/readmore/.env as a starting point.
    """
    local_env = (cwd or Path.cwd()) / ".env"
    if local_env.is_file():
        load_dotenv(local_env)
        return

    if CONFIG_ENV_FILE.is_file():
        load_dotenv(CONFIG_ENV_FILE)
        return

    example_file = Path(__file__).parent.parent / ".env.example"
    if example_file.is_file():
        try:
            CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            shutil.copy(example_file, CONFIG_ENV_FILE)
            LOGGER.info(
                "Created config file at %s from .env.example. "
                "Edit it to select a CACHE_PROVIDER.",
                CONFIG_ENV_FILE,
            )
            load_dotenv(CONFIG_ENV_FILE)
        except OSError as exc:
            LOGGER.warning("Could not create %s: %s", CONFIG_ENV_FILE, exc)


def build_markdown_generator() -> DefaultMarkdownGenerator:
    """Markdown generator for article fragments: images kept, no wrapping."""
    return DefaultMarkdownGenerator(
        options={
            "citations": False,
            "body_width": 0,
            "ignore_images": False,
            "ignore_links": False,
            "skip_internal_links": False,
            "pad_tables": True,
        },
    )
