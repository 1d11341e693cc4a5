"""Command-line interface: render one URL and print it as markdown or JSON."""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import Settings, load_config
from .document import CrawlOptions
from .errors import ClientInputError


def _setup_logging(verbose: bool, level_name: str = "INFO") -> None:
    level = logging.DEBUG if verbose else getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="readmore",
        description="Render a web page in headless Chromium and print its readable content",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Markdown to stdout
  readmore https://example.com

  # Structured output with a screenshot saved next to it
  readmore https://example.com --json --screenshot-file page.jpg -o page.json

  # Reuse a cached snapshot (needs CACHE_PROVIDER)
  readmore https://example.com --cache
""",
    )
    parser.add_argument("url", help="URL to crawl (scheme defaults to http)")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Write the result to this file instead of stdout",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output the structured result (title, url, content, publishedTime, screenshot)",
    )
    parser.add_argument(
        "--screenshot",
        action="store_true",
        help="Capture a JPEG screenshot of the page",
    )
    parser.add_argument(
        "--screenshot-file",
        type=str,
        default=None,
        help="Save the screenshot to this file (implies --screenshot)",
    )
    parser.add_argument(
        "--cache",
        action="store_true",
        help="Read and write the configured result cache",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def _write_output(
    result: Union[str, Dict[str, Any]], output: Optional[str]
) -> None:
    text = result if isinstance(result, str) else json.dumps(
        result, indent=2, ensure_ascii=False
    )
    if output is None:
        print(text)
        return
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logging.info("Wrote %s", path)


def _write_screenshot(screenshot: Optional[str], destination: str) -> None:
    if not screenshot:
        logging.warning("No screenshot was captured")
        return
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(base64.b64decode(screenshot))
    logging.info("Wrote screenshot %s", path)


async def _run_async(args: argparse.Namespace, settings: Settings) -> int:
    from .service import ReadMoreService

    options = CrawlOptions(
        use_screenshot=bool(args.screenshot or args.screenshot_file),
        use_cache=args.cache,
        markdown=not args.json_output,
    )
    logging.info("Crawling: %s", args.url)
    async with ReadMoreService(settings) as service:
        formatted = await service.read(args.url, options)

    if args.screenshot_file:
        _write_screenshot(formatted.screenshot, args.screenshot_file)
    _write_output(
        str(formatted) if options.markdown else formatted.to_dict(), args.output
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the readmore command."""
    args = _parse_args(argv)
    load_config()
    settings = Settings.from_env()
    _setup_logging(args.verbose, settings.log_level)

    try:
        return asyncio.run(_run_async(args, settings))
    except KeyboardInterrupt:
        logging.info("Interrupted")
        return 130
    except ClientInputError as exc:
        logging.error("Invalid request: %s", exc)
        return 2
    except Exception as exc:
        logging.error("Error: %s", exc)
        if args.verbose:
            logging.exception("Full traceback:")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
