"""Snapshot to markdown formatting.

Conversion prefers the readability fragment, then the full page HTML,
then the page's plain text. Each HTML conversion tries crawl4ai's
markdown generator first and a bare html2text converter second, so a
converter failure only ever costs richness, never the result.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, List, Optional, Protocol, Tuple

import html2text
from bs4 import BeautifulSoup

from .config import build_markdown_generator
from .document import FormattedContent, ImageBrief, Snapshot
from .errors import ConversionError

LOGGER = logging.getLogger(__name__)

GENERIC_ALT = "Image"

# crawl4ai reports conversion failures in-band instead of raising.
_GENERATOR_ERROR_PREFIXES = (
    "Error converting HTML to markdown",
    "Error in markdown generation",
)

_LINK_RE = re.compile(
    r"\[[ \t]*([^\]\n]+?)[ \t]*\][ \t]*\([ \t]*"
    r"((?:[a-zA-Z][a-zA-Z0-9+.-]*://|mailto:|\.{0,2}/|#)[^)\s]*)[ \t]*\)"
)
_TRAILING_SPACE_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_WHITESPACE_RE = re.compile(r"\s+")

# Flow containers whose bare <img> children get a paragraph of their own.
_BLOCK_PARENTS = frozenset(
    {
        "[document]",
        "article",
        "aside",
        "blockquote",
        "body",
        "div",
        "figure",
        "footer",
        "header",
        "main",
        "section",
    }
)


class ImageDescriber(Protocol):
    """Resolves descriptive alt text for one image."""

    async def describe(self, image: ImageBrief) -> Optional[str]: ...


class AltTextDescriber:
    """Passes the image's own alt text through."""

    async def describe(self, image: ImageBrief) -> Optional[str]:
        return image.alt or GENERIC_ALT


# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------


def convert_rich(html: str, base_url: str = "") -> str:
    """Convert with crawl4ai's markdown generator (tables, links, images).

    Raises:
        ConversionError: If the generator fails.
    """
    generator = build_markdown_generator()
    try:
        generated = generator.generate_markdown(
            html,
            base_url=base_url,
            options=generator.options,
            content_filter=generator.content_filter,
            citations=False,
        )
    except Exception as exc:
        raise ConversionError(f"Markdown generator failed: {exc}") from exc
    markdown = generated.raw_markdown or ""
    if markdown.startswith(_GENERATOR_ERROR_PREFIXES):
        raise ConversionError(markdown)
    return markdown


def convert_baseline(html: str) -> str:
    """Convert with plain html2text; tables are flattened to text.

    Raises:
        ConversionError: If html2text fails.
    """
    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.unicode_snob = True
    converter.ignore_links = False
    converter.ignore_images = False
    converter.ignore_tables = True
    try:
        return converter.handle(html)
    except Exception as exc:
        raise ConversionError(f"html2text failed: {exc}") from exc


def html_to_markdown(html: str, base_url: str = "", image_count: int = 0) -> str:
    """Rich conversion with a baseline retry.

    ``image_count`` is the number of labelled images in ``html``; a rich
    rendition that lost any of them is replaced by the baseline one.

    Raises:
        ConversionError: If both converters fail.
    """
    try:
        markdown = convert_rich(html, base_url)
    except ConversionError as exc:
        LOGGER.warning("Rich markdown conversion failed, retrying baseline: %s", exc)
        return convert_baseline(html)
    missing = missing_image_labels(markdown, image_count)
    if missing:
        LOGGER.warning(
            "Rich markdown conversion dropped image(s) %s, retrying baseline",
            ", ".join(str(k) for k in missing),
        )
        return convert_baseline(html)
    return markdown


def missing_image_labels(markdown: str, image_count: int) -> List[int]:
    """Numbers of the ``Image K`` labels absent from ``markdown``."""
    return [
        k
        for k in range(1, image_count + 1)
        if not re.search(rf"!\[Image {k}(?::|\])", markdown)
    ]


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def clean_attribute(value: Optional[str]) -> str:
    """Collapse an attribute value onto one line."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip()


def looks_like_markup(text: str) -> bool:
    """True when ``text`` is untouched HTML rather than markdown."""
    stripped = text.strip()
    return stripped.startswith("<") and stripped.endswith(">")


def tidy_markdown(markdown: str) -> str:
    """Repair spaced-out links, drop trailing spaces, collapse blank runs."""
    tidied = _LINK_RE.sub(lambda m: f"[{m.group(1)}]({m.group(2)})", markdown)
    tidied = _TRAILING_SPACE_RE.sub("", tidied)
    tidied = _BLANK_RUN_RE.sub("\n\n", tidied)
    return tidied.strip()


def label_images(html: str, alt_map: Dict[str, str]) -> str:
    """Label the K-th sourced image ``Image K: <alt>``; drop images without src."""
    return _label_images(html, alt_map)[0]


def _label_images(html: str, alt_map: Dict[str, str]) -> Tuple[str, int]:
    soup = BeautifulSoup(html, "html.parser")
    index = 0
    for tag in soup.find_all("img"):
        src = (tag.get("src") or "").strip()
        if not src:
            tag.decompose()
            continue
        index += 1
        alt = clean_attribute(alt_map.get(src) or tag.get("alt"))
        label = f"Image {index}: {alt}" if alt else f"Image {index}"
        tag.attrs = {"src": src, "alt": label}
        # crawl4ai drops a bare image sitting next to a block such as a table.
        if tag.parent is not None and tag.parent.name in _BLOCK_PARENTS:
            tag.wrap(soup.new_tag("p"))
    return soup.decode(), index


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------


class ContentFormatter:
    """Turns a :class:`Snapshot` into :class:`FormattedContent`."""

    def __init__(self, describer: Optional[ImageDescriber] = None) -> None:
        self.describer: ImageDescriber = describer or AltTextDescriber()

    async def describe_images(self, imgs: List[ImageBrief]) -> Dict[str, str]:
        """Alt text per image source; failures fall back to a placeholder."""

        async def _describe(image: ImageBrief) -> Optional[str]:
            try:
                return await self.describer.describe(image)
            except Exception as exc:
                LOGGER.warning("Failed to describe image %s: %s", image.src, exc)
                return GENERIC_ALT

        results = await asyncio.gather(*(_describe(image) for image in imgs))
        alt_map: Dict[str, str] = {}
        for image, description in zip(imgs, results):
            if description and image.src:
                alt_map[image.src.strip()] = description
        return alt_map

    async def format(
        self, snapshot: Snapshot, nominal_url: Optional[str] = None
    ) -> FormattedContent:
        parsed = snapshot.parsed
        alt_map: Dict[str, str] = {}
        content = ""

        if parsed and parsed.content:
            alt_map = await self.describe_images(snapshot.imgs)
            content = await self._convert(parsed.content, alt_map, snapshot.href)

        if not content.strip() or looks_like_markup(content):
            content = await self._convert(snapshot.html, alt_map, snapshot.href)

        if not content.strip() or looks_like_markup(content):
            content = snapshot.text

        return FormattedContent(
            title=((parsed.title if parsed else None) or snapshot.title or "").strip(),
            url=nominal_url or snapshot.href.strip(),
            content=tidy_markdown(content),
            published_time=(parsed.published_time if parsed else None) or None,
        )

    async def _convert(self, html: str, alt_map: Dict[str, str], base_url: str) -> str:
        if not html:
            return ""
        try:
            return await asyncio.to_thread(self._convert_sync, html, alt_map, base_url)
        except ConversionError as exc:
            LOGGER.warning("Markdown conversion failed: %s", exc)
            return ""

    @staticmethod
    def _convert_sync(html: str, alt_map: Dict[str, str], base_url: str) -> str:
        labelled, image_count = _label_images(html, alt_map)
        return html_to_markdown(labelled, base_url, image_count)
