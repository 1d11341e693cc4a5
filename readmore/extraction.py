"""Page snapshot extraction.

The rendering engine evaluates :data:`SNAPSHOT_JS` inside the page to
collect the document state; the readability projection and image
filtering then run host-side on the serialized DOM.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from readability import Document

from .document import ImageBrief, ParsedArticle, Snapshot

LOGGER = logging.getLogger(__name__)

SNAPSHOT_FUNCTION = "__readmoreSnapshot"
REPORT_BINDING = "reportSnapshot"

# Installed with add_init_script so it exists before any page script runs.
SNAPSHOT_JS = """
(() => {
    function briefImgs(elem) {
        const imageTags = Array.from((elem || document).querySelectorAll('img[src]'));
        return imageTags.map((x) => ({
            src: x.src,
            loaded: x.complete,
            width: x.width,
            height: x.height,
            naturalWidth: x.naturalWidth,
            naturalHeight: x.naturalHeight,
            alt: x.alt || x.title,
        }));
    }
    window.%s = function () {
        return {
            title: document.title,
            href: document.location.href,
            html: document.documentElement ? document.documentElement.outerHTML : '',
            text: document.body ? document.body.innerText : '',
            imgs: briefImgs(document),
        };
    };
})();
""" % SNAPSHOT_FUNCTION

SNAPSHOT_EXPRESSION = f"() => window.{SNAPSHOT_FUNCTION}()"


def build_snapshot(raw: Optional[Dict[str, Any]]) -> Snapshot:
    """Turn the in-page payload into a :class:`Snapshot`."""
    raw = raw or {}
    href = str(raw.get("href") or "")
    html = str(raw.get("html") or "")
    parsed = parse_article(html, href) if html else None

    imgs: List[ImageBrief] = []
    if parsed and parsed.content:
        page_imgs = [
            ImageBrief.from_dict(item)
            for item in raw.get("imgs") or []
            if isinstance(item, dict)
        ]
        imgs = brief_article_images(parsed.content, page_imgs)

    return Snapshot(
        title=str(raw.get("title") or ""),
        href=href,
        html=html,
        text=str(raw.get("text") or ""),
        parsed=parsed,
        imgs=imgs,
    )


def parse_article(html: str, base_url: str) -> Optional[ParsedArticle]:
    """Run readability over ``html``; None when no article can be parsed."""
    try:
        document = Document(html, url=base_url or None)
        summary_html = document.summary(html_partial=True)
        title = document.short_title() or document.title()
    except Exception as exc:
        LOGGER.debug("Readability failed for %s: %s", base_url, exc)
        return None

    summary = BeautifulSoup(summary_html, "html.parser")
    _absolutize(summary, base_url)
    text_content = summary.get_text(" ", strip=True)
    if not text_content and not summary.find("img"):
        return None

    page = BeautifulSoup(html, "html.parser")
    html_tag = page.find("html")
    lang = html_tag.get("lang") if html_tag else None

    excerpt = _meta(page, name="description") or _meta(page, prop="og:description")
    if not excerpt:
        first_paragraph = summary.find("p")
        if first_paragraph:
            excerpt = first_paragraph.get_text(" ", strip=True) or None

    return ParsedArticle(
        title=title or None,
        content=summary.decode(),
        text_content=text_content,
        excerpt=excerpt,
        byline=_meta(page, name="author"),
        lang=lang or None,
        published_time=_meta(page, prop="article:published_time"),
        site_name=_meta(page, prop="og:site_name"),
        length=len(text_content),
    )


def brief_article_images(
    content_html: str, page_imgs: List[ImageBrief]
) -> List[ImageBrief]:
    """Briefs for the images in ``content_html``, in document order."""
    by_src = {img.src.strip(): img for img in page_imgs if img.src}
    soup = BeautifulSoup(content_html, "html.parser")
    briefs: List[ImageBrief] = []
    for tag in soup.find_all("img"):
        src = (tag.get("src") or "").strip()
        if not src:
            continue
        known = by_src.get(src)
        if known is not None:
            briefs.append(known)
        else:
            briefs.append(
                ImageBrief(src=src, alt=tag.get("alt") or tag.get("title") or None)
            )
    return briefs


def _absolutize(soup: BeautifulSoup, base_url: str) -> None:
    if not base_url:
        return
    for tag in soup.find_all("img"):
        src = tag.get("src")
        if src and not src.startswith("data:"):
            tag["src"] = urljoin(base_url, src.strip())
    for tag in soup.find_all("a"):
        href = tag.get("href")
        if href and not href.startswith(("#", "javascript:", "mailto:")):
            tag["href"] = urljoin(base_url, href.strip())


def _meta(
    soup: BeautifulSoup, *, name: Optional[str] = None, prop: Optional[str] = None
) -> Optional[str]:
    attrs = {"name": name} if name else {"property": prop}
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None
