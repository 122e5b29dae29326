"""CSS-selector-based HTML extraction with fallback chains.

Mirror pages change markup often, so every helper accepts a primary
selector plus *fallback_selectors*; the first selector that yields at
least one match wins.
"""

from __future__ import annotations

from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag


def parse_html(html: str) -> BeautifulSoup:
    """Parse an HTML string into a BeautifulSoup tree (lxml parser)."""
    return BeautifulSoup(html, "lxml")


def looks_like_html(body: str, content_type: str = "") -> bool:
    if "html" in content_type.lower():
        return True
    return body.lstrip()[:1] == "<"


def select_items(
    root: BeautifulSoup | Tag,
    selector: str,
    *fallback_selectors: str,
) -> list[Tag]:
    """Return matches of the first selector that matches anything."""
    for sel in (selector, *fallback_selectors):
        items = root.select(sel)
        if items:
            return items
    return []


def first_attr(element: Tag, *attrs: str) -> str:
    """Value of the first non-empty attribute among *attrs* on *element*."""
    for attr in attrs:
        val = element.get(attr)
        if isinstance(val, list):
            val = " ".join(val)
        if val:
            return str(val).strip()
    return ""


def extract_text(
    root: BeautifulSoup | Tag,
    selector: str,
    *fallback_selectors: str,
    default: str = "",
) -> str:
    """Text of the first matching element with non-empty text."""
    for sel in (selector, *fallback_selectors):
        match = root.select_one(sel)
        if match:
            text = match.get_text(" ", strip=True)
            if text:
                return text
    return default


def absolute_url(base_url: str, href: str) -> str:
    """Resolve *href* against *base_url*; absolute URLs pass through."""
    href = href.strip()
    if not href:
        return ""
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base_url, href)
