"""Link discovery on mirror pages.

Two modes:

- ``discover_links``: landing pages.  Strategies run in a fixed order and
  the first one yielding a usable link wins: broad download selectors,
  meta refresh, inline script navigation, ``onclick`` handlers, ``data-*``
  URL attributes, iframes, then a raw-text scan (absolute URLs,
  ``var url =``, ``atob('...')`` and bare base64 ``aHR0c...`` strings).
- ``enumerate_buttons``: button pages.  Every button-like anchor plus
  every script/onclick navigation target, deduplicated.
"""

from __future__ import annotations

import base64
import binascii
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from resolvarr.infrastructure.common.html_selectors import (
    absolute_url,
    extract_text,
    first_attr,
    select_items,
)
from resolvarr.infrastructure.extraction.filters import dedupe_key


@dataclass(frozen=True)
class RawLink:
    """A link as found on the page, before classification."""

    url: str
    text: str = ""
    element_id: str = ""
    style: str = ""
    source: str = "anchor"


@dataclass(frozen=True)
class PageLabels:
    header: str = ""
    size_label: str = ""
    quality_label: str = "2160p"


# ---------------------------------------------------------------------------
# Selectors and patterns
# ---------------------------------------------------------------------------

_PRIMARY_SELECTOR = "a#download"
_ALTERNATIVE_SELECTORS: tuple[str, ...] = (
    'a[href*="hubcloud.php"]',
    'a[href*="gamerxyt.com"]',
    'a[href*="hubcloud.one"]',
    ".download-btn",
    'a[href*="download"]',
    "a.btn.btn-primary",
    ".btn[href]",
    ".btn-success",
    ".btn-danger",
    ".btn-secondary",
)
_BUTTON_SELECTOR = 'a.btn, a[class*="btn"]'
_DATA_ATTRS: tuple[str, ...] = (
    "data-href",
    "data-url",
    "data-link",
    "data-download",
    "data-file",
    "data-clipboard-text",
)

_META_URL = re.compile(r"url\s*=\s*([^;]+)", re.IGNORECASE)
_SCRIPT_NAV = re.compile(
    r"location(?:\.href)?\s*=\s*['\"]([^'\"]+)['\"]"
    r"|location\.(?:href|replace|assign)\s*\(\s*['\"]([^'\"]+)['\"]"
)
_ONCLICK_NAV = re.compile(
    r"(?:location\.(?:href|replace|assign)|window\.open)\s*[=(]?\s*['\"]([^'\"]+)['\"]"
)
_RAW_URL = re.compile(r"https?://[^\s\"'<>\\]+")
_VAR_URL = re.compile(r"var\s+url\s*=\s*['\"]([^'\"]+)['\"]")
_ATOB = re.compile(r"atob\(\s*['\"]([A-Za-z0-9+/=]+)['\"]\s*\)")
_BARE_BASE64_URL = re.compile(r"['\"](aHR0c[A-Za-z0-9+/=]{10,})['\"]")

_RELEVANT_TERMS: tuple[str, ...] = (
    "hubcloud",
    "hubdrive",
    "gamerxyt",
    "hubcdn",
    "workers.dev",
    "pixeldrain",
    "/?id=",
    "download",
)
_EXCLUDED_PREFIXES: tuple[str, ...] = (
    "javascript:",
    "mailto:",
    "whatsapp:",
    "tg:",
    "telegram:",
    "#",
)
_EXCLUDED_FRAGMENTS: tuple[str, ...] = ("t.me/", "telegram.me", "api.whatsapp.com")
_STATIC_ASSET = re.compile(r"\.(?:css|js|png|jpe?g|gif|webp|svg|ico|woff2?)(?:[?#]|$)", re.I)

_SIZE = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*(TB|GB|MB|KB)", re.IGNORECASE)
_QUALITY = re.compile(r"(\d{3,4})[pP]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_usable(link: str, page_url: str) -> bool:
    lower = link.strip().lower()
    if not lower or lower.startswith(_EXCLUDED_PREFIXES):
        return False
    if any(f in lower for f in _EXCLUDED_FRAGMENTS):
        return False
    if _STATIC_ASSET.search(lower):
        return False
    return dedupe_key(link) != dedupe_key(page_url)


def is_relevant(link: str) -> bool:
    lower = link.lower()
    return any(term in lower for term in _RELEVANT_TERMS)


def _decode_base64_url(encoded: str) -> str:
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        decoded = base64.b64decode(padded).decode("utf-8", errors="strict")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return ""
    return decoded.strip() if decoded.startswith(("http://", "https://")) else ""


def _collect(
    page_url: str,
    items: Iterable[RawLink],
    *,
    accept: Callable[[str], bool] | None = None,
) -> list[RawLink]:
    out: list[RawLink] = []
    seen: set[str] = set()
    for item in items:
        url = absolute_url(page_url, item.url)
        if not url or not is_usable(url, page_url):
            continue
        if accept is not None and not accept(url):
            continue
        key = dedupe_key(url)
        if key in seen:
            continue
        seen.add(key)
        out.append(RawLink(url, item.text, item.element_id, item.style, item.source))
    return out


def _anchor(element: Tag, href: str, source: str = "anchor") -> RawLink:
    return RawLink(
        url=href,
        text=element.get_text(" ", strip=True),
        element_id=first_attr(element, "id"),
        style=first_attr(element, "style"),
        source=source,
    )


def _script_text(document: BeautifulSoup) -> str:
    return "\n".join(s.get_text() for s in document.find_all("script"))


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def _from_selectors(document: BeautifulSoup) -> list[RawLink]:
    items = select_items(document, _PRIMARY_SELECTOR, *_ALTERNATIVE_SELECTORS)
    return [_anchor(el, first_attr(el, "href", "data-href")) for el in items]


def _from_meta_refresh(document: BeautifulSoup) -> list[RawLink]:
    out: list[RawLink] = []
    for meta in document.find_all("meta"):
        if first_attr(meta, "http-equiv").lower() != "refresh":
            continue
        match = _META_URL.search(first_attr(meta, "content"))
        if match:
            out.append(RawLink(match.group(1).strip(" '\""), source="meta_refresh"))
    return out


def _script_targets(text: str) -> list[RawLink]:
    return [
        RawLink(m.group(1) or m.group(2), source="script")
        for m in _SCRIPT_NAV.finditer(text)
    ]


def _from_scripts(document: BeautifulSoup) -> list[RawLink]:
    return _script_targets(_script_text(document))


def _from_onclick(document: BeautifulSoup) -> list[RawLink]:
    out: list[RawLink] = []
    for el in document.select("[onclick]"):
        match = _ONCLICK_NAV.search(first_attr(el, "onclick"))
        if match:
            out.append(_anchor(el, match.group(1), source="onclick"))
    return out


def _from_data_attrs(document: BeautifulSoup) -> list[RawLink]:
    selector = ", ".join(f"[{attr}]" for attr in _DATA_ATTRS)
    return [
        _anchor(el, first_attr(el, *_DATA_ATTRS), source="data_attr")
        for el in document.select(selector)
    ]


def _from_iframes(document: BeautifulSoup) -> list[RawLink]:
    return [
        RawLink(first_attr(el, "src"), source="iframe")
        for el in document.select("iframe[src], frame[src]")
    ]


def scan_raw_text(body: str) -> list[RawLink]:
    """Relevant URLs embedded anywhere in *body*, including base64 ones."""
    found: list[RawLink] = []
    found.extend(RawLink(m.group(0), source="raw") for m in _RAW_URL.finditer(body))
    found.extend(_script_targets(body))
    found.extend(RawLink(m.group(1), source="raw") for m in _VAR_URL.finditer(body))
    for pattern in (_ATOB, _BARE_BASE64_URL):
        for m in pattern.finditer(body):
            decoded = _decode_base64_url(m.group(1))
            if decoded:
                found.append(RawLink(decoded, source="base64"))
    return found


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def discover_links(document: BeautifulSoup | None, body: str, page_url: str) -> list[RawLink]:
    """First strategy with a usable link wins; ``[]`` when all fail."""
    if document is not None:
        strategies = (
            _from_selectors,
            _from_meta_refresh,
            _from_scripts,
            _from_onclick,
            _from_data_attrs,
            _from_iframes,
        )
        for strategy in strategies:
            links = _collect(page_url, strategy(document))
            if links:
                return links
    return _collect(page_url, scan_raw_text(body), accept=is_relevant)


def enumerate_buttons(
    document: BeautifulSoup | None,
    page_url: str,
    *,
    limit: int = 15,
) -> list[RawLink]:
    """Button anchors plus script/onclick navigation targets, capped."""
    if document is None:
        return []
    items: list[RawLink] = [
        _anchor(el, first_attr(el, "href"))
        for el in select_items(document, _BUTTON_SELECTOR, "a[href]")
    ]
    items.extend(_from_scripts(document))
    items.extend(_from_onclick(document))
    return _collect(page_url, items)[:limit]


def page_labels(document: BeautifulSoup | None) -> PageLabels:
    if document is None:
        return PageLabels()
    header = extract_text(document, "div.card-header", "title")
    size_text = extract_text(document, "i#size")
    size = ""
    match = _SIZE.search(size_text)
    if match:
        size = f"{match.group(1)} {match.group(2).upper()}"
    quality = _QUALITY.search(header)
    return PageLabels(
        header=header,
        size_label=size,
        quality_label=f"{quality.group(1)}p" if quality else "2160p",
    )
