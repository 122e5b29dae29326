"""HubDrive pages: locate the onward mirror link and recurse into it."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable

import structlog
from bs4 import BeautifulSoup

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.exceptions import (
    ChallengeUnresolved,
    RequestCancelled,
    SolverUnavailable,
    TransportError,
)
from resolvarr.infrastructure.challenge.bypass import ChallengeBypass
from resolvarr.infrastructure.common.html_selectors import (
    absolute_url,
    first_attr,
    select_items,
)

log = structlog.get_logger(__name__)

DispatchFn = Callable[..., Awaitable[list[LinkCandidate]]]

_PRIMARY_SELECTOR = ".btn.btn-primary.btn-user.btn-success1.m-1"
_ALTERNATIVE_SELECTORS: tuple[str, ...] = (
    "a.btn.btn-primary",
    ".btn-primary",
    'a[href*="download"]',
    "a.btn",
    "#download",
    ".download-btn",
    '[href*="hubcloud.php"]',
    '[href*="gamerxyt.com"]',
)
_FILE_HOSTS: tuple[str, ...] = (
    "vcloud",
    "filebee",
    "gdtot",
    "hubdrive",
    "hubcloud",
    "gdflix",
    "dgdrive",
)
_SKIP_PREFIXES: tuple[str, ...] = ("whatsapp:", "telegram:", "#")
_ONCLICK_HREF = re.compile(r"location\.href\s*=\s*['\"]([^'\"]+)['\"]")


def _usable(href: str) -> bool:
    lower = href.strip().lower()
    if not lower or lower.startswith(_SKIP_PREFIXES) or "t.me/share" in lower:
        return False
    return not lower.startswith("javascript:")


def _element_target(el) -> str:
    href = first_attr(el, "href", "data-href")
    if href:
        return href
    match = _ONCLICK_HREF.search(first_attr(el, "onclick"))
    return match.group(1) if match else ""


def find_mirror_link(document: BeautifulSoup, page_url: str) -> str:
    """Onward link from a HubDrive page, ``""`` when none is present."""
    for el in document.select(_PRIMARY_SELECTOR):
        href = _element_target(el)
        if _usable(href):
            return absolute_url(page_url, href)

    download = document.select_one("#download")
    if download is not None:
        href = _element_target(download)
        if _usable(href):
            return absolute_url(page_url, href)

    for el in select_items(document, *_ALTERNATIVE_SELECTORS):
        href = _element_target(el)
        if _usable(href):
            return absolute_url(page_url, href)

    # Last resort: any anchor pointing at a known file host, vcloud first.
    hosted: list[str] = []
    for el in document.select("a[href]"):
        href = first_attr(el, "href")
        if not _usable(href):
            continue
        lower = href.lower()
        if any(h in lower for h in _FILE_HOSTS) or "download" in el.get_text().lower():
            hosted.append(absolute_url(page_url, href))
    preferred = [h for h in hosted if "vcloud" in h.lower()]
    return (preferred or hosted or [""])[0]


class HubDriveExtractor:
    """Finds the mirror link on a HubDrive page and dispatches it.

    Args:
        bypass: Challenge-aware page fetcher.
        dispatch: Dispatcher entry point, called with ``depth + 1``.
    """

    def __init__(self, *, bypass: ChallengeBypass, dispatch: DispatchFn) -> None:
        self._bypass = bypass
        self._dispatch = dispatch

    @property
    def name(self) -> str:
        return "hubdrive"

    async def extract(
        self,
        url: str,
        *,
        referer: str = "",
        depth: int = 0,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        headers = {"Referer": referer} if referer else {}
        try:
            page = await self._bypass.fetch_page(url, headers=headers, cancel=cancel)
        except RequestCancelled:
            raise
        except (ChallengeUnresolved, SolverUnavailable, TransportError) as e:
            log.warning("hubdrive_fetch_failed", url=url, error=str(e))
            return []

        if page.document is None:
            return []
        link = find_mirror_link(page.document, page.url)
        if not link:
            log.info("hubdrive_no_link", url=url)
            return []

        log.debug("hubdrive_link", url=url, link=link, depth=depth)
        return await self._dispatch(link, referer=url, depth=depth + 1, cancel=cancel)
