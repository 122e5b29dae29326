"""Host-specific follow-through for discovered links.

Turns a ``RawLink`` into a ``LinkCandidate``.  Most hosts need nothing
but classification; a few need one or more extra requests:

- BuzzServer: ``GET {link}/download`` without redirects, target in the
  ``hx-redirect`` or ``Location`` header.
- 10Gbps: walk ``Location`` hops until the URL carries ``link=``.
- Mega: load the landing page and pick the real download/video link.

Any ``TransportError`` drops the single candidate; cancellation is
re-raised.
"""

from __future__ import annotations

import asyncio
from pathlib import PurePosixPath
from urllib.parse import unquote, urljoin, urlparse

import structlog

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.exceptions import RequestCancelled, TransportError
from resolvarr.infrastructure.common.html_selectors import first_attr, select_items
from resolvarr.infrastructure.extraction.classify import (
    Classification,
    classify,
    normalize_pixeldrain,
)
from resolvarr.infrastructure.extraction.discovery import PageLabels, RawLink
from resolvarr.infrastructure.http.fetcher import RetryingFetcher

log = structlog.get_logger(__name__)

_TRACKING_HOSTS = ("pixel.hubcdn.fans", "pixel.rohitkiskk.workers.dev")
_DIRECT_TEXT_MARKERS = ("fsl", "download file", "s3 server")
_MEGA_DOWNLOAD_SELECTOR = ".js-download, button.js-download, a.download"
_MEGA_DEAD_END = "transfer.it"
_VIDEO_MARKERS = ("workers.dev", ".mkv", ".mp4", ".avi")
_KNOWN_EXTENSIONS = frozenset({".mkv", ".mp4", ".avi", ".webm", ".m3u8", ".zip"})


def title_from_url(url: str, fallback: str = "") -> str:
    """File name from the URL path without extension, else *fallback*."""
    name = unquote(PurePosixPath(urlparse(url).path).name)
    if not name or "." not in name:
        return fallback
    stem, _, ext = name.rpartition(".")
    if f".{ext.lower()}" not in _KNOWN_EXTENSIONS or not stem:
        return fallback
    return stem


def display_name(server_type: str, labels: PageLabels) -> str:
    parts = [server_type]
    if labels.quality_label:
        parts.append(labels.quality_label)
    if labels.size_label:
        parts.append(f"[{labels.size_label}]")
    return " ".join(parts)


class FollowThrough:
    """Resolves raw links into candidates, one network detour at most.

    Args:
        fetcher: Plain HTTP fetcher (no challenge handling).
        max_redirect_hops: Hop bound for redirect-chain hosts.
    """

    def __init__(self, fetcher: RetryingFetcher, *, max_redirect_hops: int = 3) -> None:
        self._fetcher = fetcher
        self._max_hops = max_redirect_hops

    async def resolve_all(
        self,
        raw_links: list[RawLink],
        labels: PageLabels,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        """Resolve every link concurrently; order follows *raw_links*."""
        results = await asyncio.gather(
            *(self.resolve(raw, labels, cancel=cancel) for raw in raw_links),
            return_exceptions=True,
        )
        candidates: list[LinkCandidate] = []
        for raw, result in zip(raw_links, results):
            if isinstance(result, RequestCancelled):
                raise result
            if isinstance(result, BaseException):
                log.warning(
                    "follow_through_failed",
                    url=raw.url,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                continue
            if result is not None:
                candidates.append(result)
        return candidates

    async def resolve(
        self,
        raw: RawLink,
        labels: PageLabels,
        *,
        cancel: asyncio.Event | None = None,
    ) -> LinkCandidate | None:
        link = raw.url
        lower = link.lower()
        if any(host in lower for host in _TRACKING_HOSTS):
            return None

        cls = classify(link, raw.text, element_id=raw.element_id, style=raw.style)
        try:
            target = await self._target(raw, cls, cancel)
        except RequestCancelled:
            raise
        except TransportError as e:
            log.info("follow_through_dropped", url=link, error=str(e))
            return None

        if not target:
            return None
        return LinkCandidate(
            url=target,
            title=title_from_url(target, labels.header),
            quality_label=labels.quality_label,
            size_label=labels.size_label,
            server_type=cls.server_type,
            priority=cls.priority,
            display_name=display_name(cls.server_type, labels),
        )

    async def _target(
        self, raw: RawLink, cls: Classification, cancel: asyncio.Event | None
    ) -> str | None:
        link = cls.link
        lower = link.lower()
        text = raw.text.lower()

        if "workers.dev" in lower or "hubcdn.fans" in lower:
            if ".zip" in lower and "workers.dev" not in lower:
                return None
            return link
        if any(marker in text for marker in _DIRECT_TEXT_MARKERS):
            return link
        if "buzzserver" in text:
            return await self._buzz(link, cancel)
        if "pixeldrain" in lower or "pixeld" in lower:
            return normalize_pixeldrain(link)
        if "10gbps" in text:
            return await self._ten_gbps(link, cancel)
        if cls.server_type == "Mega":
            return await self._mega(link, cancel)
        return link

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _buzz(self, link: str, cancel: asyncio.Event | None) -> str | None:
        url = link.rstrip("/") + "/download"
        resp = await self._fetcher.fetch(
            url,
            headers={"Referer": link},
            follow_redirects=False,
            parse_html=False,
            cancel=cancel,
        )
        target = resp.headers.get("hx-redirect") or resp.headers.get("location")
        if not target:
            log.debug("buzz_no_redirect", url=url, status=resp.status_code)
            return None
        return urljoin(link, target)

    async def _ten_gbps(self, link: str, cancel: asyncio.Event | None) -> str:
        """Target from the first hop carrying ``link=``; the link itself otherwise."""
        current = link
        for _ in range(self._max_hops):
            resp = await self._fetcher.fetch(
                current, follow_redirects=False, parse_html=False, cancel=cancel
            )
            location = resp.headers.get("location")
            if not location:
                break
            current = urljoin(current, location)
            if "link=" in current:
                return current.split("link=", 1)[1]
        log.debug("ten_gbps_unresolved", url=link, last=current)
        return link

    async def _mega(self, link: str, cancel: asyncio.Event | None) -> str | None:
        resp = await self._fetcher.fetch(link, cancel=cancel)
        if _MEGA_DEAD_END in resp.url.lower():
            return None
        document = resp.document
        if document is None:
            return None

        for el in select_items(document, _MEGA_DOWNLOAD_SELECTOR):
            href = first_attr(el, "data-url", "data-href", "href")
            if href:
                return urljoin(resp.url, href)
        for el in document.select("a[href]"):
            href = first_attr(el, "href")
            if any(marker in href.lower() for marker in _VIDEO_MARKERS):
                return urljoin(resp.url, href)
        return None
