"""Mirror-page extraction engine (HubCloud family).

Pipeline for one page::

    fetch (challenge bypass) -> discover gateway / buttons
        -> follow-through (concurrent) -> direct-stream promotion
        -> filter + dedupe -> cap -> range validation -> rank

Landing pages usually link to a gateway page (``hubcloud.php`` or
``gamerxyt``) that carries the actual server buttons; links discovered
on a landing page that are not gateways become candidates themselves.
"""

from __future__ import annotations

import asyncio
import re

import structlog

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.exceptions import (
    ChallengeUnresolved,
    ExtractionNotFound,
    RequestCancelled,
    SolverUnavailable,
    TransportError,
)
from resolvarr.domain.ports.link_validator import LinkValidatorPort
from resolvarr.infrastructure.challenge.bypass import ChallengeBypass, is_challenged
from resolvarr.infrastructure.extraction.discovery import (
    PageLabels,
    RawLink,
    discover_links,
    enumerate_buttons,
    page_labels,
)
from resolvarr.infrastructure.extraction.filters import (
    filter_candidates,
    is_dead_mirror,
    rank,
)
from resolvarr.infrastructure.extraction.follow_through import FollowThrough
from resolvarr.infrastructure.http.transport import FetchResult
from resolvarr.infrastructure.persistence.extraction_cache import ExtractionCache

log = structlog.get_logger(__name__)

_GATEWAY_FRAGMENTS = ("hubcloud.php", "gamerxyt")
_STREAM_PAGE_FRAGMENTS = ("hubcloud", "hubdrive")
_DIRECT_STREAM_SUFFIX = "[Direct Stream]"

_VIDEO_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'sources:\s*\[\s*{\s*file:\s*"([^"]+)"'),
    re.compile(r'file:\s*"([^"]+\.(?:mp4|mkv|avi|webm|m3u8)[^"]*)"'),
    re.compile(r'src:\s*"([^"]+\.(?:mp4|mkv|avi|webm|m3u8)[^"]*)"'),
    re.compile(r'"file"\s*:\s*"([^"]+)"'),
    re.compile(r'"src"\s*:\s*"([^"]+\.(?:mp4|mkv|avi|webm|m3u8)[^"]*)"'),
    re.compile(r'<video[^>]*src="([^"]+)"'),
)


def is_gateway(url: str) -> bool:
    lower = url.lower()
    return any(fragment in lower for fragment in _GATEWAY_FRAGMENTS)


def find_video_source(body: str) -> str | None:
    """First player source URL embedded in *body*."""
    for pattern in _VIDEO_PATTERNS:
        match = pattern.search(body)
        if match and match.group(1).startswith(("http://", "https://")):
            return match.group(1).replace("\\/", "/")
    return None


def _merge_labels(primary: PageLabels, secondary: PageLabels) -> PageLabels:
    header = primary.header or secondary.header
    return PageLabels(
        header=header,
        size_label=primary.size_label or secondary.size_label,
        quality_label=primary.quality_label
        if primary.header
        else secondary.quality_label,
    )


class MirrorPageExtractor:
    """Extracts validated, ranked candidates from a mirror page.

    Expected failures (challenge not bypassed, solver unavailable, page
    unreachable, nothing found) yield ``[]``; cancellation propagates.
    """

    def __init__(
        self,
        *,
        bypass: ChallengeBypass,
        follow_through: FollowThrough,
        validator: LinkValidatorPort,
        cache: ExtractionCache,
        max_buttons: int = 15,
        max_validations: int = 10,
        name: str = "hubcloud",
    ) -> None:
        self._bypass = bypass
        self._follow = follow_through
        self._validator = validator
        self._cache = cache
        self._max_buttons = max_buttons
        self._max_validations = max_validations
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def extract(
        self,
        url: str,
        *,
        referer: str = "",
        depth: int = 0,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        if is_dead_mirror(url):
            log.info("mirror_dead_domain", url=url)
            return []

        cached = await self._cache.get(url, referer)
        if cached is not None:
            log.debug("mirror_cache_hit", url=url, count=len(cached))
            return cached

        page = await self._fetch(url, referer=referer, cancel=cancel)
        if page is None:
            return []

        try:
            raw_links, labels = await self._raw_links(page, cancel=cancel)
        except ExtractionNotFound as e:
            log.info("mirror_no_links", url=url, depth=depth, reason=str(e))
            return []

        candidates = await self._follow.resolve_all(
            raw_links[: self._max_buttons], labels, cancel=cancel
        )
        candidates = await self._promote_direct_streams(candidates, cancel=cancel)

        filtered, dropped = filter_candidates(candidates)
        if dropped:
            log.debug("mirror_candidates_dropped", url=url, **dropped)

        to_validate = rank(filtered)[: self._max_validations]
        validated = await self._validator.validate_candidates(to_validate)
        result = rank(validated)

        log.info(
            "mirror_extracted",
            url=url,
            depth=depth,
            discovered=len(raw_links),
            candidates=len(filtered),
            valid=len(result),
        )
        await self._cache.put(url, referer, result)
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _fetch(
        self, url: str, *, referer: str = "", cancel: asyncio.Event | None = None
    ) -> FetchResult | None:
        headers = {"Referer": referer} if referer else {}
        try:
            return await self._bypass.fetch_page(url, headers=headers, cancel=cancel)
        except RequestCancelled:
            raise
        except SolverUnavailable as e:
            log.warning("mirror_solver_unavailable", url=url, reason=e.reason)
        except ChallengeUnresolved:
            log.warning("mirror_challenge_unresolved", url=url)
        except TransportError as e:
            log.warning("mirror_fetch_failed", url=url, error=str(e), error_type=type(e).__name__)
        return None

    async def _raw_links(
        self, page: FetchResult, *, cancel: asyncio.Event | None = None
    ) -> tuple[list[RawLink], PageLabels]:
        labels = page_labels(page.document)
        if is_gateway(page.url):
            buttons = enumerate_buttons(page.document, page.url, limit=self._max_buttons)
            if not buttons:
                raise ExtractionNotFound(f"no buttons on {page.url}")
            return buttons, labels

        discovered = discover_links(page.document, page.body, page.url)
        if not discovered:
            raise ExtractionNotFound(f"no download links on {page.url}")
        gateway = next((link for link in discovered if is_gateway(link.url)), None)
        if gateway is None:
            return discovered, labels

        log.debug("mirror_gateway", url=page.url, gateway=gateway.url)
        button_page = await self._fetch(gateway.url, referer=page.url, cancel=cancel)
        if button_page is None:
            raise ExtractionNotFound(f"gateway {gateway.url} unreachable")
        merged = _merge_labels(page_labels(button_page.document), labels)
        buttons = enumerate_buttons(
            button_page.document, button_page.url, limit=self._max_buttons
        )
        if not buttons:
            raise ExtractionNotFound(f"no buttons on gateway {button_page.url}")
        return buttons, merged

    async def _promote_direct_streams(
        self,
        candidates: list[LinkCandidate],
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        return list(
            await asyncio.gather(
                *(self._promote(c, cancel=cancel) for c in candidates)
            )
        )

    async def _promote(
        self, candidate: LinkCandidate, *, cancel: asyncio.Event | None = None
    ) -> LinkCandidate:
        lower = candidate.url.lower()
        if not any(f in lower for f in _STREAM_PAGE_FRAGMENTS):
            return candidate
        try:
            page = await self._bypass.fetch_page(
                candidate.url, cancel=cancel, use_solver=False
            )
        except RequestCancelled:
            raise
        except (ChallengeUnresolved, SolverUnavailable, TransportError):
            return candidate
        if is_challenged(page):
            return candidate

        source = find_video_source(page.body)
        if source is None:
            return candidate
        log.debug("direct_stream_promoted", url=candidate.url, stream=source)
        return candidate.with_url(source, suffix=_DIRECT_STREAM_SUFFIX)
