"""Recursive dispatcher: routes a link to exactly one extractor.

Routing is a first-match table of ``(host fragments, extractor)``; a link
no extractor claims is returned as a terminal direct candidate.

Revisit suppression is scoped to one call chain: the outermost ``dispatch``
opens a fresh visited set, and every nested dispatch made on its behalf
(same task or tasks spawned from it) shares that set.  Independent
resolutions of the same page never see each other's entries.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass

import structlog

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.ports.extractor import LinkExtractorPort
from resolvarr.infrastructure.dispatch.visited import VisitedUrls
from resolvarr.infrastructure.extraction.classify import classify
from resolvarr.infrastructure.extraction.follow_through import title_from_url
from resolvarr.infrastructure.http.policy import hostname

log = structlog.get_logger(__name__)

_BARE_DOMAIN = re.compile(r"^https?://[^/]+/?$", re.IGNORECASE)


def normalize_url(url: str) -> str:
    """Revisit key: no query string, no trailing slash."""
    return url.strip().split("?", 1)[0].split("#", 1)[0].rstrip("/")


def is_bare_domain(url: str) -> bool:
    return bool(_BARE_DOMAIN.match(url.strip()))


@dataclass(frozen=True)
class Route:
    """Hosts containing any of *fragments* go to *extractor*."""

    fragments: tuple[str, ...]
    extractor: LinkExtractorPort

    def matches(self, host: str) -> bool:
        return any(fragment in host for fragment in self.fragments)


class RecursiveDispatcher:
    """Depth-bounded, cycle-safe routing of links to extractors.

    Args:
        new_visited: Builds the visited set for each top-level call chain.
        max_depth: Calls at this depth or deeper return ``[]``.
    """

    def __init__(
        self,
        *,
        new_visited: Callable[[], VisitedUrls] = VisitedUrls,
        max_depth: int = 3,
    ) -> None:
        self._new_visited = new_visited
        self._chain: ContextVar[VisitedUrls | None] = ContextVar(
            f"dispatch_chain_{id(self)}", default=None
        )
        self._max_depth = max_depth
        self._routes: list[Route] = []

    def register(self, fragments: tuple[str, ...], extractor: LinkExtractorPort) -> None:
        """Append a route; earlier registrations win."""
        self._routes.append(Route(fragments=fragments, extractor=extractor))

    @property
    def routes(self) -> list[Route]:
        return list(self._routes)

    def route_for(self, url: str) -> Route | None:
        host = hostname(url)
        return next((r for r in self._routes if r.matches(host)), None)

    async def dispatch(
        self,
        url: str,
        *,
        referer: str = "",
        depth: int = 0,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        visited = self._chain.get()
        if visited is not None:
            return await self._dispatch(url, visited, referer, depth, cancel)

        visited = self._new_visited()
        token = self._chain.set(visited)
        try:
            return await self._dispatch(url, visited, referer, depth, cancel)
        finally:
            self._chain.reset(token)

    async def _dispatch(
        self,
        url: str,
        visited: VisitedUrls,
        referer: str,
        depth: int,
        cancel: asyncio.Event | None,
    ) -> list[LinkCandidate]:
        if depth >= self._max_depth:
            log.info("dispatch_depth_exceeded", url=url, depth=depth)
            return []

        key = normalize_url(url)
        if key in visited:
            log.debug("dispatch_already_visited", url=url, depth=depth)
            return []
        visited.add(key)

        if is_bare_domain(url):
            log.info("dispatch_bare_domain", url=url)
            return []

        route = self.route_for(url)
        if route is None:
            cls = classify(url)
            log.debug("dispatch_direct", url=url, server_type=cls.server_type)
            return [
                LinkCandidate(
                    url=cls.link,
                    title=title_from_url(cls.link),
                    server_type=cls.server_type,
                    priority=cls.priority,
                    display_name=cls.server_type,
                )
            ]

        log.debug("dispatch_route", url=url, extractor=route.extractor.name, depth=depth)
        return await route.extractor.extract(
            url, referer=referer, depth=depth, cancel=cancel
        )
