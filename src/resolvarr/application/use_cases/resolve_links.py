"""Resolve a mirror page reference into ranked, playable link candidates."""

from __future__ import annotations

import asyncio

import structlog

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.exceptions import RequestCancelled, ResolvarrError
from resolvarr.domain.ports.dispatcher import LinkDispatcherPort

log = structlog.get_logger(__name__)


class ResolveLinksUseCase:
    """Caller-facing entry point of the resolution pipeline.

    Never raises for expected failures: an unbypassable challenge, an
    unavailable solver, an unreachable page, cancellation or simply no
    links all come back as ``[]``.  The cause is only visible in logs.
    """

    def __init__(self, dispatcher: LinkDispatcherPort) -> None:
        self._dispatcher = dispatcher

    async def resolve(
        self,
        url: str,
        *,
        referer: str | None = None,
        depth: int = 0,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        """Resolve *url*.

        Args:
            url: Mirror page (or direct) link.
            referer: Page that linked to *url*, forwarded as ``Referer``.
            depth: Starting recursion depth.
            cancel: Optional signal; once set, in-flight requests are torn
                down and ``[]`` is returned.

        Returns:
            Candidates sorted by descending priority (may be empty).
        """
        if not url or not url.strip():
            return []

        url = url.strip()
        # Every log line emitted while resolving carries the root URL.
        with structlog.contextvars.bound_contextvars(resolve_root=url):
            try:
                candidates = await self._dispatcher.dispatch(
                    url, referer=referer or "", depth=depth, cancel=cancel
                )
            except RequestCancelled:
                log.info("resolve_cancelled", url=url)
                return []
            except ResolvarrError as e:
                log.warning(
                    "resolve_failed", url=url, error=str(e), error_type=type(e).__name__
                )
                return []
            except Exception:  # noqa: BLE001
                log.warning("resolve_unexpected_error", url=url, exc_info=True)
                return []

        log.info("resolve_complete", url=url, count=len(candidates))
        return candidates
