"""Port for host-specific extraction routines."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from resolvarr.domain.entities.links import LinkCandidate


@runtime_checkable
class LinkExtractorPort(Protocol):
    """Turns one mirror/host page into link candidates.

    Expected failures (challenge, nothing found) yield ``[]``.
    """

    @property
    def name(self) -> str:
        ...

    async def extract(
        self,
        url: str,
        *,
        referer: str = "",
        depth: int = 0,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        ...
