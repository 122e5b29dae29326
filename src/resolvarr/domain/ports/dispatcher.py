"""Port for the link dispatcher (routes a link to one extractor)."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from resolvarr.domain.entities.links import LinkCandidate


@runtime_checkable
class LinkDispatcherPort(Protocol):
    async def dispatch(
        self,
        url: str,
        *,
        referer: str = "",
        depth: int = 0,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        ...
