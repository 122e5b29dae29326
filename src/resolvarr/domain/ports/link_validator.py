"""Port for seekability validation of candidate links."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from resolvarr.domain.entities.links import LinkCandidate


@runtime_checkable
class LinkValidatorPort(Protocol):
    """Confirms that candidate URLs honour HTTP range requests."""

    async def validate(self, url: str) -> bool:
        """True if a range probe gets partial-content semantics back."""
        ...

    async def validate_candidates(
        self, candidates: list[LinkCandidate]
    ) -> list[LinkCandidate]:
        """Drop candidates that fail probing; keeps input order."""
        ...
