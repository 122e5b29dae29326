"""Port for the external anti-bot challenge-solving service."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from resolvarr.domain.entities.challenge import SolveResult


@runtime_checkable
class ChallengeSolverPort(Protocol):
    """Solves a challenge-guarded URL in a real browser.

    Implementations raise ``TransportError`` subclasses when the service
    itself cannot be reached or times out.
    """

    async def list_sessions(self) -> list[str]:
        """Return the ids of sessions currently alive in the service."""
        ...

    async def create_session(self, session_id: str, *, proxy_url: str | None = None) -> bool:
        """Create *session_id*. True when it exists afterwards."""
        ...

    async def solve(
        self,
        url: str,
        *,
        session_id: str | None = None,
        proxy_url: str | None = None,
        user_agent: str | None = None,
    ) -> SolveResult:
        """Fetch *url* through the solver and report solved/blocked/empty."""
        ...
