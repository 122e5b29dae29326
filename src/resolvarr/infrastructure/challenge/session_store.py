"""In-memory cache of solver sessions with a freshness window."""

from __future__ import annotations

import time

import structlog

from resolvarr.domain.entities.challenge import SolverSession
from resolvarr.domain.ports.challenge_solver import ChallengeSolverPort

log = structlog.get_logger(__name__)


class SolverSessionStore:
    """Hands out one solver session per domain, recreating stale ones.

    Session ids are ``<prefix>_<domain with dots as underscores>`` so
    every process targets the same solver-side session for a domain.
    """

    def __init__(self, *, prefix: str = "resolvarr", ttl_seconds: float = 600.0) -> None:
        self._prefix = prefix
        self._ttl = ttl_seconds
        self._sessions: dict[str, SolverSession] = {}

    def session_id(self, domain: str) -> str:
        return f"{self._prefix}_{domain.replace('.', '_')}"

    async def ensure_session(
        self,
        domain: str,
        solver: ChallengeSolverPort,
        *,
        proxy_url: str | None = None,
    ) -> str | None:
        """Return a usable session id, or ``None`` if none could be made."""
        cached = self._sessions.get(domain)
        if cached is not None and cached.is_fresh(self._ttl):
            return cached.session_id

        session_id = self.session_id(domain)
        existing = await solver.list_sessions()
        if session_id not in existing:
            if not await solver.create_session(session_id, proxy_url=proxy_url):
                log.warning("solver_session_create_failed", domain=domain)
                self._sessions.pop(domain, None)
                return None
            log.info("solver_session_created", domain=domain, session=session_id)

        self._sessions[domain] = SolverSession(
            domain=domain, session_id=session_id, created_at=time.monotonic()
        )
        return session_id

    def forget(self, domain: str) -> None:
        self._sessions.pop(domain, None)

    def __len__(self) -> int:
        return len(self._sessions)
