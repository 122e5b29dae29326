"""Anti-bot challenge entities: credentials, solver sessions, lock markers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class ChallengeCredential:
    """Cookie header + matching User-Agent that cleared a domain's challenge."""

    domain: str
    cookie_header: str
    user_agent: str
    won_at: float = field(default_factory=time.time)
    requires_proxy: bool = False

    def headers(self) -> dict[str, str]:
        """Request headers that replay this credential."""
        return {"User-Agent": self.user_agent, "Cookie": self.cookie_header}

    def is_expired(self, ttl_seconds: int, now: float | None = None) -> bool:
        """A TTL of 0 means valid until a request proves it wrong."""
        if ttl_seconds <= 0:
            return False
        current = time.time() if now is None else now
        return current - self.won_at > ttl_seconds

    def to_record(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "cookie_header": self.cookie_header,
            "user_agent": self.user_agent,
            "won_at": self.won_at,
            "requires_proxy": self.requires_proxy,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> ChallengeCredential | None:
        """Rebuild from a persisted record; ``None`` when incomplete."""
        cookie = data.get("cookie_header")
        agent = data.get("user_agent")
        domain = data.get("domain")
        if not cookie or not agent or not domain:
            return None
        return cls(
            domain=domain,
            cookie_header=cookie,
            user_agent=agent,
            won_at=float(data.get("won_at", 0.0)),
            requires_proxy=bool(data.get("requires_proxy", False)),
        )


@dataclass(frozen=True)
class SolverSession:
    """A reusable browser session held by the challenge-solving service."""

    domain: str
    session_id: str
    created_at: float = field(default_factory=time.monotonic)

    def is_fresh(self, ttl_seconds: float, now: float | None = None) -> bool:
        current = time.monotonic() if now is None else now
        return current - self.created_at < ttl_seconds


@dataclass(frozen=True)
class DomainLockMarker:
    """Contents of a lock marker file: which domain, since when (epoch)."""

    domain: str
    created_at: float


class SolveStatus(Enum):
    SOLVED = "solved"
    BLOCKED = "blocked"
    EMPTY = "empty"


@dataclass(frozen=True)
class SolveResult:
    """Outcome of one solve request against the challenge-solving service."""

    status: SolveStatus
    url: str = ""
    body: str = ""
    status_code: int = 0
    cookies: tuple[tuple[str, str], ...] = ()
    user_agent: str = ""

    @property
    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies)
