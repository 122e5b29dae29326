"""Time-evicted set of recently dispatched URLs."""

from __future__ import annotations

import time


class VisitedUrls:
    """Membership with per-entry expiry (no size bound).

    Expired entries are purged lazily on every ``add``/``__contains__``.
    """

    def __init__(self, ttl_seconds: float = 300.0) -> None:
        self._ttl = ttl_seconds
        self._entries: dict[str, float] = {}

    def _purge(self, now: float) -> None:
        expired = [url for url, expires_at in self._entries.items() if expires_at <= now]
        for url in expired:
            del self._entries[url]

    def __contains__(self, url: object) -> bool:
        self._purge(time.monotonic())
        return url in self._entries

    def add(self, url: str) -> None:
        now = time.monotonic()
        self._purge(now)
        self._entries[url] = now + self._ttl

    def __len__(self) -> int:
        self._purge(time.monotonic())
        return len(self._entries)
