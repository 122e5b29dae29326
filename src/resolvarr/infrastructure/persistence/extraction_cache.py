"""Short-lived cache of extraction results keyed by ``url|referer``.

Backed by the persistent store when one is configured, otherwise by an
in-process dict.  Empty results are never cached so a transient failure
is retried on the next call.
"""

from __future__ import annotations

import time

import structlog

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.ports.cache import CachePort, cache_key

log = structlog.get_logger(__name__)


class _MemoryEntry:
    __slots__ = ("candidates", "expires_at")

    def __init__(self, candidates: list[LinkCandidate], ttl: int) -> None:
        self.candidates = candidates
        self.expires_at = time.monotonic() + ttl

    @property
    def is_expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class ExtractionCache:
    """get / put of candidate lists per (url, referer).

    Args:
        cache: Persistent store, or ``None`` for the in-memory fallback.
        ttl_seconds: Result lifetime; ``0`` disables caching.
        service: Service name used to build persistent keys.
    """

    def __init__(
        self,
        *,
        cache: CachePort | None = None,
        ttl_seconds: int = 300,
        service: str = "extraction",
    ) -> None:
        self._cache = cache
        self._ttl = ttl_seconds
        self._service = service
        self._memory: dict[str, _MemoryEntry] = {}

    @staticmethod
    def key(url: str, referer: str = "") -> str:
        return f"{url}|{referer}"

    async def get(self, url: str, referer: str = "") -> list[LinkCandidate] | None:
        if self._ttl <= 0:
            return None
        key = self.key(url, referer)

        if self._cache is None:
            entry = self._memory.get(key)
            if entry is None:
                return None
            if entry.is_expired:
                del self._memory[key]
                return None
            return list(entry.candidates)

        try:
            raw = await self._cache.get(cache_key(self._service, key))
        except Exception as e:  # noqa: BLE001
            log.warning("extraction_cache_read_failed", key=key, error=str(e))
            return None
        if not isinstance(raw, list):
            return None
        try:
            return [LinkCandidate.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError):
            log.warning("extraction_cache_decode_error", key=key)
            return None

    async def put(self, url: str, referer: str, candidates: list[LinkCandidate]) -> None:
        if self._ttl <= 0 or not candidates:
            return
        key = self.key(url, referer)

        if self._cache is None:
            self._memory[key] = _MemoryEntry(list(candidates), self._ttl)
            return

        try:
            await self._cache.set(
                cache_key(self._service, key),
                [c.to_dict() for c in candidates],
                ttl=self._ttl,
            )
        except Exception as e:  # noqa: BLE001
            log.warning("extraction_cache_write_failed", key=key, error=str(e))
