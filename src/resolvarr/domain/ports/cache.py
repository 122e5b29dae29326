"""Persistent key-value store shared by workers.

Two services sit on top of it: the credential store (clearance cookies per
domain) and the extraction cache (candidate lists per mirror URL). Each
keeps its own key space via ``cache_key``.
"""

from __future__ import annotations

from typing import Any, Protocol


def cache_key(service: str, key: str) -> str:
    return f"{service}:{key}"


class CachePort(Protocol):
    """Async store holding JSON-compatible values.

    ``ttl=None`` applies the backend default, ``ttl=0`` never expires.
    Backends: DiskcacheAdapter (one host) and RedisAdapter (many hosts).
    """

    async def get(self, key: str) -> Any:
        """Stored value, or None when missing or expired."""
        ...

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> bool:
        """True when something was removed."""
        ...

    async def exists(self, key: str) -> bool: ...

    async def clear(self) -> None: ...

    async def aclose(self) -> None: ...

    async def __aenter__(self) -> CachePort: ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None: ...
