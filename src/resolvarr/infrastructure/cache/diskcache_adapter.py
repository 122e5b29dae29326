"""Diskcache adapter - SQLite store that workers on one host share."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import structlog
from diskcache import Cache as DiskCache

log = structlog.get_logger(__name__)


class DiskcacheAdapter:
    """Async wrapper for diskcache.Cache.

    diskcache is sync-only, so every call runs in a worker thread behind a
    semaphore (SQLite serializes writers anyway). Values are stored as JSON
    text, and each entry is tagged with ``namespace`` so ``clear()`` evicts
    only this application's entries from a shared directory. ``ttl=0``
    stores without expiry.

    Args:
        directory: SQLite DB directory.
        ttl_seconds: Default TTL for `set()` without explicit value.
        max_concurrent: Max parallel disk ops.
        namespace: Tag applied to every entry.
    """

    def __init__(
        self,
        directory: str | Path = "./.cache/resolvarr",
        ttl_seconds: int = 3600,
        max_concurrent: int = 10,
        namespace: str = "resolvarr",
    ) -> None:
        self.directory = Path(directory)
        self.default_ttl = ttl_seconds
        self.namespace = namespace
        self._store: DiskCache | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

    def _require(self) -> DiskCache:
        if self._store is None:
            raise RuntimeError("Diskcache not initialized. Use 'async with cache:'")
        return self._store

    async def _run(self, fn, *args: Any, **kwargs: Any) -> Any:
        async with self._semaphore:
            return await asyncio.to_thread(fn, *args, **kwargs)

    async def __aenter__(self) -> DiskcacheAdapter:
        if self._store is None:
            self._store = await asyncio.to_thread(DiskCache, str(self.directory))
            log.info(
                "diskcache_opened", path=str(self.directory), namespace=self.namespace
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._store is not None:
            store, self._store = self._store, None
            await asyncio.to_thread(store.close)
            log.info("diskcache_closed", path=str(self.directory))

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._run(self._require().get, key, default=None)
        log.debug("cache_get", key=key, hit=raw is not None)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            log.warning("cache_decode_error", key=key)
            return None

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        store = self._require()
        expire_time = ttl if ttl is not None else self.default_ttl
        try:
            packed = json.dumps(value)
        except (TypeError, ValueError) as e:
            log.error("cache_serialize_error", key=key, error=str(e))
            return
        await self._run(
            store.set, key, packed, expire=expire_time or None, tag=self.namespace
        )
        log.debug("cache_set", key=key, ttl=expire_time, size_bytes=len(packed))

    async def delete(self, key: str) -> bool:
        if self._store is None:
            return False
        deleted = bool(await self._run(self._store.delete, key))
        log.debug("cache_delete", key=key, deleted=deleted)
        return deleted

    async def exists(self, key: str) -> bool:
        if self._store is None:
            return False
        # Membership honours expiry.
        return await self._run(self._store.__contains__, key)

    async def clear(self) -> None:
        """Evict every entry tagged with the namespace."""
        if self._store is None:
            return
        removed = await self._run(self._store.evict, self.namespace)
        log.warning("cache_cleared", namespace=self.namespace, removed=removed)
