"""Redis adapter - async Redis via redis.asyncio."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

log = structlog.get_logger(__name__)


class RedisAdapter:
    """Namespaced JSON store on a Redis DB that several workers share.

    Every key is stored as ``{namespace}:{key}`` so the DB can be shared with
    other services; ``clear()`` only removes keys under the namespace.
    Data-op errors are logged and reported as a miss, so a Redis outage
    degrades credential reuse instead of failing a resolution.

    Args:
        url: Redis URL (e.g. `redis://localhost:6379/0`).
        ttl_seconds: Default TTL; 0 = no expiry.
        max_concurrent: Max parallel Redis ops.
        namespace: Key prefix for this application.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int = 3600,
        max_concurrent: int = 50,
        namespace: str = "resolvarr",
    ) -> None:
        self.url = url
        self.default_ttl = ttl_seconds
        self.namespace = namespace
        self._client: Redis | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _require(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis not initialized. Use 'async with cache:'")
        return self._client

    async def __aenter__(self) -> RedisAdapter:
        if self._client is None:
            client = Redis.from_url(self.url, decode_responses=True)
            try:
                await client.ping()
            except RedisError as e:
                log.error("redis_connection_failed", url=self.url, error=str(e))
                await client.aclose()
                raise
            self._client = client
            log.info("redis_connected", url=self.url, namespace=self.namespace)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("redis_closed")

    async def get(self, key: str) -> Any | None:
        client = self._require()
        async with self._semaphore:
            try:
                raw = await client.get(self._key(key))
            except RedisError as e:
                log.error("redis_get_error", key=key, error=str(e))
                return None
        log.debug("cache_get", key=key, hit=raw is not None)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("cache_decode_error", key=key)
            return None

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        client = self._require()
        expire_time = ttl if ttl is not None else self.default_ttl
        try:
            packed = json.dumps(value)
        except (TypeError, ValueError) as e:
            log.error("cache_serialize_error", key=key, error=str(e))
            return

        async with self._semaphore:
            try:
                await client.set(self._key(key), packed, ex=expire_time or None)
            except RedisError as e:
                log.error("redis_set_error", key=key, error=str(e))
                return
        log.debug("cache_set", key=key, ttl=expire_time, size_bytes=len(packed))

    async def delete(self, key: str) -> bool:
        if self._client is None:
            return False
        async with self._semaphore:
            try:
                deleted = await self._client.delete(self._key(key))
            except RedisError as e:
                log.error("redis_delete_error", key=key, error=str(e))
                return False
        log.debug("cache_delete", key=key, deleted=deleted > 0)
        return deleted > 0

    async def exists(self, key: str) -> bool:
        if self._client is None:
            return False
        async with self._semaphore:
            try:
                return await self._client.exists(self._key(key)) > 0
            except RedisError as e:
                log.error("redis_exists_error", key=key, error=str(e))
                return False

    async def clear(self) -> None:
        """Remove every key under the namespace."""
        if self._client is None:
            return
        removed = 0
        async with self._semaphore:
            try:
                batch: list[str] = []
                async for name in self._client.scan_iter(match=f"{self.namespace}:*"):
                    batch.append(name)
                    if len(batch) >= 500:
                        removed += await self._client.delete(*batch)
                        batch.clear()
                if batch:
                    removed += await self._client.delete(*batch)
            except RedisError as e:
                log.error("redis_clear_error", namespace=self.namespace, error=str(e))
                return
        log.warning("cache_cleared", namespace=self.namespace, removed=removed)
