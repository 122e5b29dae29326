"""Cache factory - builds the persistent-store adapter from config."""

from __future__ import annotations

from typing import Literal

import structlog

from resolvarr.domain.ports.cache import CachePort
from resolvarr.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from resolvarr.infrastructure.cache.redis_adapter import RedisAdapter
from resolvarr.infrastructure.config.schema import CacheConfig

log = structlog.get_logger(__name__)

CacheBackend = Literal["diskcache", "redis"]


def create_cache(
    backend: CacheBackend = "diskcache",
    *,
    directory: str = "./.cache/resolvarr",
    redis_url: str = "redis://localhost:6379/0",
    ttl_seconds: int = 3600,
    max_concurrent: int = 10,
) -> CachePort:
    """Create the adapter for *backend*.

    Raises:
        ValueError: If `backend` is unknown.
    """
    log.info("cache_factory_create", backend=backend, ttl=ttl_seconds)
    if backend == "diskcache":
        return DiskcacheAdapter(
            directory=directory,
            ttl_seconds=ttl_seconds,
            max_concurrent=max_concurrent,
        )
    if backend == "redis":
        # Redis tolerates far more parallel ops than SQLite.
        return RedisAdapter(
            url=redis_url,
            ttl_seconds=ttl_seconds,
            max_concurrent=max(max_concurrent, 50),
        )
    raise ValueError(
        f"Unknown cache backend: {backend!r}. Must be 'diskcache' or 'redis'."
    )


def create_cache_from_config(config: CacheConfig) -> CachePort | None:
    """Adapter for *config*, or ``None`` when the persistent tier is disabled."""
    if not config.enabled:
        log.info("persistent_cache_disabled")
        return None
    return create_cache(
        config.backend,
        directory=str(config.directory),
        redis_url=config.redis_url,
        ttl_seconds=config.ttl_seconds,
        max_concurrent=config.max_concurrent,
    )
