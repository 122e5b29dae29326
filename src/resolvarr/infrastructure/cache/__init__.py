"""Persistent cache store backends."""

from .cache_factory import CacheBackend, create_cache, create_cache_from_config
from .diskcache_adapter import DiskcacheAdapter
from .redis_adapter import RedisAdapter

__all__ = [
    "CacheBackend",
    "DiskcacheAdapter",
    "RedisAdapter",
    "create_cache",
    "create_cache_from_config",
]
