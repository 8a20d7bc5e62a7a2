"""
Serving Module
"""
from .cache import CacheManager, analytics_cache, close_redis, get_redis, init_redis

__all__ = [
    "CacheManager",
    "analytics_cache",
    "close_redis",
    "get_redis",
    "init_redis",
]
