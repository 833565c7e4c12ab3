"""Caching layer for shared reference data.

Provides the optional Redis-backed rate-table cache.
"""

from exportops.caching.redis_client import RedisClient

__all__ = ["RedisClient"]
