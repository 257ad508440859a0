"""
Cache package for Configurator Service.

Provides the get-or-compute cache used to hold built rule indexes:

- base: The RuleCache contract shared by all implementations.
- null_cache: Pass-through cache that always recomputes.
- redis_cache: Redis-backed cache with JSON serialization and TTLs.
- invalidation: Namespace purges triggered by rule writes.
"""

from .base import RuleCache, DEFAULT_TTL_SECONDS
from .null_cache import NullCache
from .redis_cache import RedisCache
from .invalidation import RuleCacheInvalidator

__all__ = ["RuleCache", "DEFAULT_TTL_SECONDS", "NullCache", "RedisCache", "RuleCacheInvalidator"]
