"""
Redis caching layer for Configurator Service.
"""

import json
from decimal import InvalidOperation
from typing import Any, Dict, Optional, TYPE_CHECKING

import redis.asyncio as redis
from shared.logging import get_logger
from shared.errors import CacheError
from .base import RuleCache, Compute, Encoder, Decoder, DEFAULT_TTL_SECONDS

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class RedisCache(RuleCache):
    """Redis-backed get-or-compute cache for rule indexes.

    Values are stored as JSON with ``SETEX``. A stored value that cannot
    be decoded is treated as a miss and overwritten with a fresh one.
    """

    def __init__(
        self,
        redis_url: str,
        *,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        client: Optional[redis.Redis] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self.metrics = metrics
        self.logger = get_logger("configurator.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Start the Redis cache."""
        if self.redis is not None:
            return

        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

            # Test connection
            await self.redis.ping()

            self.logger.info("Redis cache started")

        except Exception as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise CacheError("Failed to start Redis cache", {"error": str(e)})

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.close()
            self.redis = None
            self.logger.info("Redis cache stopped")

    async def get(
        self,
        key: str,
        compute: Compute,
        ttl: Optional[int] = None,
        *,
        encode: Optional[Encoder] = None,
        decode: Optional[Decoder] = None,
    ) -> Any:
        """Return the decoded value under ``key`` or compute and store it."""
        cached_data = await self._read(key)

        if cached_data is not None:
            try:
                payload = json.loads(cached_data)
                value = decode(payload) if decode else payload
            except (ValueError, KeyError, TypeError, AttributeError, InvalidOperation) as e:
                self.logger.warning("Discarding undecodable cache entry", cache_key=key, error=str(e))
            else:
                self._record_lookup(key, hit=True)
                self.logger.debug("Cache hit", cache_key=key)
                return value

        self._record_lookup(key, hit=False)
        return await self._refresh(key, compute, ttl, encode)

    async def purge(self, pattern: str) -> int:
        """Delete all keys matching ``pattern``."""
        try:
            keys = await self.redis.keys(pattern)

            if keys:
                await self.redis.delete(*keys)
                self.logger.info("Purged cache keys", pattern=pattern, count=len(keys))
                return len(keys)

            return 0

        except Exception as e:
            self.logger.error("Error purging cache keys", pattern=pattern, error=str(e))
            return 0

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        try:
            info = await self.redis.info()

            return {
                "backend": "redis",
                "redis_version": info.get("redis_version"),
                "used_memory": info.get("used_memory_human"),
                "keyspace_hits": info.get("keyspace_hits"),
                "keyspace_misses": info.get("keyspace_misses"),
                "hit_rate": self._calculate_hit_rate(info)
            }

        except Exception as e:
            self.logger.error("Error getting cache stats", error=str(e))
            return {"backend": "redis"}

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False

    async def _read(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except Exception as e:
            self.logger.error("Error reading cache entry", cache_key=key, error=str(e))
            return None

    async def _refresh(self, key: str, compute: Compute, ttl: Optional[int], encode: Optional[Encoder]) -> Any:
        result = await compute()
        ttl_seconds = self.default_ttl if ttl is None else ttl

        try:
            serialized = json.dumps(encode(result) if encode else result)
            await self.redis.setex(key, ttl_seconds, serialized)
            self.logger.debug("Cached computed value", cache_key=key, ttl=ttl_seconds)
        except Exception as e:
            self.logger.error("Error caching computed value", cache_key=key, error=str(e))

        return result

    def _record_lookup(self, key: str, hit: bool):
        if self.metrics:
            self.metrics.record_cache_lookup(key.rpartition(":")[0], hit)

    def _calculate_hit_rate(self, info: Dict[str, Any]) -> float:
        """Calculate cache hit rate."""
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        total = hits + misses

        if total == 0:
            return 0.0

        return hits / total
