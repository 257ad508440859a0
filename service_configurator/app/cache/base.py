"""
Cache contract for Configurator Service.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 300  # 5 minutes

Compute = Callable[[], Awaitable[T]]
Encoder = Callable[[T], Any]
Decoder = Callable[[Any], T]


class RuleCache(ABC):
    """Key/value store with get-or-compute semantics and a time-to-live.

    ``compute`` is only awaited on a miss and its result is only stored
    once it has completed, so a failed computation never populates the
    cache. ``encode``/``decode`` translate between the computed value and
    its JSON-compatible form for implementations that serialize.
    """

    @abstractmethod
    async def get(
        self,
        key: str,
        compute: Compute,
        ttl: Optional[int] = None,
        *,
        encode: Optional[Encoder] = None,
        decode: Optional[Decoder] = None,
    ) -> Any:
        """Return the cached value for ``key``, computing it on a miss."""

    @abstractmethod
    async def purge(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; return the count."""

    async def start(self):
        """Open backend connections."""

    async def stop(self):
        """Close backend connections."""

    async def health_check(self) -> bool:
        return True

    async def get_stats(self) -> Dict[str, Any]:
        return {}
