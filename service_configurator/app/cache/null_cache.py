"""
Pass-through cache for tests and low-traffic paths.
"""

from typing import Any, Dict, Optional

from .base import RuleCache, Compute, Encoder, Decoder


class NullCache(RuleCache):
    """Cache that never stores anything and always recomputes."""

    async def get(
        self,
        key: str,
        compute: Compute,
        ttl: Optional[int] = None,
        *,
        encode: Optional[Encoder] = None,
        decode: Optional[Decoder] = None,
    ) -> Any:
        return await compute()

    async def purge(self, pattern: str) -> int:
        return 0

    async def get_stats(self) -> Dict[str, Any]:
        return {"backend": "null"}
