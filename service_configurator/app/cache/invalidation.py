"""
Cache invalidation for rule writes.

Any write to a compatibility rule (variant or option level) purges every
product's compatibility index; any write to a price rule purges every
product's pricing index. Purges are best-effort and are not coordinated
with the write that triggered them.
"""

from typing import Dict

from shared.logging import get_logger
from ..rules.models import RuleDomain
from .base import RuleCache

CACHE_NAMESPACE = "configurator"
COMPATIBILITY_KEY_PREFIX = f"{CACHE_NAMESPACE}:compatibility:product:"
COMPATIBILITY_KEY_PATTERN = f"{CACHE_NAMESPACE}:compatibility:*"
PRICING_KEY_PREFIX = f"{CACHE_NAMESPACE}:price_adjustments:product:"
PRICING_KEY_PATTERN = f"{CACHE_NAMESPACE}:price_adjustments:*"

_PATTERNS = {
    RuleDomain.COMPATIBILITY: COMPATIBILITY_KEY_PATTERN,
    RuleDomain.PRICE_ADJUSTMENTS: PRICING_KEY_PATTERN,
}


class RuleCacheInvalidator:
    """Purges rule index namespaces after rule writes."""

    def __init__(self, cache: RuleCache):
        self.cache = cache
        self.logger = get_logger("configurator.cache.invalidation")

    async def purge_compatibility(self) -> int:
        return (await self.purge(RuleDomain.COMPATIBILITY))[RuleDomain.COMPATIBILITY.value]

    async def purge_pricing(self) -> int:
        return (await self.purge(RuleDomain.PRICE_ADJUSTMENTS))[RuleDomain.PRICE_ADJUSTMENTS.value]

    async def purge(self, domain: RuleDomain = RuleDomain.ALL) -> Dict[str, int]:
        """Purge one domain's namespace, or both for ``RuleDomain.ALL``."""
        domains = list(_PATTERNS) if domain == RuleDomain.ALL else [domain]

        purged = {}
        for name in domains:
            purged[name.value] = await self.cache.purge(_PATTERNS[name])

        self.logger.info("Rule cache invalidated", domain=domain.value, purged=purged)
        return purged
