"""
Compatibility resolution for Configurator Service.

Compatibility rules are stored in an indexed format for quick lookups:
each variant maps to INCLUDE and EXCLUDE sets of variant IDs, grouped by
the part those variants belong to. Grouping by part keeps a rule about
one part from restricting the variants of an unrelated part that happens
to be queried in the same call.
"""

from itertools import combinations
from typing import Dict, Iterable, Optional, Sequence, Set, TYPE_CHECKING

from shared.logging import get_logger
from ..cache.base import RuleCache, DEFAULT_TTL_SECONDS
from ..cache.invalidation import COMPATIBILITY_KEY_PREFIX, COMPATIBILITY_KEY_PATTERN
from .indexer import RuleIndexer, CompatibilityIndex, DEFAULT_BATCH_SIZE
from .models import Product, PartVariant

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..persistence.base import RuleStore
    from shared.metrics import MetricsCollector


class CompatibilityResolver:
    """Decides which target variants stay compatible with a selection.

    Example::

        resolver = CompatibilityResolver(store, RedisCache(redis_url))
        compatible_ids = await resolver.resolve_compatible_ids(
            product, selected_variants=current_variants, target_variants=frame_variants
        )
    """

    CACHE_KEY_PREFIX = COMPATIBILITY_KEY_PREFIX
    CACHE_KEY_PATTERN = COMPATIBILITY_KEY_PATTERN

    def __init__(
        self,
        store: "RuleStore",
        cache: RuleCache,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        ttl: int = DEFAULT_TTL_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.ttl = ttl
        self.metrics = metrics
        self.indexer = RuleIndexer(store, batch_size, metrics=metrics)
        self.logger = get_logger("configurator.compatibility")

    async def resolve_compatible_ids(
        self,
        product: Product,
        selected_variants: Sequence[PartVariant],
        target_variants: Sequence[PartVariant],
        *,
        ttl: Optional[int] = None,
    ) -> Set[str]:
        """IDs of ``target_variants`` compatible with every selected variant.

        Returns an empty set when ``product`` does not own every variant
        passed in. With nothing selected, every target is compatible.
        """
        self._record("resolve_compatible_ids")

        if self._product_mismatch(product, selected_variants, target_variants):
            self.logger.warning("Variants do not belong to product", product_id=product.id)
            return set()

        if not selected_variants:
            return {v.id for v in target_variants}

        index = await self.rules_for_product(product.id, ttl=ttl)
        return self._resolve(index, [v.id for v in selected_variants], target_variants)

    async def are_compatible(
        self,
        product: Product,
        variants: Sequence[PartVariant],
        *,
        ttl: Optional[int] = None,
    ) -> bool:
        """True when every unordered pair of ``variants`` is mutually compatible."""
        self._record("are_compatible")

        if self._product_mismatch(product, variants, ()):
            return False

        unique = list({v.id: v for v in variants}.values())
        if len(unique) < 2:
            return True

        index = await self.rules_for_product(product.id, ttl=ttl)
        for first, second in combinations(unique, 2):
            # INCLUDE entries are one-sided, so each pair is checked from both ends
            if self._resolve(index, [first.id], [second]) != {second.id} or \
                    self._resolve(index, [second.id], [first]) != {first.id}:
                self.logger.debug(
                    "Incompatible variant pair",
                    product_id=product.id,
                    variant_1_id=first.id,
                    variant_2_id=second.id
                )
                return False

        return True

    async def rules_for_product(self, product_id: str, *, ttl: Optional[int] = None) -> CompatibilityIndex:
        """Cached compatibility index of a product."""

        async def compute() -> CompatibilityIndex:
            return await self.indexer.build_compatibility_index(product_id)

        return await self.cache.get(
            self.CACHE_KEY_PREFIX + product_id,
            compute,
            self.ttl if ttl is None else ttl,
            encode=CompatibilityIndex.to_payload,
            decode=CompatibilityIndex.from_payload,
        )

    def _resolve(
        self,
        index: CompatibilityIndex,
        selected_ids: Iterable[str],
        target_variants: Sequence[PartVariant],
    ) -> Set[str]:
        target_ids = {v.id for v in target_variants}
        targets_by_part: Dict[str, Set[str]] = {}
        for variant in target_variants:
            targets_by_part.setdefault(variant.part_id, set()).add(variant.id)

        includes = set(target_ids)
        excludes: Set[str] = set()

        for selected_id in dict.fromkeys(selected_ids):
            for part_id, part_targets in targets_by_part.items():
                include_ids = index.included(selected_id, part_id)
                # No INCLUDE entry for this part means no restriction on it
                if include_ids:
                    includes -= part_targets - include_ids
                excludes |= index.excluded(selected_id, part_id)

        # EXCLUDE is applied last so no INCLUDE can re-admit a variant
        return (target_ids & includes) - excludes

    def _product_mismatch(
        self,
        product: Product,
        selected_variants: Iterable[PartVariant],
        target_variants: Iterable[PartVariant],
    ) -> bool:
        return any(v.product_id != product.id for v in selected_variants) or \
            any(v.product_id != product.id for v in target_variants)

    def _record(self, operation: str):
        if self.metrics:
            self.metrics.record_resolution(operation)
