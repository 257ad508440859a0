"""
Price adjustment lookup for Configurator Service.

Price adjustments are stored in an indexed format for quick lookups:

- by_variants: variant ID -> IDs of variants it has price rules with
- by_pair: canonical pair key -> rule IDs attached to that pair
- by_id: rule ID -> amount, name and description

Adjustments are additive. Every rule on a matched pair is returned and
the caller sums the amounts; there is no precedence between rules.
"""

from typing import Iterable, List, Optional, Sequence, Set, TYPE_CHECKING

from shared.logging import get_logger
from ..cache.base import RuleCache, DEFAULT_TTL_SECONDS
from ..cache.invalidation import PRICING_KEY_PREFIX, PRICING_KEY_PATTERN
from .indexer import RuleIndexer, PricingIndex, DEFAULT_BATCH_SIZE, pair_key
from .models import Product, PartVariant, PriceAdjustment

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..persistence.base import RuleStore
    from shared.metrics import MetricsCollector


class PricingResolver:
    """Looks up the price adjustments between selected and target variants."""

    CACHE_KEY_PREFIX = PRICING_KEY_PREFIX
    CACHE_KEY_PATTERN = PRICING_KEY_PATTERN

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
        self.logger = get_logger("configurator.pricing")

    async def resolve_adjustments(
        self,
        product: Product,
        selected_variants: Sequence[PartVariant],
        target_variants: Sequence[PartVariant],
        *,
        ttl: Optional[int] = None,
    ) -> List[PriceAdjustment]:
        """Every price rule attached to a (selected, target) variant pair.

        Variant IDs in each record are ordered lexicographically regardless
        of which side of the call they were passed on.
        """
        if self.metrics:
            self.metrics.record_resolution("resolve_adjustments")

        if self._product_mismatch(product, selected_variants, target_variants):
            self.logger.warning("Variants do not belong to product", product_id=product.id)
            return []

        if not selected_variants:
            return []

        index = await self.rules_for_product(product.id, ttl=ttl)
        target_ids = {v.id for v in target_variants}
        emitted: Set[str] = set()
        adjustments = []

        for selected_id in dict.fromkeys(v.id for v in selected_variants):
            for match_id in sorted(index.neighbours(selected_id) & target_ids):
                key = pair_key(selected_id, match_id)
                # Overlapping selected/target sets reach a pair twice
                if key in emitted:
                    continue
                emitted.add(key)

                variant_1_id, variant_2_id = sorted((selected_id, match_id))
                for rule_id in sorted(index.rule_ids(selected_id, match_id)):
                    rule = index.by_id[rule_id]
                    adjustments.append(PriceAdjustment(
                        variant_1_id=variant_1_id,
                        variant_2_id=variant_2_id,
                        amount=rule["amount"],
                        name=rule["name"],
                        description=rule["description"],
                    ))

        return adjustments

    async def rules_for_product(self, product_id: str, *, ttl: Optional[int] = None) -> PricingIndex:
        """Cached pricing index of a product."""

        async def compute() -> PricingIndex:
            return await self.indexer.build_pricing_index(product_id)

        return await self.cache.get(
            self.CACHE_KEY_PREFIX + product_id,
            compute,
            self.ttl if ttl is None else ttl,
            encode=PricingIndex.to_payload,
            decode=PricingIndex.from_payload,
        )

    def _product_mismatch(
        self,
        product: Product,
        selected_variants: Iterable[PartVariant],
        target_variants: Iterable[PartVariant],
    ) -> bool:
        return any(v.product_id != product.id for v in selected_variants) or \
            any(v.product_id != product.id for v in target_variants)
