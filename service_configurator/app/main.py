"""
Configurator service for the Product Configurator.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import NotFoundError
from shared.logging import set_product_context

from .cache import NullCache, RedisCache, RuleCache, RuleCacheInvalidator
from .persistence import PostgreSQLRuleStore, RuleStore
from .rules.compatibility import CompatibilityResolver
from .rules.pricing import PricingResolver
from .rules.models import (
    Product, PartVariant,
    CompatibilityResolveRequest, CompatibilityResolveResponse,
    CompatibilityCheckRequest, CompatibilityCheckResponse,
    PriceAdjustmentsRequest, PriceAdjustmentsResponse,
    CacheInvalidateRequest, CacheInvalidateResponse,
)

SERVICE_NAME = "configurator"
SERVICE_PORT = 8020


class ConfiguratorService(BaseService):
    """Configurator service implementation.

    The rule store and cache are injected; when omitted they are built
    from configuration (PostgreSQL store, Redis or pass-through cache).
    """

    def __init__(
        self,
        store: Optional[RuleStore] = None,
        cache: Optional[RuleCache] = None,
        config: Optional[ServiceConfig] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))

        # Initialize components
        self.cache = cache or self._build_cache()
        self.invalidator = RuleCacheInvalidator(self.cache)
        self.store = store or PostgreSQLRuleStore(self.config.postgres_dsn)
        if self.store.invalidator is None:
            self.store.invalidator = self.invalidator

        self.compatibility = CompatibilityResolver(
            self.store,
            self.cache,
            batch_size=self.config.rule_batch_size,
            ttl=self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )
        self.pricing = PricingResolver(
            self.store,
            self.cache,
            batch_size=self.config.rule_batch_size,
            ttl=self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )

        self._setup_configurator_routes()

    def _build_cache(self) -> RuleCache:
        if self.config.cache_backend == "null":
            return NullCache()
        return RedisCache(
            self.config.redis_url,
            default_ttl=self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )

    def _setup_configurator_routes(self):
        """Set up configurator-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Product Configurator - Rules Service",
                "version": "1.0.0",
                "capabilities": ["compatibility", "pricing", "caching"]
            }

        @self.app.post("/configurator/compatibility/resolve", response_model=CompatibilityResolveResponse)
        async def resolve_compatibility(request: CompatibilityResolveRequest):
            """Filter target variants down to those compatible with the selection."""
            product, selected, targets = await self._load_scope(
                request.product_id, request.selected_variant_ids, request.target_variant_ids
            )

            compatible = await self.compatibility.resolve_compatible_ids(product, selected, targets)

            # Keep the caller's target order
            return CompatibilityResolveResponse(
                product_id=product.id,
                compatible_variant_ids=[v.id for v in targets if v.id in compatible]
            )

        @self.app.post("/configurator/compatibility/check", response_model=CompatibilityCheckResponse)
        async def check_compatibility(request: CompatibilityCheckRequest):
            """Check that a set of variants is pairwise compatible."""
            product, variants, _ = await self._load_scope(request.product_id, request.variant_ids, [])

            compatible = await self.compatibility.are_compatible(product, variants)

            return CompatibilityCheckResponse(product_id=product.id, compatible=compatible)

        @self.app.post("/configurator/pricing/adjustments", response_model=PriceAdjustmentsResponse)
        async def price_adjustments(request: PriceAdjustmentsRequest):
            """Price adjustments between selected and target variants."""
            product, selected, targets = await self._load_scope(
                request.product_id, request.selected_variant_ids, request.target_variant_ids
            )

            adjustments = await self.pricing.resolve_adjustments(product, selected, targets)

            return PriceAdjustmentsResponse(
                product_id=product.id,
                adjustments=adjustments,
                total=sum((a.amount for a in adjustments), Decimal("0"))
            )

        @self.app.post("/configurator/cache/invalidate", response_model=CacheInvalidateResponse)
        async def invalidate_cache(request: CacheInvalidateRequest):
            """Purge cached rule indexes after rules were written elsewhere."""
            purged = await self.invalidator.purge(request.domain)
            return CacheInvalidateResponse(domain=request.domain, purged=purged)

        @self.app.get("/configurator/stats")
        async def get_stats():
            """Get configurator service statistics."""
            return {
                "cache": await self.cache.get_stats(),
                "config": {
                    "cache_backend": type(self.cache).__name__,
                    "cache_ttl_seconds": self.config.cache_ttl_seconds,
                    "rule_batch_size": self.config.rule_batch_size,
                },
                "timestamp": datetime.now().isoformat()
            }

    async def _load_scope(
        self,
        product_id: str,
        first_ids: Sequence[str],
        second_ids: Sequence[str],
    ) -> Tuple[Product, List[PartVariant], List[PartVariant]]:
        """Load the product and both variant lists; every ID must exist."""
        set_product_context(product_id)

        product = await self.store.load_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)

        variants = await self.store.load_variants([*first_ids, *second_ids])
        by_id: Dict[str, PartVariant] = {v.id: v for v in variants}

        missing = [v for v in dict.fromkeys([*first_ids, *second_ids]) if v not in by_id]
        if missing:
            raise NotFoundError("Variant", missing[0], {"variant_ids": missing})

        first = [by_id[v] for v in dict.fromkeys(first_ids)]
        second = [by_id[v] for v in dict.fromkeys(second_ids)]
        return product, first, second

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check configurator service dependencies."""
        dependencies = {}

        try:
            dependencies["cache"] = "ok" if await self.cache.health_check() else "error"
        except Exception:
            dependencies["cache"] = "error"

        try:
            dependencies["rule_store"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["rule_store"] = "error"

        return dependencies

    async def start(self):
        """Start configurator service components."""
        await self.store.start()
        await self.cache.start()

        self.logger.info(
            "Configurator service started",
            store=type(self.store).__name__,
            cache=type(self.cache).__name__
        )

    async def stop(self):
        """Stop configurator service components."""
        await self.store.stop()
        await self.cache.stop()

        self.logger.info("Configurator service stopped")


def create_app():
    """Create configurator service application."""
    service = ConfiguratorService()
    return service.app


if __name__ == "__main__":
    service = ConfiguratorService()
    service.run()
