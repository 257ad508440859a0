"""
Rule store contract for Configurator Service.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import AsyncIterator, Iterable, List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from ..rules.models import (
    CompatibilityFact, PriceFact, Product, PartVariant,
    VariantCompatibilityRule, OptionCompatibilityRule, PriceAdjustmentRule
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..cache.invalidation import RuleCacheInvalidator


DEFAULT_BATCH_SIZE = 200


class RuleStore(ABC):
    """Queryable source of product-scoped compatibility and price rules.

    The three ``active_*`` streams only yield rules whose ``active`` flag
    is set and whose product is ``product_id``; option-value rules are
    yielded already expanded to every variant pair carrying the two values.
    Writes canonicalize the rule's pair and then purge the cache namespace
    of the affected domain when an invalidator is attached.
    """

    backend = "base"

    def __init__(self, invalidator: Optional["RuleCacheInvalidator"] = None):
        self.invalidator = invalidator
        self.logger = get_logger(f"configurator.persistence.{self.backend}")

    @abstractmethod
    def active_variant_rules(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[CompatibilityFact]:
        """Active variant compatibility rules, with both variants' parts."""

    @abstractmethod
    def active_option_rules_expanded(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[CompatibilityFact]:
        """Active option compatibility rules expanded to variant pairs."""

    @abstractmethod
    def active_price_rules_expanded(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[PriceFact]:
        """Active price adjustment rules expanded to variant pairs."""

    @abstractmethod
    async def load_product(self, product_id: str) -> Optional[Product]:
        """Load a product by ID."""

    @abstractmethod
    async def load_variants(self, variant_ids: Iterable[str]) -> List[PartVariant]:
        """Load the variants that exist among ``variant_ids``, in request order."""

    @abstractmethod
    async def _write_variant_rule(self, rule: VariantCompatibilityRule):
        ...

    @abstractmethod
    async def _write_option_rule(self, rule: OptionCompatibilityRule):
        ...

    @abstractmethod
    async def _write_price_rule(self, rule: PriceAdjustmentRule):
        ...

    async def save_variant_rule(self, rule: VariantCompatibilityRule) -> VariantCompatibilityRule:
        """Create or update a variant compatibility rule."""
        first, second = sorted((rule.part_variant_1_id, rule.part_variant_2_id))
        rule = replace(rule, part_variant_1_id=first, part_variant_2_id=second)
        await self._write_variant_rule(rule)
        self.logger.info("Variant compatibility rule saved", rule_id=rule.id, product_id=rule.product_id)
        if self.invalidator:
            await self.invalidator.purge_compatibility()
        return rule

    async def save_option_rule(self, rule: OptionCompatibilityRule) -> OptionCompatibilityRule:
        """Create or update an option compatibility rule."""
        first, second = sorted((rule.option_value_1_id, rule.option_value_2_id))
        rule = replace(rule, option_value_1_id=first, option_value_2_id=second)
        await self._write_option_rule(rule)
        self.logger.info("Option compatibility rule saved", rule_id=rule.id, product_id=rule.product_id)
        if self.invalidator:
            await self.invalidator.purge_compatibility()
        return rule

    async def save_price_rule(self, rule: PriceAdjustmentRule) -> PriceAdjustmentRule:
        """Create or update a price adjustment rule."""
        first, second = sorted((rule.option_value_1_id, rule.option_value_2_id))
        rule = replace(rule, option_value_1_id=first, option_value_2_id=second)
        await self._write_price_rule(rule)
        self.logger.info("Price adjustment rule saved", rule_id=rule.id, product_id=rule.product_id)
        if self.invalidator:
            await self.invalidator.purge_pricing()
        return rule

    async def start(self):
        """Open backend connections."""

    async def stop(self):
        """Close backend connections."""

    async def health_check(self) -> bool:
        return True
