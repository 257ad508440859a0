"""
In-memory rule store for Configurator Service.

Holds a small catalog and its rules in dictionaries. Used by the test
suite and for local runs without PostgreSQL; pagination and option-value
expansion behave like the SQL store.
"""

from collections import defaultdict
from itertools import islice
from typing import Any, AsyncIterator, Dict, Iterable, Iterator, List, Optional, Set, Tuple, TypeVar

from .base import RuleStore, DEFAULT_BATCH_SIZE
from ..rules.models import (
    CompatibilityFact, PriceFact, Product, Part, Option, OptionValue, PartVariant,
    VariantCompatibilityRule, OptionCompatibilityRule, PriceAdjustmentRule, RuleOrigin
)

T = TypeVar("T")


class InMemoryRuleStore(RuleStore):
    """Dictionary-backed catalog and rule store."""

    backend = "memory"

    def __init__(self, invalidator=None):
        super().__init__(invalidator)
        self.products: Dict[str, Product] = {}
        self.parts: Dict[str, Part] = {}
        self.options: Dict[str, Option] = {}
        self.option_values: Dict[str, OptionValue] = {}
        self.variants: Dict[str, PartVariant] = {}
        self.variant_rules: Dict[str, VariantCompatibilityRule] = {}
        self.option_rules: Dict[str, OptionCompatibilityRule] = {}
        self.price_rules: Dict[str, PriceAdjustmentRule] = {}
        self.pages_served = 0

    # Catalog

    def add_product(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    def add_part(self, part: Part) -> Part:
        self.parts[part.id] = part
        return part

    def add_option(self, option: Option) -> Option:
        self.options[option.id] = option
        return option

    def add_option_value(self, option_value: OptionValue) -> OptionValue:
        self.option_values[option_value.id] = option_value
        return option_value

    def add_variant(self, variant: PartVariant) -> PartVariant:
        self.variants[variant.id] = variant
        return variant

    def variants_of_part(self, part_id: str) -> List[PartVariant]:
        return sorted(
            (v for v in self.variants.values() if v.part_id == part_id),
            key=lambda v: v.id
        )

    async def load_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    async def load_variants(self, variant_ids: Iterable[str]) -> List[PartVariant]:
        return [self.variants[v] for v in variant_ids if v in self.variants]

    # Rule streams

    async def active_variant_rules(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[CompatibilityFact]:
        rules = self._active(self.variant_rules.values(), product_id)
        async for rule in self._paginate(rules, batch_size):
            variant_1 = self.variants.get(rule.part_variant_1_id)
            variant_2 = self.variants.get(rule.part_variant_2_id)
            if variant_1 is None or variant_2 is None:
                continue
            yield CompatibilityFact(
                variant_1_id=variant_1.id,
                variant_2_id=variant_2.id,
                part_1_id=variant_1.part_id,
                part_2_id=variant_2.part_id,
                compatibility_type=rule.compatibility_type,
                origin=RuleOrigin.VARIANT,
            )

    async def active_option_rules_expanded(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[CompatibilityFact]:
        rules = self._active(self.option_rules.values(), product_id)
        async for rule, variant_1, variant_2 in self._paginate(self._expand(rules), batch_size):
            yield CompatibilityFact(
                variant_1_id=variant_1.id,
                variant_2_id=variant_2.id,
                part_1_id=variant_1.part_id,
                part_2_id=variant_2.part_id,
                compatibility_type=rule.compatibility_type,
                origin=RuleOrigin.OPTION,
            )

    async def active_price_rules_expanded(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[PriceFact]:
        rules = self._active(self.price_rules.values(), product_id)
        async for rule, variant_1, variant_2 in self._paginate(self._expand(rules), batch_size):
            yield PriceFact(
                variant_1_id=variant_1.id,
                variant_2_id=variant_2.id,
                rule_id=rule.id,
                amount=rule.amount,
                name=rule.name,
                description=rule.description,
            )

    # Rule writes

    async def _write_variant_rule(self, rule: VariantCompatibilityRule):
        self.variant_rules[rule.id] = rule

    async def _write_option_rule(self, rule: OptionCompatibilityRule):
        self.option_rules[rule.id] = rule

    async def _write_price_rule(self, rule: PriceAdjustmentRule):
        self.price_rules[rule.id] = rule

    # Helpers

    def _active(self, rules, product_id: str) -> list:
        return sorted(
            (rule for rule in rules if rule.product_id == product_id and rule.active),
            key=lambda rule: rule.id
        )

    def _variants_by_option_value(self) -> Dict[str, List[PartVariant]]:
        carriers: Dict[str, Set[PartVariant]] = defaultdict(set)
        for variant in self.variants.values():
            for option_value_id in variant.option_value_ids:
                carriers[option_value_id].add(variant)
        return {k: sorted(v, key=lambda variant: variant.id) for k, v in carriers.items()}

    def _expand(self, rules: Iterable) -> Iterator[Tuple[Any, PartVariant, PartVariant]]:
        """(rule, variant, variant) for every variant pair carrying a rule's two option values."""
        carriers = self._variants_by_option_value()
        for rule in rules:
            for variant_1 in carriers.get(rule.option_value_1_id, ()):
                for variant_2 in carriers.get(rule.option_value_2_id, ()):
                    yield rule, variant_1, variant_2

    async def _paginate(self, items: Iterable[T], batch_size: int) -> AsyncIterator[T]:
        items = iter(items)
        while True:
            page = list(islice(items, batch_size))
            if not page:
                return
            self.pages_served += 1
            for item in page:
                yield item
