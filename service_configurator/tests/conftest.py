"""
Shared fixtures for Configurator Service tests.

Builds the bike catalog used throughout the suite: frame, finish and wheel
parts, their options and option values, and one variant per combination.
"""

import fnmatch
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_configurator.app.cache import NullCache, RedisCache
from service_configurator.app.persistence.memory import InMemoryRuleStore
from service_configurator.app.rules.models import (
    CompatibilityType, Product, Part, Option, OptionValue, PartVariant,
    VariantCompatibilityRule, OptionCompatibilityRule, PriceAdjustmentRule
)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class BikeCatalog:
    """Bike product with its parts, option values and variants."""

    store: InMemoryRuleStore
    product: Product
    parts: Dict[str, Part] = field(default_factory=dict)
    values: Dict[str, OptionValue] = field(default_factory=dict)
    variants: Dict[str, PartVariant] = field(default_factory=dict)

    def __getattr__(self, name: str):
        # bike.diamond_small_frame, bike.glossy_finish, ...
        for registry in ("variants", "values", "parts"):
            items = self.__dict__.get(registry, {})
            if name in items:
                return items[name]
        raise AttributeError(name)

    def part_variants(self, part_name: str) -> List[PartVariant]:
        return self.store.variants_of_part(self.parts[part_name].id)

    async def variant_rule(
        self,
        variant_1: PartVariant,
        variant_2: PartVariant,
        compatibility_type: str = "INCLUDE",
        active: bool = True,
        product: Optional[Product] = None,
    ) -> VariantCompatibilityRule:
        return await self.store.save_variant_rule(VariantCompatibilityRule(
            id=new_id(),
            product_id=(product or self.product).id,
            part_variant_1_id=variant_1.id,
            part_variant_2_id=variant_2.id,
            compatibility_type=CompatibilityType(compatibility_type),
            active=active,
        ))

    async def option_rule(
        self,
        value_1: OptionValue,
        value_2: OptionValue,
        compatibility_type: str = "INCLUDE",
        active: bool = True,
        product: Optional[Product] = None,
    ) -> OptionCompatibilityRule:
        return await self.store.save_option_rule(OptionCompatibilityRule(
            id=new_id(),
            product_id=(product or self.product).id,
            option_value_1_id=value_1.id,
            option_value_2_id=value_2.id,
            compatibility_type=CompatibilityType(compatibility_type),
            active=active,
        ))

    async def price_rule(
        self,
        value_1: OptionValue,
        value_2: OptionValue,
        amount: str,
        name: str = "Premium",
        description: Optional[str] = None,
        active: bool = True,
        product: Optional[Product] = None,
    ) -> PriceAdjustmentRule:
        return await self.store.save_price_rule(PriceAdjustmentRule(
            id=new_id(),
            product_id=(product or self.product).id,
            option_value_1_id=value_1.id,
            option_value_2_id=value_2.id,
            amount=Decimal(amount),
            name=name,
            description=description,
            active=active,
        ))


def build_bike_catalog(store: InMemoryRuleStore) -> BikeCatalog:
    """Populate ``store`` with the bike catalog."""
    product = store.add_product(Product(id=new_id(), name="Bike", product_key="bike"))
    bike = BikeCatalog(store=store, product=product)

    def part(name: str) -> Part:
        created = store.add_part(Part(id=new_id(), product_id=product.id, part_key=name, name=name.title()))
        bike.parts[name] = created
        return created

    def option(of: Part, key: str) -> Option:
        return store.add_option(Option(id=new_id(), part_id=of.id, option_key=key, name=key.title()))

    def value(of: Option, name: str, label: str) -> OptionValue:
        created = store.add_option_value(OptionValue(id=new_id(), option_id=of.id, value=label))
        bike.values[name] = created
        return created

    def variant(of: Part, name: str, price: str, *values: OptionValue) -> PartVariant:
        created = store.add_variant(PartVariant(
            id=new_id(),
            part_id=of.id,
            product_id=product.id,
            name=name.replace("_", " ").title(),
            sku=f"SKU-{name.upper()}",
            price=Decimal(price),
            option_value_ids=frozenset(v.id for v in values),
        ))
        bike.variants[name] = created
        return created

    frame = part("frame")
    finish = part("finish")
    wheel = part("wheel")

    frame_type = option(frame, "type")
    frame_size = option(frame, "size")
    finish_type = option(finish, "type")
    wheel_type = option(wheel, "type")

    diamond = value(frame_type, "diamond_frame", "Diamond")
    suspension = value(frame_type, "suspension_frame", "Full Suspension")
    small = value(frame_size, "small_size", "Small")
    large = value(frame_size, "large_size", "Large")
    matte = value(finish_type, "matte_finish", "Matte")
    glossy = value(finish_type, "glossy_finish", "Glossy")
    chrome = value(finish_type, "chrome_finish", "Chrome")
    mountain = value(wheel_type, "mountain_wheel", "Mountain")
    road = value(wheel_type, "road_wheel", "Road")

    variant(frame, "diamond_small_frame", "100", diamond, small)
    variant(frame, "diamond_large_frame", "120", diamond, large)
    variant(frame, "suspension_small_frame", "150", suspension, small)
    variant(frame, "suspension_large_frame", "180", suspension, large)
    variant(finish, "matte_finish_variant", "20", matte)
    variant(finish, "glossy_finish_variant", "30", glossy)
    variant(finish, "chrome_finish_variant", "50", chrome)
    variant(wheel, "mountain_wheel_variant", "80", mountain)
    variant(wheel, "road_wheel_variant", "60", road)

    return bike


@pytest.fixture
def store():
    """Empty in-memory rule store."""
    return InMemoryRuleStore()


@pytest.fixture
def bike(store):
    """Bike catalog with no rules."""
    return build_bike_catalog(store)


@pytest.fixture
def other_product(store):
    """A second product sharing the same store."""
    return store.add_product(Product(id=new_id(), name="Scooter", product_key="scooter"))


@pytest.fixture
def null_cache():
    """Pass-through cache."""
    return NullCache()


@pytest.fixture
def catalog_factory(store):
    """Build further bike catalogs (each its own product) in the same store."""
    return lambda: build_bike_catalog(store)


class FakeRedis:
    """Dictionary-backed stand-in for the redis.asyncio client calls the cache makes."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def keys(self, pattern):
        return [key for key in self.data if fnmatch.fnmatchcase(key, pattern)]

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def ping(self):
        return True

    async def info(self):
        return {"redis_version": "7.2.0", "keyspace_hits": 3, "keyspace_misses": 1}

    async def close(self):
        return None


@pytest.fixture
def fake_redis():
    """In-memory Redis double."""
    return FakeRedis()


@pytest.fixture
def redis_cache(fake_redis):
    """RedisCache wired to the in-memory Redis double."""
    return RedisCache("redis://localhost:6379/0", client=fake_redis)
