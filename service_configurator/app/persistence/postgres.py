"""
PostgreSQL rule store for Configurator Service.

The catalog schema (products, parts, options, option values, variants and
the three rule tables) is owned by the catalog application; this store
only reads it, plus upserts rules on the write paths. Rule streams use
keyset pagination so a product's rules are read in bounded pages.
"""

from decimal import Decimal
from typing import Any, AsyncIterator, Iterable, List, Optional, Sequence, Tuple

import asyncpg
from shared.errors import RuleStoreError
from .base import RuleStore, DEFAULT_BATCH_SIZE
from ..rules.models import (
    CompatibilityFact, CompatibilityType, PriceFact, Product, PartVariant, RuleOrigin,
    VariantCompatibilityRule, OptionCompatibilityRule, PriceAdjustmentRule
)


VARIANT_RULES_QUERY = """
    SELECT c.id AS rule_id,
           c.part_variant_1_id,
           c.part_variant_2_id,
           pv1.part_id AS part_1_id,
           pv2.part_id AS part_2_id,
           c.compatibility_type
    FROM part_variant_compatibilities c
    JOIN part_variants pv1 ON pv1.id = c.part_variant_1_id
    JOIN part_variants pv2 ON pv2.id = c.part_variant_2_id
    WHERE c.product_id = $1 AND c.active = TRUE
      AND c.id > $2
    ORDER BY c.id
    LIMIT $3
"""

OPTION_RULES_EXPANDED_QUERY = """
    SELECT c.id AS rule_id,
           pvo1.part_variant_id AS part_variant_1_id,
           pvo2.part_variant_id AS part_variant_2_id,
           v1.part_id AS part_1_id,
           v2.part_id AS part_2_id,
           c.compatibility_type
    FROM part_option_compatibilities c
    JOIN part_variant_option_values pvo1 ON pvo1.option_value_id = c.option_value_1_id
    JOIN part_variant_option_values pvo2 ON pvo2.option_value_id = c.option_value_2_id
    JOIN part_variants v1 ON v1.id = pvo1.part_variant_id
    JOIN part_variants v2 ON v2.id = pvo2.part_variant_id
    WHERE c.product_id = $1 AND c.active = TRUE
      AND (c.id, pvo1.part_variant_id, pvo2.part_variant_id) > ($2, $3, $4)
    ORDER BY c.id, pvo1.part_variant_id, pvo2.part_variant_id
    LIMIT $5
"""

PRICE_RULES_EXPANDED_QUERY = """
    SELECT p.id AS rule_id,
           pvo1.part_variant_id AS part_variant_1_id,
           pvo2.part_variant_id AS part_variant_2_id,
           p.price_adjustment,
           p.name,
           p.description
    FROM price_adjustments p
    JOIN part_variant_option_values pvo1 ON pvo1.option_value_id = p.option_value_1_id
    JOIN part_variant_option_values pvo2 ON pvo2.option_value_id = p.option_value_2_id
    WHERE p.product_id = $1 AND p.active = TRUE
      AND (p.id, pvo1.part_variant_id, pvo2.part_variant_id) > ($2, $3, $4)
    ORDER BY p.id, pvo1.part_variant_id, pvo2.part_variant_id
    LIMIT $5
"""

_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class PostgreSQLRuleStore(RuleStore):
    """PostgreSQL-backed rule store."""

    backend = "postgres"

    def __init__(self, dsn: str, invalidator=None, *, pool: Optional[asyncpg.Pool] = None):
        super().__init__(invalidator)
        self.dsn = dsn
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        """Start the persistence layer."""
        if self.pool is not None:
            return

        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )

            self.logger.info("PostgreSQL rule store started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL rule store", error=str(e))
            raise RuleStoreError("Failed to start PostgreSQL rule store", {"error": str(e)})

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL rule store stopped")

    # Rule streams

    async def active_variant_rules(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[CompatibilityFact]:
        cursor: Tuple[Any, ...] = ("",)
        while True:
            rows = await self._fetch(VARIANT_RULES_QUERY, product_id, *cursor, batch_size)
            for row in rows:
                yield self._row_to_compatibility_fact(row, RuleOrigin.VARIANT)
            if len(rows) < batch_size:
                return
            cursor = (rows[-1]["rule_id"],)

    async def active_option_rules_expanded(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[CompatibilityFact]:
        async for row in self._paginate_pairs(OPTION_RULES_EXPANDED_QUERY, product_id, batch_size):
            yield self._row_to_compatibility_fact(row, RuleOrigin.OPTION)

    async def active_price_rules_expanded(
        self, product_id: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[PriceFact]:
        async for row in self._paginate_pairs(PRICE_RULES_EXPANDED_QUERY, product_id, batch_size):
            yield PriceFact(
                variant_1_id=row["part_variant_1_id"],
                variant_2_id=row["part_variant_2_id"],
                rule_id=row["rule_id"],
                amount=Decimal(row["price_adjustment"]),
                name=row["name"],
                description=row["description"],
            )

    # Catalog lookups

    async def load_product(self, product_id: str) -> Optional[Product]:
        row = await self._fetchrow("""
            SELECT id, name, product_key FROM products WHERE id = $1
        """, product_id)

        if not row:
            return None

        return Product(id=row["id"], name=row["name"], product_key=row["product_key"])

    async def load_variants(self, variant_ids: Iterable[str]) -> List[PartVariant]:
        ids = list(dict.fromkeys(variant_ids))
        if not ids:
            return []

        rows = await self._fetch("""
            SELECT pv.id, pv.part_id, pv.product_id, pv.name, pv.sku, pv.price,
                   pv.in_stock, pv.active,
                   COALESCE(array_agg(pvo.option_value_id)
                            FILTER (WHERE pvo.option_value_id IS NOT NULL), '{}') AS option_value_ids
            FROM part_variants pv
            LEFT JOIN part_variant_option_values pvo ON pvo.part_variant_id = pv.id
            WHERE pv.id = ANY($1::text[])
            GROUP BY pv.id
        """, ids)

        by_id = {row["id"]: self._row_to_variant(row) for row in rows}
        return [by_id[v] for v in ids if v in by_id]

    # Rule writes

    async def _write_variant_rule(self, rule: VariantCompatibilityRule):
        await self._execute("""
            INSERT INTO part_variant_compatibilities (
                id, product_id, part_variant_1_id, part_variant_2_id, compatibility_type, active
            ) VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (id) DO UPDATE SET
                product_id = EXCLUDED.product_id,
                part_variant_1_id = EXCLUDED.part_variant_1_id,
                part_variant_2_id = EXCLUDED.part_variant_2_id,
                compatibility_type = EXCLUDED.compatibility_type,
                active = EXCLUDED.active
        """,
            rule.id, rule.product_id, rule.part_variant_1_id, rule.part_variant_2_id,
            rule.compatibility_type.value, rule.active
        )

    async def _write_option_rule(self, rule: OptionCompatibilityRule):
        await self._execute("""
            INSERT INTO part_option_compatibilities (
                id, product_id, option_value_1_id, option_value_2_id, compatibility_type, active
            ) VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (id) DO UPDATE SET
                product_id = EXCLUDED.product_id,
                option_value_1_id = EXCLUDED.option_value_1_id,
                option_value_2_id = EXCLUDED.option_value_2_id,
                compatibility_type = EXCLUDED.compatibility_type,
                active = EXCLUDED.active
        """,
            rule.id, rule.product_id, rule.option_value_1_id, rule.option_value_2_id,
            rule.compatibility_type.value, rule.active
        )

    async def _write_price_rule(self, rule: PriceAdjustmentRule):
        await self._execute("""
            INSERT INTO price_adjustments (
                id, product_id, option_value_1_id, option_value_2_id,
                price_adjustment, name, description, active
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (id) DO UPDATE SET
                product_id = EXCLUDED.product_id,
                option_value_1_id = EXCLUDED.option_value_1_id,
                option_value_2_id = EXCLUDED.option_value_2_id,
                price_adjustment = EXCLUDED.price_adjustment,
                name = EXCLUDED.name,
                description = EXCLUDED.description,
                active = EXCLUDED.active
        """,
            rule.id, rule.product_id, rule.option_value_1_id, rule.option_value_2_id,
            rule.amount, rule.name, rule.description, rule.active
        )

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False

    # Helpers

    async def _paginate_pairs(self, query: str, product_id: str, batch_size: int) -> AsyncIterator[Any]:
        """Keyset pagination over (rule id, variant 1, variant 2)."""
        cursor: Tuple[Any, ...] = ("", "", "")
        while True:
            rows = await self._fetch(query, product_id, *cursor, batch_size)
            for row in rows:
                yield row
            if len(rows) < batch_size:
                return
            last = rows[-1]
            cursor = (last["rule_id"], last["part_variant_1_id"], last["part_variant_2_id"])

    async def _fetch(self, query: str, *args) -> Sequence[Any]:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except _STORE_ERRORS as e:
            self.logger.error("Rule store query failed", error=str(e))
            raise RuleStoreError(details={"error": str(e)}) from e

    async def _fetchrow(self, query: str, *args) -> Optional[Any]:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except _STORE_ERRORS as e:
            self.logger.error("Rule store query failed", error=str(e))
            raise RuleStoreError(details={"error": str(e)}) from e

    async def _execute(self, query: str, *args):
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(query, *args)
        except _STORE_ERRORS as e:
            self.logger.error("Rule store write failed", error=str(e))
            raise RuleStoreError("Rule store write failed", {"error": str(e)}) from e

    def _row_to_compatibility_fact(self, row, origin: RuleOrigin) -> CompatibilityFact:
        """Convert database row to a compatibility fact."""
        return CompatibilityFact(
            variant_1_id=row["part_variant_1_id"],
            variant_2_id=row["part_variant_2_id"],
            part_1_id=row["part_1_id"],
            part_2_id=row["part_2_id"],
            compatibility_type=CompatibilityType.parse(row["compatibility_type"]),
            origin=origin,
        )

    def _row_to_variant(self, row) -> PartVariant:
        """Convert database row to PartVariant object."""
        return PartVariant(
            id=row["id"],
            part_id=row["part_id"],
            product_id=row["product_id"],
            name=row["name"],
            sku=row["sku"],
            price=Decimal(row["price"]),
            in_stock=row["in_stock"],
            active=row["active"],
            option_value_ids=frozenset(row["option_value_ids"]),
        )
