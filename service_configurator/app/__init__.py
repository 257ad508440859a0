"""
Configurator Service package.

This package decides, for a product being configured, which variants of a
part remain compatible with the variants already chosen and which price
adjustments apply to pairs of chosen variants. It provides:

- app.main: API surface for compatibility/pricing resolution and health.
- app.rules: Catalog and rule models, the rule indexer and both resolvers.
- app.cache: Pass-through and Redis-backed caches for built rule indexes.
- app.persistence: Rule stores (PostgreSQL and in-memory).

Guidelines:
- The resolvers are stateless; rely on the injected cache for reuse.
- Rule indexes are built once per product per cache generation.
- Rule writes purge the whole cache namespace of the affected domain.
"""
