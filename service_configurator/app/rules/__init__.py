"""
Rules package.

Defines the catalog and rule models, the indexer that turns a product's
active rules into adjacency indexes, and the two resolvers that evaluate
those indexes:

- models: Catalog entities, rule records, normalized facts and API models.
- indexer: Streams rules from a store and builds compatibility/pricing indexes.
- compatibility: INCLUDE/EXCLUDE resolution with per-part scoping.
- pricing: Additive price adjustment lookup over variant pairs.
"""
