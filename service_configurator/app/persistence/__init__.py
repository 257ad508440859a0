"""
Persistence package for Configurator Service.

Rule stores supply the rule indexer with a product's active rules as
normalized variant-pair facts, streamed in fixed-size pages, and own the
rule write paths that trigger cache invalidation.
"""

from .base import RuleStore
from .memory import InMemoryRuleStore
from .postgres import PostgreSQLRuleStore

__all__ = ["RuleStore", "InMemoryRuleStore", "PostgreSQLRuleStore"]
