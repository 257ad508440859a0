"""
Rule indexer for Configurator Service.

Streams a product's active rules out of a rule store and folds them into
adjacency indexes keyed by variant ID. Option-value rules arrive already
expanded into concrete variant pairs, so both compatibility rule origins
are indexed identically.

Index memory scales with the number of rule-referenced variants times the
average rule fan-out, never with the catalog size.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger
from .models import CompatibilityFact, CompatibilityType, PriceFact

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..persistence.base import RuleStore
    from shared.metrics import MetricsCollector


DEFAULT_BATCH_SIZE = 200
PAIR_KEY_SEPARATOR = ":"

_TYPE_KEYS = {
    CompatibilityType.INCLUDE: "include",
    CompatibilityType.EXCLUDE: "exclude",
}

_EMPTY: Set[str] = frozenset()  # type: ignore[assignment]


def pair_key(variant_1_id: str, variant_2_id: str) -> str:
    """Canonical key for an unordered variant pair."""
    return PAIR_KEY_SEPARATOR.join(sorted((variant_1_id, variant_2_id)))


@dataclass
class CompatibilityIndex:
    """variant -> {include|exclude -> part -> variants}."""

    entries: Dict[str, Dict[str, Dict[str, Set[str]]]] = field(default_factory=dict)

    def add(self, fact: CompatibilityFact):
        """Index a fact in both directions."""
        type_key = _TYPE_KEYS[fact.compatibility_type]
        self._entry(fact.variant_1_id)[type_key].setdefault(fact.part_2_id, set()).add(fact.variant_2_id)
        self._entry(fact.variant_2_id)[type_key].setdefault(fact.part_1_id, set()).add(fact.variant_1_id)

    def included(self, variant_id: str, part_id: str) -> Set[str]:
        """Variants of ``part_id`` that ``variant_id`` is restricted to (empty means unrestricted)."""
        entry = self.entries.get(variant_id)
        if entry is None:
            return _EMPTY
        return entry["include"].get(part_id, _EMPTY)

    def excluded(self, variant_id: str, part_id: str) -> Set[str]:
        """Variants of ``part_id`` that ``variant_id`` forbids."""
        entry = self.entries.get(variant_id)
        if entry is None:
            return _EMPTY
        return entry["exclude"].get(part_id, _EMPTY)

    def __len__(self) -> int:
        return len(self.entries)

    def _entry(self, variant_id: str) -> Dict[str, Dict[str, Set[str]]]:
        entry = self.entries.get(variant_id)
        if entry is None:
            entry = {"include": {}, "exclude": {}}
            self.entries[variant_id] = entry
        return entry

    def to_payload(self) -> Dict[str, Any]:
        """JSON-compatible representation for the durable cache."""
        return {
            variant_id: {
                type_key: {part_id: sorted(ids) for part_id, ids in by_part.items()}
                for type_key, by_part in entry.items()
            }
            for variant_id, entry in self.entries.items()
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CompatibilityIndex":
        entries = {}
        for variant_id, entry in payload.items():
            entries[variant_id] = {
                type_key: {part_id: set(ids) for part_id, ids in entry.get(type_key, {}).items()}
                for type_key in ("include", "exclude")
            }
        return cls(entries=entries)


@dataclass
class PricingIndex:
    """Adjacency, pair and rule lookups for price adjustments."""

    by_variants: Dict[str, Set[str]] = field(default_factory=dict)
    by_pair: Dict[str, Set[str]] = field(default_factory=dict)
    by_id: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def add(self, fact: PriceFact):
        self.by_variants.setdefault(fact.variant_1_id, set()).add(fact.variant_2_id)
        self.by_variants.setdefault(fact.variant_2_id, set()).add(fact.variant_1_id)
        self.by_pair.setdefault(pair_key(fact.variant_1_id, fact.variant_2_id), set()).add(fact.rule_id)
        self.by_id[fact.rule_id] = {
            "amount": Decimal(fact.amount),
            "name": fact.name,
            "description": fact.description,
        }

    def neighbours(self, variant_id: str) -> Set[str]:
        return self.by_variants.get(variant_id, _EMPTY)

    def rule_ids(self, variant_1_id: str, variant_2_id: str) -> Set[str]:
        return self.by_pair.get(pair_key(variant_1_id, variant_2_id), _EMPTY)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-compatible representation for the durable cache."""
        return {
            "by_variants": {k: sorted(v) for k, v in self.by_variants.items()},
            "by_pair": {k: sorted(v) for k, v in self.by_pair.items()},
            "by_id": {
                rule_id: {
                    "amount": str(rule["amount"]),
                    "name": rule["name"],
                    "description": rule["description"],
                }
                for rule_id, rule in self.by_id.items()
            },
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PricingIndex":
        return cls(
            by_variants={k: set(v) for k, v in payload["by_variants"].items()},
            by_pair={k: set(v) for k, v in payload["by_pair"].items()},
            by_id={
                rule_id: {
                    "amount": Decimal(rule["amount"]),
                    "name": rule["name"],
                    "description": rule.get("description"),
                }
                for rule_id, rule in payload["by_id"].items()
            },
        )


class RuleIndexer:
    """Builds per-product rule indexes from a rule store."""

    def __init__(
        self,
        store: "RuleStore",
        batch_size: int = DEFAULT_BATCH_SIZE,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.batch_size = batch_size
        self.metrics = metrics
        self.logger = get_logger("configurator.rule_indexer")

    async def build_compatibility_index(self, product_id: str) -> CompatibilityIndex:
        """Index every active variant and option compatibility rule of a product."""
        start_time = time.time()
        index = CompatibilityIndex()
        counts: Dict[str, int] = {}

        async for fact in self._compatibility_facts(product_id):
            if fact.variant_1_id == fact.variant_2_id:
                continue
            index.add(fact)
            counts[fact.origin.value] = counts.get(fact.origin.value, 0) + 1

        self._record_build("compatibility", start_time)
        self.logger.info(
            "Compatibility index built",
            product_id=product_id,
            variants=len(index),
            facts=counts,
            duration_ms=round((time.time() - start_time) * 1000, 2)
        )
        return index

    async def build_pricing_index(self, product_id: str) -> PricingIndex:
        """Index every active price adjustment rule of a product."""
        start_time = time.time()
        index = PricingIndex()
        facts = 0

        async for fact in self.store.active_price_rules_expanded(product_id, batch_size=self.batch_size):
            if fact.variant_1_id == fact.variant_2_id:
                continue
            index.add(fact)
            facts += 1

        self._record_build("pricing", start_time)
        self.logger.info(
            "Pricing index built",
            product_id=product_id,
            variants=len(index.by_variants),
            rules=len(index.by_id),
            facts=facts,
            duration_ms=round((time.time() - start_time) * 1000, 2)
        )
        return index

    async def _compatibility_facts(self, product_id: str) -> AsyncIterator[CompatibilityFact]:
        """Variant rules followed by expanded option rules, as one stream."""
        async for fact in self.store.active_variant_rules(product_id, batch_size=self.batch_size):
            yield fact
        async for fact in self.store.active_option_rules_expanded(product_id, batch_size=self.batch_size):
            yield fact

    def _record_build(self, kind: str, start_time: float):
        if self.metrics:
            self.metrics.increment_counter("index_builds_total", kind=kind)
            self.metrics.observe_histogram("index_build_duration_seconds", time.time() - start_time, kind=kind)
