"""
Catalog and rule data models for Configurator Service.
"""

from typing import Dict, Optional, List, FrozenSet
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class CompatibilityType(str, Enum):
    """Compatibility rule types."""
    INCLUDE = "INCLUDE"
    EXCLUDE = "EXCLUDE"

    @classmethod
    def parse(cls, value: str) -> "CompatibilityType":
        """Parse a stored compatibility type, case-insensitively."""
        return cls.EXCLUDE if str(value).upper() == "EXCLUDE" else cls.INCLUDE


class RuleOrigin(str, Enum):
    """Where a compatibility fact was authored."""
    VARIANT = "variant"
    OPTION = "option"


class RuleDomain(str, Enum):
    """Cache invalidation domains."""
    COMPATIBILITY = "compatibility"
    PRICE_ADJUSTMENTS = "price_adjustments"
    ALL = "all"


# Catalog entities

@dataclass(frozen=True)
class Product:
    """Configurable product."""
    id: str
    name: str = ""
    product_key: str = ""


@dataclass(frozen=True)
class Part:
    """Interchangeable part of a product."""
    id: str
    product_id: str
    part_key: str = ""
    name: str = ""


@dataclass(frozen=True)
class Option:
    """Named attribute of a part."""
    id: str
    part_id: str
    option_key: str = ""
    name: str = ""


@dataclass(frozen=True)
class OptionValue:
    """Selectable value of an option."""
    id: str
    option_id: str
    value: str = ""


@dataclass(frozen=True)
class PartVariant:
    """Concrete, purchasable configuration of a part."""
    id: str
    part_id: str
    product_id: str
    name: str = ""
    sku: str = ""
    price: Decimal = Decimal("0")
    in_stock: bool = True
    active: bool = True
    option_value_ids: FrozenSet[str] = frozenset()


# Rules as authored

@dataclass
class VariantCompatibilityRule:
    """Compatibility between two part variants."""
    id: str
    product_id: str
    part_variant_1_id: str
    part_variant_2_id: str
    compatibility_type: CompatibilityType = CompatibilityType.INCLUDE
    active: bool = True


@dataclass
class OptionCompatibilityRule:
    """Compatibility between two option values."""
    id: str
    product_id: str
    option_value_1_id: str
    option_value_2_id: str
    compatibility_type: CompatibilityType = CompatibilityType.INCLUDE
    active: bool = True


@dataclass
class PriceAdjustmentRule:
    """Extra amount charged when two option values are combined."""
    id: str
    product_id: str
    option_value_1_id: str
    option_value_2_id: str
    amount: Decimal
    name: str
    description: Optional[str] = None
    active: bool = True


# Normalized facts streamed from a rule store

@dataclass(frozen=True)
class CompatibilityFact:
    """A compatibility rule resolved down to one concrete variant pair."""
    variant_1_id: str
    variant_2_id: str
    part_1_id: str
    part_2_id: str
    compatibility_type: CompatibilityType
    origin: RuleOrigin = RuleOrigin.VARIANT


@dataclass(frozen=True)
class PriceFact:
    """A price adjustment rule resolved down to one concrete variant pair."""
    variant_1_id: str
    variant_2_id: str
    rule_id: str
    amount: Decimal
    name: str
    description: Optional[str] = None


# API models

class PriceAdjustment(BaseModel):
    """Price adjustment applying to a pair of variants."""
    variant_1_id: str = Field(..., description="Lexicographically smaller variant ID")
    variant_2_id: str = Field(..., description="Lexicographically larger variant ID")
    amount: Decimal = Field(..., ge=0, description="Extra amount charged for the pair")
    name: str = Field(..., description="Rule name")
    description: Optional[str] = Field(None, description="Rule description")


class CompatibilityResolveRequest(BaseModel):
    """Request model for compatibility resolution."""
    product_id: str = Field(..., description="Product ID")
    selected_variant_ids: List[str] = Field(default_factory=list, description="Already selected variants")
    target_variant_ids: List[str] = Field(..., description="Candidate variants to filter")


class CompatibilityResolveResponse(BaseModel):
    """Response model for compatibility resolution."""
    product_id: str
    compatible_variant_ids: List[str]


class CompatibilityCheckRequest(BaseModel):
    """Request model for a pairwise compatibility check."""
    product_id: str = Field(..., description="Product ID")
    variant_ids: List[str] = Field(..., description="Variants that must all be mutually compatible")


class CompatibilityCheckResponse(BaseModel):
    """Response model for a pairwise compatibility check."""
    product_id: str
    compatible: bool


class PriceAdjustmentsRequest(BaseModel):
    """Request model for price adjustment lookup."""
    product_id: str = Field(..., description="Product ID")
    selected_variant_ids: List[str] = Field(default_factory=list, description="Already selected variants")
    target_variant_ids: List[str] = Field(..., description="Candidate variants to price")


class PriceAdjustmentsResponse(BaseModel):
    """Response model for price adjustment lookup."""
    product_id: str
    adjustments: List[PriceAdjustment]
    total: Decimal = Field(..., description="Sum of adjustment amounts")


class CacheInvalidateRequest(BaseModel):
    """Request model for cache invalidation after rule writes."""
    domain: RuleDomain = Field(RuleDomain.ALL, description="Which rule indexes to purge")


class CacheInvalidateResponse(BaseModel):
    """Response model for cache invalidation."""
    domain: RuleDomain
    purged: Dict[str, int] = Field(default_factory=dict)
