"""
Auction Comparator - Normalization Models

NormalizeRequest goes into the SignatureBuilder, NormalizedResult comes out.
ProductSignatures are the strict/loose cache keys derived from a result.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.config import (
    ConditionGrade,
    FunctionalState,
    ItemCategory,
    NormalizedCondition,
)


class DeterministicHints(BaseModel):
    """Regex-detected broken/condition indicators for a raw title."""
    broken_indicators: list[str] = Field(default_factory=list)
    condition_indicators: list[str] = Field(default_factory=list)
    broken_confidence: float = 0.0
    condition_confidence: float = 0.0


class ProductSignatures(BaseModel):
    model_config = {"frozen": True}

    strict: str
    loose: str


class NormalizeRequest(BaseModel):
    raw_title: str = Field(min_length=1)
    locale: str = "fr"
    site_domain: str = ""
    brand_hint: str | None = None
    model_hint: str | None = None
    category_hint: ItemCategory | None = None
    hints: DeterministicHints | None = None


class NormalizedProduct(BaseModel):
    """Structured product identity extracted from a free-text title."""
    brand: str | None = None
    model: str | None = None
    reference: str | None = None
    capacity_gb: int | None = None
    category: ItemCategory = ItemCategory.PRODUCT
    condition_grade: ConditionGrade = ConditionGrade.UNKNOWN
    functional_state: FunctionalState = FunctionalState.UNKNOWN
    locale: str = "fr"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    condition_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    query: str = ""
    alt_queries: list[str] = Field(default_factory=list)


class NormalizedResult(NormalizedProduct):
    """NormalizedProduct plus the provenance of the normalization."""
    normalized_title: str
    capacity: str | None = None
    condition: NormalizedCondition = NormalizedCondition.UNKNOWN
    is_accessory: bool = False
    used_ai: bool = False
    cache_key: str = ""
    hints: DeterministicHints = Field(default_factory=DeterministicHints)
    signatures: ProductSignatures | None = None
