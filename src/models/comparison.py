"""
Auction Comparator - Comparison Models

Request/response shapes of a price comparison and the pieces the scorer
produces (stats, verdict). Money values are Decimal, relevance is a float
in [0, 1].
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from src.config import (
    CompareSource,
    ConditionGrade,
    ConfidenceLevel,
    Currency,
    ExtractionConfidence,
    FunctionalState,
    ItemCategory,
    ItemCondition,
    VerdictStatus,
)
from src.models.normalization import ProductSignatures


class WebPriceResult(BaseModel):
    """One priced offer found on the web."""
    title: str
    price: Decimal
    price_string: str = ""
    source: str = ""
    url: str = ""
    thumbnail: str | None = None
    condition: str | None = None
    shipping_included: bool | None = None
    shipping_cost: Decimal | None = None
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)


class PriceStats(BaseModel):
    """Summary statistics; count == 0 means every other field is zero."""
    min: Decimal = Decimal("0")
    max: Decimal = Decimal("0")
    median: Decimal = Decimal("0")
    average: Decimal = Decimal("0")
    count: int = 0


class Verdict(BaseModel):
    status: VerdictStatus
    margin: Decimal   # Percent below (+) or above (-) the lowest web price
    reason: str


class CacheMetadata(BaseModel):
    source: CompareSource
    cache_entry_id: str | None = None
    fetched_at: datetime | None = None
    expires_at: datetime | None = None
    signature_used: str | None = None


class NormalizedInfo(BaseModel):
    """Subset of the normalization echoed back to the caller."""
    brand: str | None = None
    model: str | None = None
    capacity_gb: int | None = None
    condition_grade: ConditionGrade = ConditionGrade.UNKNOWN
    functional_state: FunctionalState = FunctionalState.UNKNOWN
    category: ItemCategory = ItemCategory.PRODUCT
    signatures: ProductSignatures | None = None


class CompareRequest(BaseModel):
    title: str = Field(min_length=1)
    brand: str | None = None
    model: str | None = None
    condition: ItemCondition | None = None
    currency: Currency = Currency.EUR
    locale: str = "fr"
    auction_price: Decimal
    site_domain: str = ""
    lot_url: str | None = None
    category: ItemCategory | None = None
    extraction_confidence: ExtractionConfidence | None = None
    use_normalization: bool | None = None
    force_refresh: bool = False


class CompareResponse(BaseModel):
    query_used: str
    results: list[WebPriceResult] = Field(default_factory=list)
    stats: PriceStats = Field(default_factory=PriceStats)
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    verdict: Verdict
    cache: CacheMetadata | None = None
    normalized: NormalizedInfo | None = None
    usage: dict[str, Any] | None = None
