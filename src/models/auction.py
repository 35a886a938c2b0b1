"""
Auction Comparator - Auction Lot Model

AuctionData is what the extractor produces for one lot page. It is frozen:
later stages (retry, AI merge) build a new instance with model_copy().

total_price = current_bid * (1 + buyer_premium) + fixed_fees, then VAT,
rounded to cents. Sites that declare neither fixed fees nor VAT get the
plain premium formula.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from pydantic import BaseModel, Field

from src.config import Currency, ExtractionConfidence, ItemCategory, ItemCondition

_CENT = Decimal("0.01")


class AuctionFees(BaseModel):
    """Fees charged on top of the hammer price."""
    model_config = {"frozen": True}

    buyer_premium: Decimal = Field(default=Decimal("0"), ge=0)  # 0.25 = 25%
    fixed_fees: Decimal | None = None
    vat: Decimal | None = None                                 # 0.20 = 20%


class AuctionData(BaseModel):
    """Structured snapshot of an auction lot."""
    model_config = {"frozen": True}

    title: str
    condition: ItemCondition = ItemCondition.UNKNOWN
    current_bid: Decimal = Field(default=Decimal("0"), ge=0)
    currency: Currency = Currency.EUR
    fees: AuctionFees = Field(default_factory=AuctionFees)
    total_price: Decimal = Decimal("0")
    site_domain: str = ""
    locale: str = "fr"
    lot_url: str = ""
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    extraction_confidence: ExtractionConfidence | None = None
    brand: str | None = None
    model: str | None = None
    category: ItemCategory | None = None
    lot_id: str | None = None

    @property
    def has_price(self) -> bool:
        return self.current_bid > 0


def compute_total_price(current_bid: Decimal, fees: AuctionFees) -> Decimal:
    """
    Total cost to the buyer for a given bid.

    Args:
        current_bid: Hammer price.
        fees: Site fees (premium, fixed fees, VAT).

    Returns:
        Total price rounded to cents.

    Examples:
        >>> compute_total_price(Decimal("100"), AuctionFees(buyer_premium=Decimal("0.25")))
        Decimal('125.00')
    """
    total = current_bid * (Decimal("1") + fees.buyer_premium)
    if fees.fixed_fees:
        total += fees.fixed_fees
    if fees.vat:
        total *= Decimal("1") + fees.vat
    return total.quantize(_CENT, rounding=ROUND_HALF_UP)


def calculate_extraction_confidence(
    brand: str | None = None,
    model: str | None = None,
    has_json_ld: bool = False,
) -> ExtractionConfidence:
    """
    Grade how much structure an adapter found on the page.

    JSON-LD or both brand and model is high, one of them is medium,
    title-only extraction is low.
    """
    if has_json_ld or (brand and model):
        return ExtractionConfidence.HIGH
    if brand or model:
        return ExtractionConfidence.MEDIUM
    return ExtractionConfidence.LOW
