"""Tests for auction lot models and total price computation."""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from src.config import ExtractionConfidence
from src.models.auction import (
    AuctionData,
    AuctionFees,
    calculate_extraction_confidence,
    compute_total_price,
)
from src.models.comparison import CompareRequest


class TestComputeTotalPrice:
    def test_premium_only(self) -> None:
        fees = AuctionFees(buyer_premium=Decimal("0.25"))
        assert compute_total_price(Decimal("100"), fees) == Decimal("125.00")

    def test_fixed_fees_and_vat(self) -> None:
        """VAT applies to bid + premium + fixed fees."""
        fees = AuctionFees(buyer_premium=Decimal("0.25"), fixed_fees=Decimal("10"), vat=Decimal("0.20"))
        assert compute_total_price(Decimal("100"), fees) == Decimal("162.00")

    def test_rounds_half_up_to_cents(self) -> None:
        fees = AuctionFees(buyer_premium=Decimal("0.15"))
        assert compute_total_price(Decimal("99.99"), fees) == Decimal("114.99")
        assert compute_total_price(Decimal("0.10"), AuctionFees(buyer_premium=Decimal("0.05"))) == Decimal("0.11")

    def test_no_fees(self) -> None:
        assert compute_total_price(Decimal("42"), AuctionFees()) == Decimal("42.00")


class TestAuctionData:
    def test_has_price(self) -> None:
        assert AuctionData(title="Lot", current_bid=Decimal("1")).has_price
        assert not AuctionData(title="Lot").has_price

    def test_negative_bid_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AuctionData(title="Lot", current_bid=Decimal("-1"))

    def test_frozen(self) -> None:
        data = AuctionData(title="Lot")
        with pytest.raises(ValidationError):
            data.title = "Other"

    def test_model_copy_updates(self) -> None:
        data = AuctionData(title="Lot", current_bid=Decimal("10"))
        updated = data.model_copy(update={"current_bid": Decimal("20")})
        assert updated.current_bid == Decimal("20")
        assert data.current_bid == Decimal("10")


class TestExtractionConfidence:
    def test_levels(self) -> None:
        assert calculate_extraction_confidence("Apple", "iPhone 13") == ExtractionConfidence.HIGH
        assert calculate_extraction_confidence(has_json_ld=True) == ExtractionConfidence.HIGH
        assert calculate_extraction_confidence("Apple") == ExtractionConfidence.MEDIUM
        assert calculate_extraction_confidence(None, "iPhone 13") == ExtractionConfidence.MEDIUM
        assert calculate_extraction_confidence() == ExtractionConfidence.LOW


class TestCompareRequest:
    def test_empty_title_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CompareRequest(title="", auction_price=Decimal("10"))

    def test_defaults(self) -> None:
        request = CompareRequest(title="iPhone", auction_price=Decimal("10"))
        assert request.locale == "fr"
        assert request.force_refresh is False
        assert request.use_normalization is None
