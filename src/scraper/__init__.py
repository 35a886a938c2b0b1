"""Auction Comparator - Lot Page Extraction Layer"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from src.config import Currency, ExtractionConfidence, settings


class MutationConfig(BaseModel):
    """What to watch on a lot page and how long to debounce changes."""
    target_selector: str = Field(default_factory=lambda: settings.LIVE_UPDATE_TARGET_SELECTOR)
    debounce_ms: int = Field(default_factory=lambda: settings.LIVE_UPDATE_DEBOUNCE_MS, ge=0)
    options: dict[str, Any] = Field(
        default_factory=lambda: {"child_list": True, "subtree": True, "character_data": True}
    )


class ExtractedPrice(BaseModel):
    value: Decimal
    currency: Currency = Currency.EUR


class LotPageInfo(BaseModel):
    """Where a page sits in the domain-config table."""
    is_lot_page: bool = False
    domain: str = ""
    url: str = ""
    pathname: str = ""
    config_id: str | None = None
    locale: str | None = None
    buyer_premium: Decimal | None = None


class AiExtractionResult(BaseModel):
    """Title/price read from a lot page screenshot."""
    title: str | None = None
    price: ExtractedPrice | None = None
    confidence: ExtractionConfidence = ExtractionConfidence.LOW
    domain: str = ""
    lot_page_info: LotPageInfo = Field(default_factory=LotPageInfo)
