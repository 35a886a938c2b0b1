"""
Models package - export all pydantic models.
"""

from src.models.auction import AuctionData, AuctionFees, compute_total_price
from src.models.comparison import (
    CacheMetadata,
    CompareRequest,
    CompareResponse,
    NormalizedInfo,
    PriceStats,
    Verdict,
    WebPriceResult,
)
from src.models.normalization import (
    DeterministicHints,
    NormalizedProduct,
    NormalizedResult,
    NormalizeRequest,
    ProductSignatures,
)

__all__ = [
    "AuctionData",
    "AuctionFees",
    "CacheMetadata",
    "CompareRequest",
    "CompareResponse",
    "DeterministicHints",
    "NormalizedInfo",
    "NormalizedProduct",
    "NormalizedResult",
    "NormalizeRequest",
    "PriceStats",
    "ProductSignatures",
    "Verdict",
    "WebPriceResult",
    "compute_total_price",
]
