"""
Auction Comparator - Configuration & Constants

Every threshold, TTL, retry budget and magic number used by the extractor,
the normalizer, the scorer and the comparison cache lives here. No hardcoded
values in business logic.

Usage:
    from src.config import settings
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Currency(str, Enum):
    """Currencies accepted on auction lots and web offers."""
    EUR = "EUR"
    USD = "USD"
    GBP = "GBP"


class ItemCondition(str, Enum):
    """Condition as displayed by the auction site."""
    NEW = "new"
    LIKE_NEW = "like_new"
    VERY_GOOD = "very_good"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    FOR_PARTS = "for_parts"
    UNKNOWN = "unknown"


class ExtractionConfidence(str, Enum):
    """How much of the lot an adapter could read from structured data."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ItemCategory(str, Enum):
    PRODUCT = "product"
    VEHICLE = "vehicle"


class ConditionGrade(str, Enum):
    """Coarse condition used in product signatures."""
    NEW = "new"
    USED = "used"
    UNKNOWN = "unknown"


class FunctionalState(str, Enum):
    OK = "ok"
    BROKEN = "broken"
    UNKNOWN = "unknown"


class NormalizedCondition(str, Enum):
    """Legacy condition label returned alongside the condition grade."""
    NEW = "new"
    USED = "used"
    REFURBISHED = "refurbished"
    UNKNOWN = "unknown"


class ConfidenceLevel(str, Enum):
    """Trust in the web price sample."""
    HIGH = "high"      # >= 5 results, mean relevance >= 0.7
    MEDIUM = "medium"  # >= 3 results, mean relevance >= 0.5
    LOW = "low"


class VerdictStatus(str, Enum):
    WORTH_IT = "worth_it"
    BORDERLINE = "borderline"
    NOT_WORTH_IT = "not_worth_it"


class CompareSource(str, Enum):
    """Which tier served a comparison response."""
    CACHE_STRICT = "cache_strict"
    CACHE_LOOSE = "cache_loose"
    FRESH_FETCH = "fresh_fetch"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for the auction comparator.

    Loads from environment variables with fallback defaults.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # -----------------------------------------------------------------------
    # API Keys
    # -----------------------------------------------------------------------
    SERPAPI_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""

    # SerpApi (web price search)
    SERPAPI_BASE_URL: str = "https://serpapi.com/search"
    SERPAPI_TIMEOUT_SECONDS: float = 15.0
    SEARCH_MAX_RESULTS: int = 15

    # -----------------------------------------------------------------------
    # AI collaborators (Anthropic Messages API)
    # -----------------------------------------------------------------------
    NORMALIZER_PROVIDER: str = "anthropic"     # "none" disables AI normalization
    NORMALIZER_MODEL_ID: str = "claude-3-5-haiku-latest"
    NORMALIZER_MAX_TOKENS: int = 500
    EXTRACTION_MODEL_ID: str = "claude-3-5-haiku-latest"
    EXTRACTION_MAX_TOKENS: int = 256

    # -----------------------------------------------------------------------
    # Defaults
    # -----------------------------------------------------------------------
    DEFAULT_LOCALE: str = "fr"
    DEFAULT_CURRENCY: Currency = Currency.EUR

    # -----------------------------------------------------------------------
    # Extraction - adapter retry loop
    # Retry delay grows linearly: attempt * EXTRACTION_RETRY_BASE_DELAY_SECONDS
    # -----------------------------------------------------------------------
    EXTRACTION_MAX_RETRIES: int = 1
    EXTRACTION_MAX_RETRIES_SPA: int = 3        # Single-page-app sites render late
    EXTRACTION_RETRY_BASE_DELAY_SECONDS: float = 1.0
    EXTRACTION_MAX_TOTAL_WAIT_SECONDS: float = 6.0
    EXTRACTION_INITIAL_DELAY_SECONDS: float = 0.5
    EXTRACTION_INITIAL_DELAY_SPA_SECONDS: float = 1.5

    # Buyer's premium applied when neither adapter nor domain table declares one
    DEFAULT_BUYER_PREMIUM: Decimal = Decimal("0.20")
    MINIMAL_RECORD_TITLE: str = "Unknown Item"

    # -----------------------------------------------------------------------
    # Live updates
    # -----------------------------------------------------------------------
    LIVE_UPDATE_DEBOUNCE_MS: int = 500
    LIVE_UPDATE_TARGET_SELECTOR: str = "body"

    # -----------------------------------------------------------------------
    # Normalization
    # -----------------------------------------------------------------------
    HEURISTIC_BASE_CONFIDENCE: float = 0.3
    HEURISTIC_MAX_CONFIDENCE: float = 0.8
    NORMALIZE_FALLBACK_MAX_CONFIDENCE: float = 0.6   # Heuristic after an AI failure
    AI_CONDITION_CONFIDENCE: float = 0.6             # AI condition grade is capped
    BROKEN_AUTHORITATIVE_CONFIDENCE: float = 0.8
    BROKEN_MEDIUM_CONFIDENCE: float = 0.5
    CONDITION_AUTHORITATIVE_CONFIDENCE: float = 0.7
    CONDITION_FALLBACK_CONFIDENCE: float = 0.3
    MAX_ALT_QUERIES: int = 2
    MAX_QUERY_LENGTH: int = 60
    NORMALIZE_CACHE_TTL_SECONDS: int = 30 * 24 * 3600
    NORMALIZE_CACHE_MAX_ENTRIES: int = 10_000

    # -----------------------------------------------------------------------
    # Scoring
    # relevance = min(1, overlap * 0.7 + brand/model bonus + 0.1)
    # -----------------------------------------------------------------------
    RELEVANCE_OVERLAP_WEIGHT: float = 0.7
    RELEVANCE_BRAND_BONUS: float = 0.15
    RELEVANCE_MODEL_BONUS: float = 0.15
    RELEVANCE_BASE_BONUS: float = 0.1
    RELEVANCE_MIN_WORD_LENGTH: int = 3

    CONFIDENCE_HIGH_MIN_COUNT: int = 5
    CONFIDENCE_HIGH_MIN_RELEVANCE: float = 0.7
    CONFIDENCE_MEDIUM_MIN_COUNT: int = 3
    CONFIDENCE_MEDIUM_MIN_RELEVANCE: float = 0.5

    DEFAULT_MARGIN_PCT: Decimal = Decimal("0.10")   # worth_it needs 10% under min

    # Result filtering before statistics
    RELEVANCE_THRESHOLD_PRODUCT: float = 0.25
    RELEVANCE_THRESHOLD_VEHICLE: float = 0.15
    RELEVANCE_THRESHOLD_RELAXED: float = 0.05
    VEHICLE_MIN_PRICE_RATIO: Decimal = Decimal("0.20")  # Drop offers < 20% of bid
    VEHICLE_MIN_WEB_PRICE: Decimal = Decimal("1500")
    MAX_SCORED_RESULTS: int = 10

    # -----------------------------------------------------------------------
    # Comparison cache
    # -----------------------------------------------------------------------
    CACHE_MAX_ENTRIES: int = 500
    CACHE_DEFAULT_TTL_SECONDS: int = 24 * 3600
    CACHE_LOOSE_MAX_AGE_SECONDS: int = 6 * 3600
    CACHE_LOOSE_MAX_CONDITION_CONFIDENCE: float = 0.5  # Loose tier only below this
    RESPONSE_MEMO_MAX_ENTRIES: int = 500
    RESPONSE_MEMO_TTL_SECONDS: int = 3600


# Singleton instance
settings = Settings()
