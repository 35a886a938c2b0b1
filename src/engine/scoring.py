"""
Auction Comparator - Price Comparison Scorer

Pure functions that reduce a set of web offers to a buy/skip verdict:

- calculate_relevance_score(): 0..1 similarity of an offer title to the lot
- filter_results(): relevance threshold, vehicle price sanity, top-N
- calculate_price_stats(): min/max/median/average
- calculate_confidence(): trust in the sample (count + mean relevance)
- calculate_verdict(): worth_it / borderline / not_worth_it

Verdict rules (margin_pct defaults to 10%):
    price <= min * (1 - margin_pct)  -> worth_it
    price >  median                  -> not_worth_it
    otherwise                        -> borderline
    margin = round((min - price) / min * 100, 1)
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from statistics import fmean

import structlog

from src.config import ConfidenceLevel, ItemCategory, VerdictStatus, settings
from src.models.comparison import PriceStats, Verdict, WebPriceResult
from src.normalization.canonical import canonicalize_text

logger = structlog.get_logger(__name__)

_TWO_DP = Decimal("0.01")
_ONE_DP = Decimal("0.1")
_WHOLE = Decimal("1")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

NO_PRICES_REASON = "No comparable prices found"


def _quantize(value: Decimal, step: Decimal = _TWO_DP) -> Decimal:
    return value.quantize(step, rounding=ROUND_HALF_UP)


def _as_decimal(value: Decimal | float | int) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


# ---------------------------------------------------------------------------
# Relevance
# ---------------------------------------------------------------------------

def calculate_relevance_score(
    auction_title: str,
    result_title: str,
    brand: str | None = None,
    model: str | None = None,
) -> float:
    """
    Similarity of a web offer to the auction lot, in [0, 1].

    relevance = min(1, overlap * 0.7 + bonus + 0.1) where overlap is the
    share of the lot's canonical words (longer than 2 chars) found in the
    offer title, and bonus adds 0.15 each when the canonical brand/model
    appears in the offer title.
    """
    auction_text = canonicalize_text(auction_title)
    result_text = canonicalize_text(result_title)

    min_len = settings.RELEVANCE_MIN_WORD_LENGTH
    auction_words = {w for w in auction_text.split() if len(w) >= min_len}
    result_words = {w for w in result_text.split() if len(w) >= min_len}

    overlap = len(auction_words & result_words) / len(auction_words) if auction_words else 0.0

    bonus = 0.0
    if brand and canonicalize_text(brand) in result_text:
        bonus += settings.RELEVANCE_BRAND_BONUS
    if model and canonicalize_text(model) in result_text:
        bonus += settings.RELEVANCE_MODEL_BONUS

    return min(1.0, overlap * settings.RELEVANCE_OVERLAP_WEIGHT + bonus + settings.RELEVANCE_BASE_BONUS)


def filter_results(
    results: list[WebPriceResult],
    category: ItemCategory = ItemCategory.PRODUCT,
    auction_price: Decimal | None = None,
    max_results: int | None = None,
) -> list[WebPriceResult]:
    """
    Keep the offers worth comparing against, best first.

    Drops offers under the category's relevance threshold (relaxed when
    nothing survives), drops vehicle offers priced under 20% of the bid
    (parts, rentals) and keeps the top max_results by relevance.
    """
    limit = max_results if max_results is not None else settings.MAX_SCORED_RESULTS
    threshold = (
        settings.RELEVANCE_THRESHOLD_VEHICLE
        if category == ItemCategory.VEHICLE
        else settings.RELEVANCE_THRESHOLD_PRODUCT
    )

    def _select(min_relevance: float) -> list[WebPriceResult]:
        kept = [r for r in results if r.price > _ZERO and r.relevance_score >= min_relevance]
        if category == ItemCategory.VEHICLE and auction_price and auction_price > _ZERO:
            floor = auction_price * settings.VEHICLE_MIN_PRICE_RATIO
            kept = [r for r in kept if r.price >= floor]
        kept.sort(key=lambda r: r.relevance_score, reverse=True)
        return kept[:limit]

    selected = _select(threshold)
    if not selected and results:
        selected = _select(settings.RELEVANCE_THRESHOLD_RELAXED)
        logger.info(
            "results_filter_relaxed",
            total=len(results),
            kept=len(selected),
            threshold=settings.RELEVANCE_THRESHOLD_RELAXED,
            source="scoring",
        )
    return selected


# ---------------------------------------------------------------------------
# Statistics & confidence
# ---------------------------------------------------------------------------

def calculate_price_stats(results: list[WebPriceResult]) -> PriceStats:
    """
    Summary statistics over offer prices.

    Median averages the two middle prices for an even count. Median and
    average are rounded to cents. Empty input gives all zeros.
    """
    if not results:
        return PriceStats()

    prices = sorted(_as_decimal(r.price) for r in results)
    count = len(prices)
    mid = count // 2
    if count % 2 == 0:
        median = (prices[mid - 1] + prices[mid]) / 2
    else:
        median = prices[mid]

    return PriceStats(
        min=prices[0],
        max=prices[-1],
        median=_quantize(median),
        average=_quantize(sum(prices, _ZERO) / count),
        count=count,
    )


def calculate_confidence(results: list[WebPriceResult]) -> ConfidenceLevel:
    if not results:
        return ConfidenceLevel.LOW

    mean_relevance = fmean(r.relevance_score for r in results)
    count = len(results)

    if (
        count >= settings.CONFIDENCE_HIGH_MIN_COUNT
        and mean_relevance >= settings.CONFIDENCE_HIGH_MIN_RELEVANCE
    ):
        return ConfidenceLevel.HIGH
    if (
        count >= settings.CONFIDENCE_MEDIUM_MIN_COUNT
        and mean_relevance >= settings.CONFIDENCE_MEDIUM_MIN_RELEVANCE
    ):
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------

def calculate_verdict(
    auction_price: Decimal | float | int,
    stats: PriceStats,
    margin_pct: Decimal | None = None,
) -> Verdict:
    """
    Buy/skip recommendation for an auction price against web statistics.

    Args:
        auction_price: Total price the buyer would pay.
        stats: Web price statistics.
        margin_pct: Required discount under the lowest web price for
            worth_it (default DEFAULT_MARGIN_PCT, 0.10).

    Returns:
        Verdict with margin in percent (positive = below the lowest web
        price) rounded to one decimal.
    """
    margin_pct = margin_pct if margin_pct is not None else settings.DEFAULT_MARGIN_PCT
    price = _as_decimal(auction_price)

    if stats.count == 0 or stats.min <= _ZERO:
        return Verdict(status=VerdictStatus.BORDERLINE, margin=_ZERO, reason=NO_PRICES_REASON)

    savings_vs_min = (stats.min - price) / stats.min * _HUNDRED
    savings_vs_median = (stats.median - price) / stats.median * _HUNDRED

    if price <= stats.min * (Decimal("1") - _as_decimal(margin_pct)):
        status = VerdictStatus.WORTH_IT
        reason = f"{abs(_quantize(savings_vs_min, _WHOLE))}% below the lowest web price"
    elif price > stats.median:
        status = VerdictStatus.NOT_WORTH_IT
        reason = f"{abs(_quantize(savings_vs_median, _WHOLE))}% above the median web price"
    else:
        status = VerdictStatus.BORDERLINE
        diff = _quantize(savings_vs_min, _WHOLE)
        if diff > _ZERO:
            reason = f"{diff}% below the lowest web price, but within margin"
        else:
            reason = f"{abs(diff)}% above the lowest web price"

    margin = _quantize(savings_vs_min, _ONE_DP)
    logger.debug(
        "verdict_calculated",
        auction_price=str(price),
        min_price=str(stats.min),
        median_price=str(stats.median),
        status=status.value,
        margin=str(margin),
        source="scoring",
    )
    return Verdict(status=status, margin=margin, reason=reason)
