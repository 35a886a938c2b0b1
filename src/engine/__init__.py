from src.engine.scoring import (
    calculate_confidence,
    calculate_price_stats,
    calculate_relevance_score,
    calculate_verdict,
    filter_results,
)

__all__ = [
    "calculate_confidence",
    "calculate_price_stats",
    "calculate_relevance_score",
    "calculate_verdict",
    "filter_results",
]
