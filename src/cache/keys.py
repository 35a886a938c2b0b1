"""
Auction Comparator - Response memo keys

Key for whole-response memoization of comparison calls: canonical title,
currency and locale, plus brand and model when known, joined with "::".
"""

from __future__ import annotations

from src.normalization.canonical import canonicalize_text


def generate_cache_key(
    title: str,
    currency: str,
    locale: str,
    brand: str | None = None,
    model: str | None = None,
) -> str:
    """
    Examples:
        >>> generate_cache_key("iPhone 13 - 128 Go!", "EUR", "FR", brand="Apple")
        'iphone 13 128 go::EUR::fr::apple'
    """
    parts = [canonicalize_text(title), currency.upper(), locale.lower()]
    if brand:
        parts.append(canonicalize_text(brand))
    if model:
        parts.append(canonicalize_text(model))
    return "::".join(parts)
