"""
Auction Comparator - Price string parsing

Parses prices as displayed by auction sites and web shops into Decimal:
"1 234,56 €", "1.234,56", "$1,234.56", "£99".

The separator that appears last is the decimal separator, unless it is a
comma-free US format. Only EUR, USD and GBP are recognized.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

import structlog

from src.config import Currency, settings

logger = structlog.get_logger(__name__)

_STRIP = re.compile(r"[€$£\s]")
_NUMBER = re.compile(r"-?\d[\d.,]*")


def parse_price_string(text: str | None) -> Decimal | None:
    """
    Parse a displayed price into a Decimal.

    Examples:
        >>> parse_price_string("1 234,56 €")
        Decimal('1234.56')
        >>> parse_price_string("$1,234.56")
        Decimal('1234.56')
    """
    if not text:
        return None
    cleaned = _STRIP.sub("", text)
    match = _NUMBER.search(cleaned)
    if not match:
        return None
    number = match.group(0).rstrip(".,")

    if "," in number and ("." not in number or number.rindex(",") > number.rindex(".")):
        # European: comma is the decimal separator
        number = number.replace(".", "").replace(",", ".", 1)
    else:
        number = number.replace(",", "")

    try:
        return Decimal(number)
    except InvalidOperation:
        logger.debug("price_parse_failed", text=text, source="currency")
        return None


def detect_currency(text: str | None) -> Currency | None:
    if not text:
        return None
    if "€" in text or "EUR" in text:
        return Currency.EUR
    if "$" in text or "USD" in text:
        return Currency.USD
    if "£" in text or "GBP" in text:
        return Currency.GBP
    return None


def normalize_currency(value: str | None) -> Currency:
    """Map a currency code or symbol to a supported Currency (default EUR)."""
    if value:
        try:
            return Currency(value.strip().upper())
        except ValueError:
            detected = detect_currency(value)
            if detected is not None:
                return detected
    return settings.DEFAULT_CURRENCY
