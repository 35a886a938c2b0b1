"""
Auction Comparator - Search query helpers

Builds a web search query from a comparison request when no normalization
is needed, and maps locales to Google domains / country codes.
"""

from __future__ import annotations

import re

import structlog

from src.config import settings
from src.models.comparison import CompareRequest

logger = structlog.get_logger(__name__)

_AUCTION_NOISE = [
    re.compile(r"\b(lot|enchère|enchere|auction|vente|sale)\b", re.I),
    re.compile(r"\b(circa|env|environ|approx)\s*\d{4}\b", re.I),
    re.compile(r"\b(n°|num|numéro|number)\s*\d+\b", re.I),
    re.compile(r"\b(imm\.?|immatricul\w*)\s*[A-Z0-9-]+", re.I),      # license plates
    re.compile(r"\b(n°?\s*de\s*série|serial)\s*\w+", re.I),
    re.compile(r"\b(agrasc|réf\.?|ref\.?)\s*[\d/]+", re.I),
    re.compile(r"[*#]+"),
]

_GOOGLE_DOMAINS = {
    "fr": "google.fr",
    "de": "google.de",
    "es": "google.es",
    "it": "google.it",
    "uk": "google.co.uk",
    "en": "google.com",
}

_COUNTRY_CODES = {
    "fr": "fr",
    "de": "de",
    "es": "es",
    "it": "it",
    "uk": "uk",
    "en": "us",
}


def build_search_query(request: CompareRequest) -> str:
    """
    Search query for a lot: brand + model when both are known, otherwise
    the title stripped of brand/model and auction noise (max 60 chars).
    """
    parts = [p for p in (request.brand, request.model) if p]
    if request.brand and request.model:
        return " ".join(parts).strip()

    clean = request.title
    for known in (request.brand, request.model):
        if known:
            clean = re.sub(re.escape(known), "", clean, flags=re.I)
    for pattern in _AUCTION_NOISE:
        clean = pattern.sub("", clean)
    clean = re.sub(r"\s+", " ", clean).strip()

    if clean:
        parts.append(clean[:settings.MAX_QUERY_LENGTH].strip())

    query = " ".join(parts).strip()
    logger.debug("search_query_built", query=query, title=request.title[:30], source="query")
    return query


def get_google_domain(locale: str) -> str:
    return _GOOGLE_DOMAINS.get(locale.lower(), "google.com")


def get_country_code(locale: str) -> str:
    return _COUNTRY_CODES.get(locale.lower(), "us")
