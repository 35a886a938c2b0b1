"""
Auction Comparator - Supported Auction Sites

Per-site defaults used when an adapter cannot read them from the page:
buyer premium, locale, currency, and whether the site renders lots
client-side (longer initial wait, more retries).
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import NamedTuple
from urllib.parse import urlparse

import structlog

from src.config import Currency, settings
from src.scraper import LotPageInfo

logger = structlog.get_logger(__name__)


class DomainConfig(NamedTuple):
    id: str
    name: str
    host_patterns: tuple[re.Pattern[str], ...]
    lot_page_patterns: tuple[re.Pattern[str], ...]
    buyer_premium: Decimal
    locale: str = "fr"
    currency: Currency = Currency.EUR
    spa: bool = False


def _patterns(*sources: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(s, re.I) for s in sources)


DOMAIN_CONFIGS: list[DomainConfig] = [
    DomainConfig(
        id="encheres-domaine",
        name="Enchères Domaine",
        host_patterns=_patterns(r"encheres-domaine\.gouv\.fr$"),
        lot_page_patterns=_patterns(r"^/lot/"),
        buyer_premium=Decimal("0.15"),
    ),
    DomainConfig(
        id="moniteur-des-ventes",
        name="Moniteur des Ventes",
        host_patterns=_patterns(r"moniteurdesventes\.com$"),
        lot_page_patterns=_patterns(r"^/fr/l/", r"^/en/l/"),
        buyer_premium=Decimal("0.20"),
    ),
    DomainConfig(
        id="interencheres",
        name="Interenchères",
        host_patterns=_patterns(r"interencheres\.(fr|com)$"),
        lot_page_patterns=_patterns(r"/lot-\d+", r"/vente/.*/\d+"),
        buyer_premium=Decimal("0.25"),
    ),
    DomainConfig(
        id="alcopa-auction",
        name="Alcopa Auction",
        host_patterns=_patterns(r"alcopa-auction\.(fr|com)$"),
        lot_page_patterns=_patterns(
            r"/voiture-occasion/.+/.+-\d+$",
            r"/utilitaire-occasion/.+/.+-\d+$",
        ),
        buyer_premium=Decimal("0"),
    ),
    DomainConfig(
        id="auctelia",
        name="Auctelia",
        host_patterns=_patterns(r"auctelia\.(com|fr|be)$"),
        lot_page_patterns=_patterns(r"/lot/", r"/lots?/\d+"),
        buyer_premium=Decimal("0.18"),
        spa=True,
    ),
]


def get_domain_config(hostname: str) -> DomainConfig | None:
    hostname = (hostname or "").lower()
    for config in DOMAIN_CONFIGS:
        if any(p.search(hostname) for p in config.host_patterns):
            return config
    return None


def default_buyer_premium(hostname: str) -> Decimal:
    """Site buyer premium, DEFAULT_BUYER_PREMIUM for unknown sites."""
    config = get_domain_config(hostname)
    return config.buyer_premium if config is not None else settings.DEFAULT_BUYER_PREMIUM


def is_spa_site(hostname: str) -> bool:
    config = get_domain_config(hostname)
    return bool(config and config.spa)


def detect_lot_page(url: str) -> LotPageInfo:
    """Classify a URL as a lot page of a supported site, from the URL alone."""
    parsed = urlparse(url)
    hostname = (parsed.hostname or "").lower()
    pathname = parsed.path or "/"
    config = get_domain_config(hostname)

    if config is None:
        return LotPageInfo(domain=hostname, url=url, pathname=pathname)

    return LotPageInfo(
        is_lot_page=any(p.search(pathname) for p in config.lot_page_patterns),
        domain=hostname,
        url=url,
        pathname=pathname,
        config_id=config.id,
        locale=config.locale,
        buyer_premium=config.buyer_premium,
    )
