"""
Auction Comparator - Site Adapters

An adapter reads one auction site's lot page into AuctionData. Pages are
Playwright-style async page objects (url, title(), query_selector(),
query_selector_all(), inner_text()); nothing here drives navigation.

Adapters return None when the page holds no lot, and a record with
current_bid == 0 when the title was found but the price has not rendered
yet. The Extractor retries the latter.
"""

from __future__ import annotations

import json
import re
from decimal import Decimal
from typing import Any, ClassVar, Protocol, runtime_checkable
from urllib.parse import urlparse

import structlog

from src.config import Currency, ItemCategory, ItemCondition, settings
from src.models.auction import (
    AuctionData,
    AuctionFees,
    calculate_extraction_confidence,
    compute_total_price,
)
from src.normalization.canonical import normalize_brand
from src.normalization.heuristic import detect_brand, is_vehicle_title
from src.scraper import MutationConfig
from src.utils.currency import detect_currency, parse_price_string

logger = structlog.get_logger(__name__)

# Checked in order: "comme neuf" must win over "neuf"
_CONDITION_KEYWORDS: list[tuple[tuple[str, ...], ItemCondition]] = [
    (("comme neuf", "like new"), ItemCondition.LIKE_NEW),
    (("neuf", "new"), ItemCondition.NEW),
    (("très bon", "tres bon", "very good", "excellent"), ItemCondition.VERY_GOOD),
    (("bon état", "bon etat", "good"), ItemCondition.GOOD),
    (("acceptable", "fair"), ItemCondition.ACCEPTABLE),
    (("pour pièces", "pour pieces", "for parts", "hs"), ItemCondition.FOR_PARTS),
]

_EURO_AMOUNT = re.compile(r"(\d[\d\s,.]*)\s*€")
_TLD_LOCALES = {".fr": "fr", ".de": "de", ".es": "es", ".it": "it", ".co.uk": "uk"}


def lot_title_from_document_title(document_title: str | None) -> str | None:
    """'iPhone 13 - Lot 42 | Site' -> 'iPhone 13'."""
    if not document_title:
        return None
    title = document_title.split("|")[0].split("-")[0].strip()
    return title or None


@runtime_checkable
class SiteAdapter(Protocol):
    """Capabilities every site adapter provides."""

    id: str

    async def extract_data(self) -> AuctionData | None: ...

    def is_lot_page(self) -> bool: ...

    def get_mutation_config(self) -> MutationConfig: ...


class BaseAdapter:
    """Shared page helpers. Subclasses set the class attributes and extract_data()."""

    id: ClassVar[str] = "base"
    name: ClassVar[str] = "Base"
    url_patterns: ClassVar[list[re.Pattern[str]]] = []
    lot_page_patterns: ClassVar[list[re.Pattern[str]]] = []
    default_currency: ClassVar[Currency] = Currency.EUR
    default_locale: ClassVar[str] = "fr"
    default_fees: ClassVar[AuctionFees] = AuctionFees(buyer_premium=settings.DEFAULT_BUYER_PREMIUM)

    def __init__(self, page: Any) -> None:
        self.page = page

    @classmethod
    def matches(cls, url: str) -> bool:
        return any(p.search(url) for p in cls.url_patterns)

    async def extract_data(self) -> AuctionData | None:
        raise NotImplementedError

    def is_lot_page(self) -> bool:
        url = self.url.lower()
        return any(p.search(url) for p in self.lot_page_patterns)

    def get_mutation_config(self) -> MutationConfig:
        return MutationConfig()

    @property
    def url(self) -> str:
        return str(getattr(self.page, "url", "") or "")

    @property
    def domain(self) -> str:
        return (urlparse(self.url).hostname or "").lower()

    @staticmethod
    def parse_condition(condition_text: str | None) -> ItemCondition:
        """
        Map a displayed condition to ItemCondition.

        Examples:
            >>> BaseAdapter.parse_condition("Comme neuf")
            <ItemCondition.LIKE_NEW: 'like_new'>
            >>> BaseAdapter.parse_condition("Vendu pour pièces")
            <ItemCondition.FOR_PARTS: 'for_parts'>
        """
        text = (condition_text or "").lower()
        for keywords, condition in _CONDITION_KEYWORDS:
            if any(re.search(rf"(?<!\w){re.escape(k)}(?!\w)", text) for k in keywords):
                return condition
        return ItemCondition.UNKNOWN

    async def _get_text(self, selector: str) -> str | None:
        """Text of the first element matching selector, None when absent or empty."""
        try:
            element = await self.page.query_selector(selector)
            if element:
                return (await element.text_content() or "").strip() or None
        except Exception as e:
            logger.debug("adapter_selector_failed", selector=selector, error=str(e), source=self.id)
        return None

    async def _get_texts(self, selector: str) -> list[str]:
        try:
            elements = await self.page.query_selector_all(selector)
        except Exception as e:
            logger.debug("adapter_selector_failed", selector=selector, error=str(e), source=self.id)
            return []
        texts = []
        for element in elements:
            text = (await element.text_content() or "").strip()
            if text:
                texts.append(text)
        return texts

    async def _get_attribute(self, selector: str, name: str) -> str | None:
        try:
            element = await self.page.query_selector(selector)
            if element:
                return await element.get_attribute(name)
        except Exception as e:
            logger.debug("adapter_selector_failed", selector=selector, error=str(e), source=self.id)
        return None

    async def _find_text(self, selectors: list[str], min_length: int = 1) -> str | None:
        for selector in selectors:
            text = await self._get_text(selector)
            if text and len(text) >= min_length:
                return text
        return None

    @staticmethod
    def _parse_number(text: str | None) -> Decimal | None:
        value = parse_price_string(text)
        if value is None or value < 0:
            return None
        return value

    async def _document_title(self) -> str | None:
        try:
            return lot_title_from_document_title(await self.page.title())
        except Exception as e:
            logger.debug("adapter_page_title_failed", error=str(e), source=self.id)
            return None

    def _build(
        self,
        title: str,
        current_bid: Decimal,
        *,
        currency: Currency | None = None,
        locale: str | None = None,
        **fields: Any,
    ) -> AuctionData:
        return AuctionData(
            title=title,
            current_bid=current_bid,
            currency=currency or self.default_currency,
            fees=self.default_fees,
            total_price=compute_total_price(current_bid, self.default_fees),
            site_domain=self.domain,
            locale=locale or self.default_locale,
            lot_url=self.url,
            **fields,
        )


class GenericAdapter(BaseAdapter):
    """Common auction-page patterns for sites without a dedicated adapter."""

    id = "generic"
    name = "Generic Auction Site"
    url_patterns = [re.compile(r".*")]
    lot_page_patterns = [
        re.compile(r"/lot/"),
        re.compile(r"/item/"),
        re.compile(r"/auction.*/\d+"),
        re.compile(r"/bid/"),
        re.compile(r"lotid=", re.I),
    ]
    default_locale = "en"

    _TITLE_SELECTORS = [
        "h1",
        '[class*="title"]',
        '[class*="lot-name"]',
        '[class*="product-name"]',
        '[itemprop="name"]',
    ]
    _PRICE_SELECTORS = [
        '[class*="current-bid"]',
        '[class*="price"]',
        '[class*="bid"]',
        '[itemprop="price"]',
        '[class*="amount"]',
    ]

    async def extract_data(self) -> AuctionData | None:
        if not self.is_lot_page():
            return None

        title = await self._find_text(self._TITLE_SELECTORS)
        if not title:
            return None

        price_text = await self._find_text(self._PRICE_SELECTORS)
        current_bid = self._parse_number(price_text)
        if not current_bid:
            return None

        return self._build(
            title,
            current_bid,
            currency=detect_currency(price_text),
            locale=await self._detect_locale(),
            extraction_confidence=calculate_extraction_confidence(),
        )

    async def _detect_locale(self) -> str:
        lang = await self._get_attribute("html", "lang")
        if lang:
            return lang.split("-")[0].lower()
        for tld, locale in _TLD_LOCALES.items():
            if self.domain.endswith(tld):
                return locale
        return self.default_locale


class InterencheresAdapter(BaseAdapter):
    """interencheres.com / interencheres.fr lot pages."""

    id = "interencheres"
    name = "Interenchères"
    url_patterns = [re.compile(r"interencheres\.(com|fr)", re.I)]
    lot_page_patterns = [
        re.compile(r"/lot-\d+"),
        re.compile(r"/lot/"),
        re.compile(r"/vente/.*/\d+"),
        re.compile(r"lotid="),
        re.compile(r"/fiche/"),
    ]
    default_fees = AuctionFees(buyer_premium=Decimal("0.25"), vat=Decimal("0"))

    _TITLE_SELECTORS = [
        "h1",
        '[class*="title"]',
        '[class*="lot-title"]',
        '[class*="titre"]',
        ".product-title",
    ]
    _PRICE_SELECTORS = [
        '[class*="price"]',
        '[class*="prix"]',
        '[class*="bid"]',
        '[class*="enchere"]',
        '[class*="amount"]',
        '[class*="montant"]',
    ]
    _PRICE_LABELS = ["enchère actuelle", "prix actuel", "mise à prix", "estimation", "enchère"]
    _CONDITION_SELECTOR = '[class*="condition"], [class*="etat"]'
    _LOT_ID = re.compile(r"lot-(\d+)|/(\d+)(?:\?|$|/|#|\.html)")

    def get_mutation_config(self) -> MutationConfig:
        return MutationConfig(debounce_ms=800)

    async def extract_data(self) -> AuctionData | None:
        title = await self._find_text(self._TITLE_SELECTORS, min_length=6)
        if not title:
            title = await self._document_title()
        if not title or len(title) < 3:
            logger.warning("adapter_no_title", url=self.url, source=self.id)
            return None

        current_bid = await self._extract_price()
        if current_bid is None:
            logger.info("adapter_no_price", url=self.url, source=self.id)
            current_bid = Decimal("0")

        brand = normalize_brand(detect_brand(title.lower()))
        category = ItemCategory.VEHICLE if is_vehicle_title(title.lower()) else ItemCategory.PRODUCT
        condition = self.parse_condition(await self._get_text(self._CONDITION_SELECTOR))

        data = self._build(
            title,
            current_bid,
            condition=condition,
            brand=brand,
            category=category,
            lot_id=self._lot_id(),
            extraction_confidence=calculate_extraction_confidence(brand, None),
        )
        logger.debug(
            "adapter_extracted",
            title=title[:50],
            current_bid=str(current_bid),
            source=self.id,
        )
        return data

    async def _extract_price(self) -> Decimal | None:
        for selector in self._PRICE_SELECTORS:
            for text in await self._get_texts(selector):
                price = self._parse_number(text)
                if price and price > 0:
                    return price

        body = ""
        try:
            body = await self.page.inner_text("body")
        except Exception as e:
            logger.debug("adapter_body_text_failed", error=str(e), source=self.id)

        if body:
            lower = body.lower()
            for label in self._PRICE_LABELS:
                index = lower.find(label)
                if index < 0:
                    continue
                match = _EURO_AMOUNT.search(body, index, index + len(label) + 60)
                if match:
                    price = self._parse_number(match.group(1))
                    if price and price > 0:
                        return price

            # Largest amount is usually the estimate; prefer the runner-up
            amounts = sorted(
                (p for p in (self._parse_number(m) for m in _EURO_AMOUNT.findall(body)) if p and p > 10),
                reverse=True,
            )
            if amounts:
                return amounts[1] if len(amounts) > 2 else amounts[0]

        return await self._structured_price()

    async def _structured_price(self) -> Decimal | None:
        content = await self._get_attribute('[itemprop="price"]', "content")
        price = self._parse_number(content or await self._get_text('[itemprop="price"]'))
        if price and price > 0:
            return price

        for raw in await self._get_texts('script[type="application/ld+json"]'):
            try:
                data = json.loads(raw)
            except ValueError:
                continue
            if not isinstance(data, dict):
                continue
            offers = data.get("offers")
            value = (offers.get("price") if isinstance(offers, dict) else None) or data.get("price")
            if value:
                price = self._parse_number(str(value))
                if price and price > 0:
                    return price
        return None

    def _lot_id(self) -> str | None:
        match = self._LOT_ID.search(self.url)
        if not match:
            return None
        return match.group(1) or match.group(2)


class AdapterRegistry:
    """
    URL -> adapter lookup. Dedicated adapters are tried in registration
    order, the generic adapter last.

    Usage:
        registry = AdapterRegistry()
        adapter = registry.get_adapter(page)
    """

    def __init__(self, adapters: list[type[BaseAdapter]] | None = None) -> None:
        self._adapters: dict[str, type[BaseAdapter]] = {}
        for adapter in adapters if adapters is not None else [InterencheresAdapter, GenericAdapter]:
            self.register(adapter)

    def register(self, adapter: type[BaseAdapter]) -> None:
        self._adapters[adapter.id] = adapter

    @property
    def adapter_ids(self) -> list[str]:
        return list(self._adapters)

    def get_adapter_class(self, url: str) -> type[BaseAdapter] | None:
        for adapter_id, adapter in self._adapters.items():
            if adapter_id != GenericAdapter.id and adapter.matches(url):
                return adapter
        return self._adapters.get(GenericAdapter.id)

    def get_adapter(self, page: Any) -> BaseAdapter | None:
        adapter = self.get_adapter_class(str(getattr(page, "url", "") or ""))
        return adapter(page) if adapter is not None else None
