"""
Auction Comparator - SerpApi Web Price Search

Finds current web prices for a product query through SerpApi.

Products: Google Shopping first, organic Google results with prices
extracted from title/snippet when Shopping returns nothing.
Vehicles: organic results for a sequence of query strategies
("<q> prix occasion", "<q> occasion", "<q> argus", "<q>"), preferring car
marketplaces and skipping spare-part listings.

Transport and HTTP failures raise SearchProviderError. An empty result set
is not an error.

Usage:
    async with SerpApiClient() as client:
        results = await client.search("Apple iPhone 13 128GB", Currency.EUR, "fr")
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Protocol
from urllib.parse import quote_plus, urlparse

import httpx
import structlog

from src.config import Currency, ItemCategory, settings
from src.engine.scoring import calculate_relevance_score
from src.errors import SearchProviderError
from src.models.comparison import WebPriceResult
from src.pipeline.query import get_country_code, get_google_domain
from src.utils.currency import parse_price_string

logger = structlog.get_logger(__name__)

CAR_SITES = [
    "lacentrale.fr",
    "leboncoin.fr",
    "autoscout24",
    "largus.fr",
    "autoplus.fr",
    "caradisiac.com",
    "aramisauto.com",
    "spoticar.fr",
    "paruvendu.fr",
    "ouestfrance-auto.com",
]

PART_KEYWORDS = [
    "pièce", "piece", "pieces", "pièces",
    "accessoire", "accessory", "accessories",
    "filtre", "filter", "huile", "oil",
    "pneu", "tire", "tyre", "roue", "wheel",
    "batterie", "battery",
    "phare", "headlight", "feu", "light",
    "rétroviseur", "mirror",
    "pare-choc", "bumper", "capot", "hood",
    "amortisseur", "shock", "suspension",
    "freins", "brake", "plaquette", "pad",
    "courroie", "belt", "durite", "hose",
    "embrayage", "clutch", "joint", "gasket",
    "échappement", "exhaust", "silencieux", "muffler",
    "démarreur", "starter", "alternateur", "alternator",
    "radiateur", "radiator", "thermostat",
    "bougie", "spark plug", "injecteur", "injector",
    "carrosserie", "body part",
    "kit ", "lot de", "set of", "pack of",
    "compatible", "pour ", "for ",
]

_ORGANIC_PRICE_PATTERNS = [
    re.compile(r"(\d{1,3}(?:[\s.,]\d{3})*(?:[.,]\d{2})?)\s*€"),
    re.compile(r"€\s*(\d{1,3}(?:[\s.,]\d{3})*(?:[.,]\d{2})?)"),
    re.compile(r"(\d{1,3}(?:[\s.,]\d{3})*(?:[.,]\d{2})?)\s*euros?", re.I),
    re.compile(r"(\d{1,3}(?:,\d{3})*(?:\.\d{2})?)\s*\$"),
    re.compile(r"\$\s*(\d{1,3}(?:,\d{3})*(?:\.\d{2})?)"),
    re.compile(r"(\d{1,3}(?:,\d{3})*(?:\.\d{2})?)\s*£"),
    re.compile(r"£\s*(\d{1,3}(?:,\d{3})*(?:\.\d{2})?)"),
]

_VEHICLE_PRICE_PATTERNS = [
    re.compile(r"(\d{1,3}(?:[\s.,]\d{3})*)\s*€"),
    re.compile(r"€\s*(\d{1,3}(?:[\s.,]\d{3})*)"),
    re.compile(r"(\d{1,3}(?:[\s.,]\d{3})*)\s*euros?", re.I),
]

_VEHICLE_MIN_RELEVANCE = 0.2
_MIN_CAR_SITE_RESULTS = 3


class SearchProvider(Protocol):
    """Anything that can turn a query into priced web offers."""

    async def search(
        self,
        query: str,
        currency: Currency,
        locale: str,
        max_results: int = ...,
        category: ItemCategory = ...,
    ) -> list[WebPriceResult]: ...


def _source_from_url(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host.removeprefix("www.") or "Unknown"


_THOUSANDS_ONLY = re.compile(r"\d{1,3}(?:[.,]\d{3})+")


def _parse_amount(raw: str) -> Decimal | None:
    """Parse a matched amount; "15.000" and "15,000" are thousands, not decimals."""
    amount = re.sub(r"\s", "", raw)
    if _THOUSANDS_ONLY.fullmatch(amount):
        amount = amount.replace(".", "").replace(",", "")
    return parse_price_string(amount)


def _extract_price(text: str, patterns: list[re.Pattern[str]]) -> tuple[Decimal, str] | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            price = _parse_amount(match.group(1))
            if price is not None and price > 0:
                return price, match.group(0)
    return None


class SerpApiClient:
    """
    SerpApi client for web price discovery.

    Usage:
        async with SerpApiClient() as client:
            results = await client.search(query, Currency.EUR, "fr")
    """

    id = "serpapi"

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = settings.SERPAPI_KEY if api_key is None else api_key
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SerpApiClient":
        self._client = httpx.AsyncClient(timeout=settings.SERPAPI_TIMEOUT_SECONDS)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def search(
        self,
        query: str,
        currency: Currency,
        locale: str,
        max_results: int | None = None,
        category: ItemCategory = ItemCategory.PRODUCT,
    ) -> list[WebPriceResult]:
        """
        Search priced offers for a query.

        Raises:
            SearchProviderError: missing API key, transport failure or a
                non-2xx response.
        """
        if not self.is_available():
            raise SearchProviderError("SerpApi key not configured")
        if self._client is None:
            raise SearchProviderError("SerpApiClient used outside its async context")

        limit = max_results or settings.SEARCH_MAX_RESULTS
        if category == ItemCategory.VEHICLE:
            return await self._search_vehicle(query, currency, locale, limit)

        results = await self._search_shopping(query, currency, locale, limit)
        if results:
            return results

        logger.info("serpapi_shopping_empty_trying_organic", query=query, source="serpapi")
        return await self._search_organic(query, currency, locale, limit)

    async def _request(self, params: dict[str, str]) -> dict[str, Any]:
        assert self._client is not None
        try:
            response = await self._client.get(
                settings.SERPAPI_BASE_URL,
                params={"api_key": self._api_key, **params},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise SearchProviderError(f"SerpApi returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise SearchProviderError(f"SerpApi request failed: {e}") from e

        if data.get("error"):
            # SerpApi reports "no results" as an error payload with status 200
            logger.info("serpapi_error_payload", error=data["error"], engine=params.get("engine"), source="serpapi")
            return {}
        return data

    def _base_params(self, engine: str, query: str, locale: str, num: int) -> dict[str, str]:
        return {
            "engine": engine,
            "q": query,
            "google_domain": get_google_domain(locale),
            "gl": get_country_code(locale),
            "hl": locale,
            "num": str(num),
        }

    async def _search_shopping(
        self, query: str, currency: Currency, locale: str, limit: int
    ) -> list[WebPriceResult]:
        data = await self._request(self._base_params("google_shopping", query, locale, limit))
        results: list[WebPriceResult] = []
        for item in data.get("shopping_results", []):
            mapped = self._map_shopping_result(item, query, currency)
            if mapped is not None:
                results.append(mapped)

        logger.info("serpapi_shopping_complete", query=query, result_count=len(results), source="serpapi")
        return results[:limit]

    async def _search_organic(
        self, query: str, currency: Currency, locale: str, limit: int
    ) -> list[WebPriceResult]:
        suffix = "prix" if locale.lower().startswith("fr") else "price"
        data = await self._request(self._base_params("google", f"{query} {suffix}", locale, limit * 2))

        results: list[WebPriceResult] = []
        for item in data.get("organic_results", []):
            text = f"{item.get('title', '')} {item.get('snippet') or ''}"
            found = _extract_price(text, _ORGANIC_PRICE_PATTERNS)
            if found is None or not item.get("link"):
                continue
            price, price_string = found
            results.append(WebPriceResult(
                title=item.get("title", ""),
                price=price,
                price_string=price_string,
                source=_source_from_url(item["link"]),
                url=item["link"],
                thumbnail=item.get("thumbnail"),
                relevance_score=calculate_relevance_score(query, item.get("title", "")),
            ))

        logger.info("serpapi_organic_complete", query=query, result_count=len(results), source="serpapi")
        return results[:limit]

    async def _search_vehicle(
        self, query: str, currency: Currency, locale: str, limit: int
    ) -> list[WebPriceResult]:
        strategies = [f"{query} prix occasion", f"{query} occasion", f"{query} argus", query]
        failures = 0

        for vehicle_query in strategies:
            try:
                data = await self._request(self._base_params("google", vehicle_query, locale, limit * 3))
            except SearchProviderError as e:
                failures += 1
                logger.warning(
                    "serpapi_vehicle_strategy_failed",
                    query=vehicle_query,
                    error=e.message,
                    source="serpapi",
                )
                continue

            organic = data.get("organic_results", [])
            from_car_sites = [
                r for r in (
                    self._map_vehicle_result(item, query)
                    for item in organic
                    if any(site in (item.get("link") or "").lower() for site in CAR_SITES)
                )
                if r is not None
            ]
            if len(from_car_sites) >= _MIN_CAR_SITE_RESULTS:
                return from_car_sites[:limit]

            everywhere = [r for r in (self._map_vehicle_result(item, query) for item in organic) if r is not None]
            results = everywhere if len(everywhere) > len(from_car_sites) else from_car_sites
            if results:
                logger.info(
                    "serpapi_vehicle_complete",
                    query=vehicle_query,
                    result_count=len(results),
                    source="serpapi",
                )
                return results[:limit]

        if failures == len(strategies):
            raise SearchProviderError("All SerpApi vehicle queries failed")
        logger.info("serpapi_vehicle_no_results", query=query, source="serpapi")
        return []

    def _map_shopping_result(
        self, item: dict[str, Any], query: str, currency: Currency
    ) -> WebPriceResult | None:
        extracted = item.get("extracted_price")
        if isinstance(extracted, (int, float)) and not isinstance(extracted, bool):
            price: Decimal | None = Decimal(str(extracted))
        else:
            price = parse_price_string(item.get("price"))
        if price is None or price <= 0:
            return None

        title = item.get("title", "")
        url = item.get("link") or item.get("product_link") or (
            f"https://www.google.com/search?q={quote_plus(title)}"
        )
        delivery = (item.get("delivery") or "").lower()

        return WebPriceResult(
            title=title,
            price=price,
            price_string=item.get("price") or f"{price} {currency.value}",
            source=item.get("source", ""),
            url=url,
            thumbnail=item.get("thumbnail"),
            condition=item.get("second_hand_condition"),
            shipping_included=("livraison gratuite" in delivery or "free" in delivery) if delivery else None,
            relevance_score=calculate_relevance_score(query, title),
        )

    def _map_vehicle_result(self, item: dict[str, Any], query: str) -> WebPriceResult | None:
        title = item.get("title", "")
        link = item.get("link")
        text = f"{title} {item.get('snippet') or ''}"
        if not link:
            return None

        lowered = text.lower()
        if any(kw in lowered for kw in PART_KEYWORDS):
            logger.debug("serpapi_vehicle_part_skipped", title=title[:50], source="serpapi")
            return None

        found = _extract_price(text, _VEHICLE_PRICE_PATTERNS)
        if found is None or found[0] < settings.VEHICLE_MIN_WEB_PRICE:
            return None

        relevance = calculate_relevance_score(query, title)
        if relevance < _VEHICLE_MIN_RELEVANCE:
            return None

        price, price_string = found
        return WebPriceResult(
            title=title,
            price=price,
            price_string=price_string,
            source=_source_from_url(link),
            url=link,
            thumbnail=item.get("thumbnail"),
            condition="used",
            relevance_score=relevance,
        )
