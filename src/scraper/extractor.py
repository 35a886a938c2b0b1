"""
Auction Comparator - Lot Extractor (adapter -> retry -> AI -> merge -> minimal)

Orchestrates the extraction chain for one lot page:
1. Site adapter (PRIMARY)
2. Retry while the adapter sees a title but no price yet (SPA rendering)
3. AI screenshot extraction (FALLBACK)
4. Merge: adapter fields win, the AI only supplies the price
5. Minimal record from the document title (LAST RESORT)

extract() never raises for extraction problems: callers treat a record
with current_bid == 0 as "nothing to compare".
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

import structlog

from src.config import ExtractionConfidence, ItemCondition, settings
from src.errors import ExtractionFailure
from src.models.auction import AuctionData, AuctionFees, compute_total_price
from src.scraper import AiExtractionResult
from src.scraper.adapters import AdapterRegistry, SiteAdapter, lot_title_from_document_title
from src.scraper.ai_fallback import AiFallbackExtractor
from src.scraper.domain_config import default_buyer_premium, is_spa_site

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def has_data_changed(old: AuctionData | None, new: AuctionData | None) -> bool:
    """True when bid, total or title differ, or either side is missing."""
    if old is None or new is None:
        return True
    return (
        old.current_bid != new.current_bid
        or old.total_price != new.total_price
        or old.title != new.title
    )


class Extractor:
    """
    Usage:
        extractor = Extractor.for_page(page, AdapterRegistry(), AiFallbackExtractor())
        data = await extractor.extract(page)
    """

    def __init__(
        self,
        adapter: SiteAdapter | None,
        ai_extractor: AiFallbackExtractor | None = None,
        *,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        max_total_wait: float | None = None,
        initial_delay: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.adapter = adapter
        self.ai_extractor = ai_extractor
        self.max_retries = max_retries
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None
            else settings.EXTRACTION_RETRY_BASE_DELAY_SECONDS
        )
        self.max_total_wait = (
            max_total_wait if max_total_wait is not None
            else settings.EXTRACTION_MAX_TOTAL_WAIT_SECONDS
        )
        self.initial_delay = initial_delay
        self._sleep = sleep

    @classmethod
    def for_page(
        cls,
        page: Any,
        registry: AdapterRegistry | None = None,
        ai_extractor: AiFallbackExtractor | None = None,
        **kwargs: Any,
    ) -> Extractor:
        """Extractor with the registry's adapter for the page URL, if it shows a lot."""
        adapter = (registry or AdapterRegistry()).get_adapter(page)
        if adapter is not None and not adapter.is_lot_page():
            logger.info("extractor_not_lot_page", url=_page_url(page), adapter=adapter.id, source="extractor")
            adapter = None
        return cls(adapter, ai_extractor, **kwargs)

    async def extract(self, page: Any) -> AuctionData:
        """
        Extract the lot shown on page.

        Args:
            page: Playwright-style page already showing the lot.

        Returns:
            AuctionData; current_bid == 0 when no price could be read.
        """
        url = _page_url(page)
        domain = (urlparse(url).hostname or "").lower()
        spa = is_spa_site(domain)

        initial_delay = self.initial_delay
        if initial_delay is None:
            initial_delay = (
                settings.EXTRACTION_INITIAL_DELAY_SPA_SECONDS if spa
                else settings.EXTRACTION_INITIAL_DELAY_SECONDS
            )
        if initial_delay > 0:
            await self._sleep(initial_delay)

        data: AuctionData | None = None
        if self.adapter is not None:
            data = await self._attempt_adapter(url)
            data = await self._retry_missing_price(data, url, spa)

        if (data is None or not data.has_price) and self.ai_extractor is not None:
            ai_result = await self._attempt_ai(page, url)
            if ai_result is not None:
                data = _merge(data, ai_result, url)

        if data is None:
            logger.warning("extractor_all_methods_failed", url=url, source="extractor")
            data = await _minimal_record(page, url, domain)

        logger.info(
            "extractor_done",
            url=url,
            title=data.title[:50],
            current_bid=str(data.current_bid),
            confidence=data.extraction_confidence.value if data.extraction_confidence else None,
            source="extractor",
        )
        return data

    async def _attempt_adapter(self, url: str) -> AuctionData | None:
        try:
            return await self._run_adapter()
        except ExtractionFailure as e:
            logger.warning("extractor_adapter_failed", url=url, error=e.message, source="extractor")
            return None

    async def _run_adapter(self) -> AuctionData | None:
        assert self.adapter is not None
        try:
            return await self.adapter.extract_data()
        except Exception as e:
            raise ExtractionFailure(f"{self.adapter.id}: {e}") from e

    async def _retry_missing_price(
        self,
        data: AuctionData | None,
        url: str,
        spa: bool,
    ) -> AuctionData | None:
        """Re-run the adapter while it returns a record with a zero bid."""
        max_retries = self.max_retries
        if max_retries is None:
            max_retries = settings.EXTRACTION_MAX_RETRIES_SPA if spa else settings.EXTRACTION_MAX_RETRIES

        attempt = 0
        waited = 0.0
        while data is not None and not data.has_price and attempt < max_retries:
            attempt += 1
            delay = attempt * self.retry_base_delay
            if waited + delay > self.max_total_wait:
                logger.info(
                    "extractor_retry_budget_exhausted",
                    url=url,
                    attempt=attempt,
                    waited=waited,
                    source="extractor",
                )
                break

            logger.info(
                "extractor_retry_zero_price",
                url=url,
                attempt=attempt,
                max_retries=max_retries,
                delay=delay,
                source="extractor",
            )
            await self._sleep(delay)
            waited += delay

            retried = await self._attempt_adapter(url)
            if retried is not None:
                data = retried
        return data

    async def _attempt_ai(self, page: Any, url: str) -> AiExtractionResult | None:
        assert self.ai_extractor is not None
        logger.info("extractor_trying_ai_fallback", url=url, source="extractor")
        try:
            return await self.ai_extractor.extract(page)
        except Exception as e:
            logger.error("extractor_ai_fallback_failed", url=url, error=str(e), source="extractor")
            return None


def _page_url(page: Any) -> str:
    return str(getattr(page, "url", "") or "")


def _merge(data: AuctionData | None, ai: AiExtractionResult, url: str) -> AuctionData | None:
    """Adapter data wins; the AI replaces the whole record only when there is none."""
    if data is None:
        if ai.title is None and ai.price is None:
            return None
        return _from_ai(ai, url)

    if ai.price is not None and ai.price.value > 0:
        merged = data.model_copy(update={
            "current_bid": ai.price.value,
            "currency": ai.price.currency,
            "total_price": compute_total_price(ai.price.value, data.fees),
        })
        logger.info(
            "extractor_merged_ai_price",
            url=url,
            current_bid=str(merged.current_bid),
            source="extractor",
        )
        return merged
    return data


def _from_ai(ai: AiExtractionResult, url: str) -> AuctionData:
    info = ai.lot_page_info
    buyer_premium = info.buyer_premium if info.buyer_premium is not None else default_buyer_premium(ai.domain)
    fees = AuctionFees(buyer_premium=buyer_premium)
    current_bid = ai.price.value if ai.price else Decimal("0")
    return AuctionData(
        title=ai.title or settings.MINIMAL_RECORD_TITLE,
        condition=ItemCondition.UNKNOWN,
        current_bid=current_bid,
        currency=ai.price.currency if ai.price else settings.DEFAULT_CURRENCY,
        fees=fees,
        total_price=compute_total_price(current_bid, fees),
        site_domain=ai.domain,
        locale=info.locale or settings.DEFAULT_LOCALE,
        lot_url=info.url or url,
        extraction_confidence=ai.confidence,
    )


async def _minimal_record(page: Any, url: str, domain: str) -> AuctionData:
    document_title = None
    try:
        document_title = await page.title()
    except Exception as e:
        logger.debug("extractor_page_title_failed", url=url, error=str(e), source="extractor")

    return AuctionData(
        title=lot_title_from_document_title(document_title) or settings.MINIMAL_RECORD_TITLE,
        condition=ItemCondition.UNKNOWN,
        current_bid=Decimal("0"),
        currency=settings.DEFAULT_CURRENCY,
        fees=AuctionFees(buyer_premium=default_buyer_premium(domain)),
        total_price=Decimal("0"),
        site_domain=domain,
        locale=settings.DEFAULT_LOCALE,
        lot_url=url,
        extraction_confidence=ExtractionConfidence.LOW,
    )
