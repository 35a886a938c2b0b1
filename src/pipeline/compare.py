"""
Auction Comparator - Comparison Service

One comparison, end to end:
1. Validate the request
2. Whole-response memo (same title/currency/locale/brand/model)
3. Normalize the title into strict/loose product signatures
4. Comparison cache: strict, then loose only when the lot's condition is
   unknown or uncertain (skipped on force_refresh). Cache and in-flight keys
   are the signatures scoped to currency and locale
5. Fresh web search (primary query, then alt queries), deduplicated per
   strict key across concurrent callers
6. Relevance re-scoring against the lot title, filtering, stats, verdict
7. Cache + memo writes, only once every await has completed

Cached responses are re-scored with the caller's auction price.
"""

from __future__ import annotations

from decimal import Decimal

import structlog

from src.cache.comparison_cache import ComparisonCache
from src.cache.inflight import InflightRegistry
from src.cache.keys import generate_cache_key
from src.config import (
    CompareSource,
    ConditionGrade,
    ExtractionConfidence,
    FunctionalState,
    ItemCategory,
    settings,
)
from src.engine.scoring import (
    calculate_confidence,
    calculate_price_stats,
    calculate_relevance_score,
    calculate_verdict,
    filter_results,
)
from src.errors import CompareError, SearchProviderError
from src.models.comparison import (
    CacheMetadata,
    CompareRequest,
    CompareResponse,
    NormalizedInfo,
    WebPriceResult,
)
from src.models.normalization import NormalizedResult
from src.normalization.builder import SignatureBuilder
from src.pipeline.query import build_search_query
from src.pipeline.serpapi import SearchProvider

logger = structlog.get_logger(__name__)


class ComparisonService:
    """
    Usage:
        async with SerpApiClient() as search:
            service = ComparisonService(ComparisonCache(), SignatureBuilder(), search)
            response = await service.compare(request)
    """

    def __init__(
        self,
        cache: ComparisonCache,
        builder: SignatureBuilder,
        search_provider: SearchProvider,
        memo: ComparisonCache | None = None,
        inflight: InflightRegistry | None = None,
        margin_pct: Decimal | None = None,
    ) -> None:
        self.cache = cache
        self.builder = builder
        self.search_provider = search_provider
        self.memo = memo or ComparisonCache(
            max_entries=settings.RESPONSE_MEMO_MAX_ENTRIES,
            default_ttl=settings.RESPONSE_MEMO_TTL_SECONDS,
        )
        self.inflight = inflight or InflightRegistry()
        self.margin_pct = margin_pct if margin_pct is not None else settings.DEFAULT_MARGIN_PCT

    async def compare(self, request: CompareRequest) -> CompareResponse:
        """
        Compare an auction price against current web prices.

        Raises:
            CompareError: INVALID_REQUEST for a blank title or a
                non-positive price, API_ERROR when the search provider fails.
        """
        _validate(request)

        memo_key = generate_cache_key(
            request.title, request.currency.value, request.locale, request.brand, request.model
        )
        if not request.force_refresh:
            memoized = self.memo.get(memo_key)
            if memoized is not None:
                logger.info("compare_memo_hit", title=request.title[:50], source="compare")
                return self._rescore(memoized, request)

        normalized = await self._normalize(request)
        signatures = normalized.signatures
        assert signatures is not None
        info = _normalized_info(normalized)

        if normalized.is_accessory:
            logger.info("compare_accessory_warning", title=request.title[:50], source="compare")
        if normalized.functional_state == FunctionalState.BROKEN:
            logger.info("compare_broken_item_warning", title=request.title[:50], source="compare")

        strict_key = market_key(signatures.strict, request)
        loose_key = market_key(signatures.loose, request)

        if not request.force_refresh:
            allow_loose = _allow_loose_lookup(normalized)
            cached = self.cache.get(strict_key, loose_key if allow_loose else None)
            if cached is not None:
                assert cached.cache is not None
                tier = cached.cache.source
                logger.info(
                    "compare_cache_hit",
                    tier=tier.value,
                    loose_allowed=allow_loose,
                    source="compare",
                )
                cached.cache.signature_used = (
                    signatures.strict if tier == CompareSource.CACHE_STRICT else signatures.loose
                )
                cached.normalized = info
                return self._rescore(cached, request)

        category = normalized.category
        queries = _queries(request, normalized)

        try:
            (query_used, results, searches), was_deduped = await self.inflight.run(
                strict_key,
                lambda: self._search(queries, request, normalized, category),
            )
        except SearchProviderError as e:
            logger.error(
                "compare_search_failed",
                error=e.message,
                error_type=type(e).__name__,
                query=queries[0],
                source="compare",
            )
            raise CompareError(e.message, code="API_ERROR") from e

        stats = calculate_price_stats(results)
        response = CompareResponse(
            query_used=query_used,
            results=results,
            stats=stats,
            confidence=calculate_confidence(results),
            verdict=calculate_verdict(request.auction_price, stats, self.margin_pct),
            cache=CacheMetadata(source=CompareSource.FRESH_FETCH, signature_used=signatures.strict),
            normalized=info,
            usage={"searches": searches, "deduplicated": was_deduped, "used_ai": normalized.used_ai},
        )

        if results:
            entry = self.cache.put(strict_key, response, loose_key=loose_key)
            response.cache = CacheMetadata(
                source=CompareSource.FRESH_FETCH,
                cache_entry_id=entry.entry_id,
                fetched_at=entry.cached_at,
                expires_at=entry.expires_at,
                signature_used=signatures.strict,
            )
            self.memo.put(memo_key, response)
        else:
            logger.info("compare_no_results", query=query_used, source="compare")

        logger.info(
            "compare_fresh_fetch",
            query=query_used,
            results=len(results),
            verdict=response.verdict.status.value,
            deduplicated=was_deduped,
            source="compare",
        )
        return response

    async def _normalize(self, request: CompareRequest) -> NormalizedResult:
        if request.use_normalization is not None:
            use_ai = request.use_normalization
        else:
            use_ai = request.extraction_confidence != ExtractionConfidence.HIGH or not (
                request.brand and request.model
            )
        return await self.builder.normalize(
            request.title,
            request.locale,
            site_domain=request.site_domain,
            brand_hint=request.brand,
            model_hint=request.model,
            category_hint=request.category,
            use_ai=use_ai,
        )

    async def _search(
        self,
        queries: list[str],
        request: CompareRequest,
        normalized: NormalizedResult,
        category: ItemCategory,
    ) -> tuple[str, list[WebPriceResult], int]:
        """Primary query first; alt queries only while nothing survives filtering."""
        searches = 0
        for query in queries:
            raw = await self.search_provider.search(
                query,
                request.currency,
                request.locale,
                settings.SEARCH_MAX_RESULTS,
                category,
            )
            searches += 1
            scored = [
                r.model_copy(update={
                    "relevance_score": calculate_relevance_score(
                        request.title, r.title, normalized.brand, normalized.model
                    ),
                })
                for r in raw
            ]
            kept = filter_results(scored, category, request.auction_price)
            logger.debug(
                "compare_query_done",
                query=query,
                raw=len(raw),
                kept=len(kept),
                source="compare",
            )
            if kept:
                return query, kept, searches
        return queries[0], [], searches

    def _rescore(self, response: CompareResponse, request: CompareRequest) -> CompareResponse:
        response.verdict = calculate_verdict(request.auction_price, response.stats, self.margin_pct)
        return response


def _validate(request: CompareRequest) -> None:
    if not request.title.strip():
        raise CompareError("title must not be empty", code="INVALID_REQUEST")
    if request.auction_price <= 0:
        raise CompareError("auction_price must be positive", code="INVALID_REQUEST")


def market_key(signature: str, request: CompareRequest) -> str:
    """Cache/in-flight key: the product signature scoped to currency and locale."""
    return f"{signature}::{request.currency.value}::{request.locale.lower()}"


def _allow_loose_lookup(normalized: NormalizedResult) -> bool:
    """Prices of another condition are only reused when ours is uncertain."""
    return (
        normalized.condition_grade == ConditionGrade.UNKNOWN
        or normalized.condition_confidence < settings.CACHE_LOOSE_MAX_CONDITION_CONFIDENCE
    )


def _queries(request: CompareRequest, normalized: NormalizedResult) -> list[str]:
    if request.use_normalization is False:
        primary = build_search_query(request)
    else:
        primary = normalized.query or build_search_query(request)
    queries: list[str] = []
    for query in [primary, *normalized.alt_queries[: settings.MAX_ALT_QUERIES]]:
        query = query.strip()
        if query and query not in queries:
            queries.append(query)
    return queries or [request.title.strip()]


def _normalized_info(normalized: NormalizedResult) -> NormalizedInfo:
    return NormalizedInfo(
        brand=normalized.brand,
        model=normalized.model,
        capacity_gb=normalized.capacity_gb,
        condition_grade=normalized.condition_grade,
        functional_state=normalized.functional_state,
        category=normalized.category,
        signatures=normalized.signatures,
    )
