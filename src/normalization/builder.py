"""
Auction Comparator - SignatureBuilder

Turns a raw auction title into a NormalizedResult and its strict/loose
product signatures.

Pipeline:
1. deterministic hints + heuristic normalization (always)
2. AI normalization, only when the heuristic pass left brand or model
   unresolved and a provider is configured
3. merge: explicit hints and deterministic values are kept, the AI only
   fills gaps; functional state and condition always go through the
   deterministic-first resolvers
4. signatures

AI failures are logged and recovered with the heuristic result at a capped
confidence. Results are memoized per (title, locale, site, hints).
"""

from __future__ import annotations

from typing import Any

import structlog

from src.cache.lru import LRUTTLStore
from src.config import ItemCategory, NormalizedCondition, settings
from src.errors import NormalizationError
from src.models.normalization import (
    DeterministicHints,
    NormalizedProduct,
    NormalizedResult,
    NormalizeRequest,
    ProductSignatures,
)
from src.normalization.ai_normalizer import get_normalizer_provider
from src.normalization.canonical import compute_signatures, get_deterministic_hints
from src.normalization.heuristic import generate_normalize_cache_key, normalize_heuristic

logger = structlog.get_logger(__name__)

_UNSET: Any = object()


class SignatureBuilder:
    """
    Usage:
        builder = SignatureBuilder()
        product = await builder.normalize("iPhone 13 128Go - occasion", "fr")
        signatures = builder.signatures(product)
    """

    def __init__(
        self,
        ai_normalizer: Any = _UNSET,
        memo: LRUTTLStore[NormalizedResult] | None = None,
    ) -> None:
        self.ai_normalizer = get_normalizer_provider() if ai_normalizer is _UNSET else ai_normalizer
        self._memo: LRUTTLStore[NormalizedResult] = memo or LRUTTLStore(
            max_entries=settings.NORMALIZE_CACHE_MAX_ENTRIES,
            default_ttl=settings.NORMALIZE_CACHE_TTL_SECONDS,
        )

    async def normalize(
        self,
        raw_title: str,
        locale: str,
        hints: DeterministicHints | None = None,
        *,
        site_domain: str = "",
        brand_hint: str | None = None,
        model_hint: str | None = None,
        category_hint: ItemCategory | None = None,
        use_ai: bool = True,
    ) -> NormalizedResult:
        """
        Normalize a raw auction title.

        Args:
            raw_title: Lot title as shown on the auction site (non-empty).
            locale: Listing locale, e.g. "fr".
            hints: Precomputed deterministic hints (computed if omitted).
            site_domain: Auction site, forwarded to the AI prompt.
            brand_hint / model_hint / category_hint: Values the adapter read
                from structured page data. They are never overridden.
            use_ai: Allow the AI provider to fill unresolved fields.

        Returns:
            NormalizedResult with signatures populated.

        Raises:
            NormalizationError: INVALID_REQUEST when raw_title is blank.
        """
        if not raw_title or not raw_title.strip():
            raise NormalizationError("raw_title must not be empty", code="INVALID_REQUEST")

        request = NormalizeRequest(
            raw_title=raw_title.strip(),
            locale=locale or settings.DEFAULT_LOCALE,
            site_domain=site_domain,
            brand_hint=brand_hint,
            model_hint=model_hint,
            category_hint=category_hint,
            hints=hints or get_deterministic_hints(raw_title),
        )
        cache_key = generate_normalize_cache_key(request)
        memo_key = f"{cache_key}:{int(use_ai)}"

        cached = self._memo.get(memo_key)
        if cached is not None:
            logger.debug("normalize_memo_hit", cache_key=cache_key, source="signature_builder")
            return cached.model_copy(deep=True)

        deterministic = normalize_heuristic(request)
        result = deterministic

        if use_ai and self.ai_normalizer is not None and _needs_ai(deterministic):
            try:
                ai_result = await self.ai_normalizer.normalize(request)
                result = _merge_ai_result(deterministic, ai_result, request)
            except NormalizationError as e:
                logger.warning(
                    "ai_normalization_failed",
                    code=e.code,
                    error=e.message,
                    source="signature_builder",
                )
                result = deterministic.model_copy(update={
                    "confidence": min(deterministic.confidence, settings.NORMALIZE_FALLBACK_MAX_CONFIDENCE),
                })

        result.signatures = self.signatures(result)
        self._memo.set(memo_key, result)

        logger.info(
            "title_normalized",
            brand=result.brand,
            model=result.model,
            category=result.category.value,
            condition_grade=result.condition_grade.value,
            used_ai=result.used_ai,
            confidence=result.confidence,
            source="signature_builder",
        )
        return result.model_copy(deep=True)

    def signatures(self, product: NormalizedProduct) -> ProductSignatures:
        """Strict and loose signatures; falls back to the title when brand and model are unknown."""
        title = getattr(product, "normalized_title", None)
        return compute_signatures(product, title)


def _needs_ai(result: NormalizedResult) -> bool:
    return result.brand is None or result.model is None


def _merge_ai_result(
    deterministic: NormalizedResult,
    ai: NormalizedResult,
    request: NormalizeRequest,
) -> NormalizedResult:
    """
    Fill the gaps of a deterministic result with AI output.

    Explicit hints and deterministically resolved brand/model/capacity/
    category are kept; the AI supplies missing values, the title and the
    search queries.
    """
    category = request.category_hint or (
        deterministic.category if deterministic.category == ItemCategory.VEHICLE else ai.category
    )
    return deterministic.model_copy(update={
        "normalized_title": ai.normalized_title,
        "brand": deterministic.brand or ai.brand,
        "model": deterministic.model or ai.model,
        "reference": deterministic.reference or ai.reference,
        "capacity": deterministic.capacity or ai.capacity,
        "capacity_gb": deterministic.capacity_gb if deterministic.capacity_gb is not None else ai.capacity_gb,
        "category": category,
        "condition": ai.condition if ai.condition != NormalizedCondition.UNKNOWN else deterministic.condition,
        "condition_grade": ai.condition_grade,
        "condition_confidence": ai.condition_confidence,
        "functional_state": ai.functional_state,
        "is_accessory": ai.is_accessory,
        "query": ai.query,
        "alt_queries": ai.alt_queries,
        "confidence": ai.confidence,
        "used_ai": True,
        "signatures": None,
    })
