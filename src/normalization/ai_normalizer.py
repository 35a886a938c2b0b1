"""
Auction Comparator - AI Title Normalizer (Anthropic)

Asks Claude to turn a raw auction title into structured product metadata.
Deterministic hints are sent along with the title and still win over the
model's opinion on functional state and condition (see canonical.py).

SECURITY: only the lot title and site metadata are sent. The model is told
never to infer prices.
"""

from __future__ import annotations

import json
import re
from typing import Any

import anthropic
import structlog

from src.config import ConditionGrade, FunctionalState, ItemCategory, NormalizedCondition, settings
from src.errors import NormalizationError
from src.models.normalization import NormalizedResult, NormalizeRequest
from src.normalization.canonical import (
    compute_signatures,
    get_deterministic_hints,
    normalize_brand,
    normalize_model,
    parse_capacity_to_gb,
    resolve_condition_grade,
    resolve_functional_state,
)
from src.normalization.heuristic import generate_normalize_cache_key

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """You are a product title normalizer for auction listings. Your job is to clean up auction titles and extract structured product information.

RULES:
1. Remove auction boilerplate (lot numbers, reference codes, condition descriptions)
2. Identify the brand, model, and product reference
3. Detect if this is an accessory vs the main product
4. Generate a clean search query for finding the same product online
5. Return ONLY valid JSON, no explanations
6. NEVER extract or infer prices - only extract metadata about the product

IMPORTANT:
- If you can't determine a field, use null
- condition: "new", "used", or "unknown" (refurbished counts as "used")
- functional_state: "ok" if working, "broken" if for parts/not working, "unknown" if uncertain
- capacity_gb: storage/memory in GB as integer (e.g., 256 for 256GB), null if not applicable
- Confidence should be 0.0 to 1.0 based on how certain you are
- altQueries should have max 2 alternative search queries
- isAccessory = true if it's a case, cable, charger, etc. rather than the main device
- category: "product" or "vehicle\""""

_RESPONSE_SHAPE = """
Respond with JSON only:
{
  "normalizedTitle": "cleaned title",
  "brand": "brand or null",
  "model": "model or null",
  "reference": "SKU/ref or null",
  "capacity": "size/capacity string or null",
  "capacity_gb": integer GB or null,
  "condition": "new|used|unknown",
  "functional_state": "ok|broken|unknown",
  "category": "product|vehicle",
  "isAccessory": true/false,
  "query": "main search query",
  "altQueries": ["alt query 1", "alt query 2"],
  "confidence": 0.0-1.0
}"""

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def build_user_prompt(request: NormalizeRequest) -> str:
    hints = request.hints or get_deterministic_hints(request.raw_title)

    lines = [
        "Normalize this auction title and return JSON:",
        "",
        f'Title: "{request.raw_title}"',
        f"Site: {request.site_domain}",
        f"Locale: {request.locale}",
    ]
    if request.brand_hint:
        lines.append(f"Brand hint: {request.brand_hint}")
    if request.model_hint:
        lines.append(f"Model hint: {request.model_hint}")
    if request.category_hint:
        lines.append(f"Category: {request.category_hint.value}")
    if hints.broken_indicators:
        lines.append("Broken/parts indicators detected: " + ", ".join(hints.broken_indicators))
    if hints.condition_indicators:
        lines.append("Condition indicators detected: " + ", ".join(hints.condition_indicators))

    return "\n".join(lines) + "\n" + _RESPONSE_SHAPE


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def parse_ai_response(text: str, request: NormalizeRequest) -> NormalizedResult:
    """
    Validate a model reply and turn it into a NormalizedResult.

    Accepts bare JSON or JSON wrapped in a markdown fence. normalizedTitle
    and query are required; confidence is clamped to [0, 1] (default 0.5);
    refurbished maps to the used grade.

    Raises:
        NormalizationError: NORMALIZATION_FAILED when the reply is not
            usable JSON or misses a required field.
    """
    raw = text.strip()
    fenced = _FENCED_JSON.search(raw)
    if fenced:
        raw = fenced.group(1).strip()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise NormalizationError(f"AI reply is not valid JSON: {e}", code="NORMALIZATION_FAILED") from e

    if not isinstance(data, dict):
        raise NormalizationError("AI reply is not a JSON object", code="NORMALIZATION_FAILED")
    for required in ("normalizedTitle", "query"):
        if not isinstance(data.get(required), str) or not data[required].strip():
            raise NormalizationError(f"Missing {required}", code="NORMALIZATION_FAILED")

    condition_raw = data.get("condition")
    try:
        condition = NormalizedCondition(condition_raw)
    except ValueError:
        condition = NormalizedCondition.UNKNOWN

    if condition == NormalizedCondition.REFURBISHED:
        ai_grade = ConditionGrade.USED
    else:
        try:
            ai_grade = ConditionGrade(condition_raw)
        except ValueError:
            ai_grade = ConditionGrade.UNKNOWN

    try:
        ai_state = FunctionalState(data.get("functional_state"))
    except ValueError:
        ai_state = FunctionalState.UNKNOWN

    raw_alt = data.get("altQueries")
    alt_queries = [q for q in raw_alt if isinstance(q, str)] if isinstance(raw_alt, list) else []

    confidence = data.get("confidence")
    if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
        confidence = 0.5
    confidence = max(0.0, min(1.0, float(confidence)))

    capacity_gb_raw = data.get("capacity_gb")
    if isinstance(capacity_gb_raw, (int, float)) and not isinstance(capacity_gb_raw, bool) and capacity_gb_raw > 0:
        capacity_gb: int | None = round(capacity_gb_raw)
    else:
        capacity_gb = parse_capacity_to_gb(_optional_str(data.get("capacity")) or request.raw_title)

    if data.get("category") == ItemCategory.VEHICLE.value:
        category = ItemCategory.VEHICLE
    else:
        category = request.category_hint or ItemCategory.PRODUCT

    hints = request.hints or get_deterministic_hints(request.raw_title)
    grade, condition_confidence = resolve_condition_grade(hints, ai_grade)

    result = NormalizedResult(
        normalized_title=str(data["normalizedTitle"]).strip(),
        brand=normalize_brand(_optional_str(data.get("brand"))),
        model=normalize_model(_optional_str(data.get("model"))),
        reference=_optional_str(data.get("reference")),
        capacity=_optional_str(data.get("capacity")),
        capacity_gb=capacity_gb,
        category=category,
        condition=condition,
        condition_grade=grade,
        functional_state=resolve_functional_state(hints, ai_state),
        locale=request.locale or settings.DEFAULT_LOCALE,
        is_accessory=bool(data.get("isAccessory")),
        query=str(data["query"]).strip(),
        alt_queries=alt_queries[:settings.MAX_ALT_QUERIES],
        confidence=confidence,
        condition_confidence=condition_confidence,
        used_ai=True,
        cache_key=generate_normalize_cache_key(request),
        hints=hints,
    )
    result.signatures = compute_signatures(result, result.normalized_title)
    return result


class AnthropicNormalizer:
    """
    Title normalizer backed by the Anthropic Messages API.

    Usage:
        normalizer = AnthropicNormalizer()
        if normalizer.is_available():
            result = await normalizer.normalize(request)
    """

    id = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._api_key = settings.ANTHROPIC_API_KEY if api_key is None else api_key
        self._model = model or settings.NORMALIZER_MODEL_ID
        self._client = client

    def is_available(self) -> bool:
        return bool(self._api_key) or self._client is not None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def normalize(self, request: NormalizeRequest) -> NormalizedResult:
        """
        Normalize a title with Claude.

        Raises:
            NormalizationError: PROVIDER_ERROR when the API call fails,
                NORMALIZATION_FAILED when the reply cannot be parsed.
        """
        if not self.is_available():
            raise NormalizationError("Anthropic API key not configured", code="PROVIDER_ERROR")

        try:
            response = await self._get_client().messages.create(
                model=self._model,
                max_tokens=settings.NORMALIZER_MAX_TOKENS,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_user_prompt(request)}],
            )
        except anthropic.APIError as e:
            raise NormalizationError(f"Anthropic API error: {e}", code="PROVIDER_ERROR") from e

        try:
            text = response.content[0].text
        except (IndexError, AttributeError) as e:
            raise NormalizationError("Empty response from Anthropic", code="PROVIDER_ERROR") from e
        if not text:
            raise NormalizationError("Empty response from Anthropic", code="PROVIDER_ERROR")

        result = parse_ai_response(text, request)
        logger.info(
            "ai_normalized",
            brand=result.brand,
            model=result.model,
            confidence=result.confidence,
            provider=self.id,
            source="ai_normalizer",
        )
        return result


def get_normalizer_provider() -> AnthropicNormalizer | None:
    """Return the configured AI normalizer, or None when AI is disabled."""
    provider = settings.NORMALIZER_PROVIDER.lower()
    if provider in ("", "none"):
        return None
    if provider != AnthropicNormalizer.id:
        logger.warning("normalizer_provider_unsupported", provider=provider, source="ai_normalizer")
        return None
    normalizer = AnthropicNormalizer()
    return normalizer if normalizer.is_available() else None
