"""
Auction Comparator - Heuristic Title Normalizer

Rule-based normalization used on its own when no AI provider is configured,
and as the fallback when the AI provider fails. Never raises on a non-empty
title.

Confidence:
    0.3 base + 0.2 brand + 0.2 model + 0.1 reference + 0.1 not an accessory,
    capped at HEURISTIC_MAX_CONFIDENCE (0.8).
"""

from __future__ import annotations

import hashlib
import re

import structlog

from src.config import ConditionGrade, ItemCategory, NormalizedCondition, settings
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

logger = structlog.get_logger(__name__)

_BOILERPLATE_PATTERNS = [
    re.compile(r"\b(lot|n[°º]|ref\.?|référence|reference)\s*:?\s*\d+", re.I),
    re.compile(r"\b(enchère|enchere|auction|vente|sale)\b", re.I),
    re.compile(r"\b(circa|env\.?|environ|approx\.?|approximately)\s*\d{4}\b", re.I),
    re.compile(r"\b(état|etat|condition)\s*:?\s*", re.I),
    re.compile(r"\b(frais|fees)\s*(inclus|included)?\b", re.I),
    re.compile(r"\[\d+\]"),
    re.compile(r"\(\d+\)"),
    re.compile(r"[*#]+"),
]

# Ordered: multi-word keywords before the words they contain
_CONDITION_KEYWORDS: list[tuple[str, NormalizedCondition]] = [
    ("remis à neuf", NormalizedCondition.REFURBISHED),
    ("reconditionné", NormalizedCondition.REFURBISHED),
    ("like new", NormalizedCondition.REFURBISHED),
    ("refurbished", NormalizedCondition.REFURBISHED),
    ("renewed", NormalizedCondition.REFURBISHED),
    ("brand new", NormalizedCondition.NEW),
    ("neuf", NormalizedCondition.NEW),
    ("nouveau", NormalizedCondition.NEW),
    ("sealed", NormalizedCondition.NEW),
    ("new", NormalizedCondition.NEW),
    ("occasion", NormalizedCondition.USED),
    ("usagé", NormalizedCondition.USED),
    ("pre-owned", NormalizedCondition.USED),
    ("second hand", NormalizedCondition.USED),
    ("used", NormalizedCondition.USED),
]

_ACCESSORY_KEYWORDS = [
    "accessoire", "accessory", "accessories",
    "chargeur", "charger", "cable", "câble",
    "housse", "case", "cover", "coque", "étui",
    "adaptateur", "adapter", "support", "stand",
    "télécommande", "remote", "manette", "controller",
    "batterie", "battery", "pile", "piles",
    "écouteur", "earphone", "earbuds", "casque audio",
    "protection", "protector", "film",
]

VEHICLE_BRANDS = [
    "Renault", "Peugeot", "Citroën", "Citroen", "Volkswagen", "VW", "Audi", "BMW",
    "Mercedes", "Ford", "Opel", "Fiat", "Toyota", "Nissan", "Honda", "Hyundai", "Kia",
    "Mazda", "Porsche", "Ferrari", "Lamborghini", "Maserati", "Jaguar", "Land Rover",
    "Volvo", "Harley-Davidson", "Yamaha", "Kawasaki", "Suzuki", "Ducati", "Triumph",
]

KNOWN_BRANDS = [
    # Tech
    "Apple", "iPhone", "iPad", "MacBook", "iMac", "Samsung", "Sony", "LG", "Huawei",
    "Xiaomi", "Google", "Microsoft", "Surface", "Dell", "HP", "Lenovo", "Asus", "Acer",
    "MSI", "Canon", "Nikon", "Leica", "Fujifilm", "Panasonic", "Olympus", "GoPro",
    "Bose", "JBL", "Sonos", "Bang & Olufsen", "Harman Kardon", "Marshall",
    "Dyson", "iRobot", "Philips", "Bosch", "Siemens", "Miele",
    # Luxury
    "Rolex", "Omega", "Cartier", "Patek Philippe", "Audemars Piguet", "Tag Heuer",
    "Hermès", "Hermes", "Louis Vuitton", "Chanel", "Dior", "Gucci", "Prada",
] + VEHICLE_BRANDS

_CAPACITY_PATTERNS = [
    re.compile(r"(\d+)\s*(go|gb|to|tb|mo|mb)\b", re.I),
    re.compile(r"(\d+)\s*(g|t)\b", re.I),
    re.compile(r"(\d+)\s*(pouces?|inch(es)?)\b", re.I),
    re.compile(r"(\d+)\s*(l|litres?|liters?)\b", re.I),
    re.compile(r"(\d+)\s*(cv|ch|hp)\b", re.I),
]

_MODEL_PATTERNS = [
    re.compile(r"\b([A-Z]{1,3}\d{2,4}[A-Z]?)\b"),
    re.compile(r"\b(\d{1,2}\s*(?:Pro|Max|Plus|Ultra|Mini|Lite|Air|SE))\b", re.I),
    re.compile(r"\b(Pro|Max|Plus|Ultra|Mini|Lite|Air|SE)\s*(\d+)?\b", re.I),
    re.compile(r"\b(Series|Gen|Generation)\s*(\d+)\b", re.I),
    re.compile(r"\b(Mark|Mk)\s*(I{1,4}|[1-4])\b", re.I),
    re.compile(r"\bVersion\s*([\d.]+)\b", re.I),
]

# Product lines named after their maker's brand; kept in the model so the
# search query still says "iPhone" when the brand resolves to Apple
PRODUCT_LINES = [
    "iPhone", "iPad", "MacBook", "iMac", "AirPods",
    "Galaxy", "Surface", "Pixel", "PlayStation", "Xbox",
]

_LINE_MODEL_SUFFIX = (
    r"(?:\s*[a-z]?\d{1,2}[a-z]?\b"
    r"(?:\s+(?:pro|max|plus|ultra|mini|lite|air|se|fe)\b)*)?"
)

_REFERENCE_PATTERN = re.compile(r"\b([A-Z]{2,}\d{3,}[A-Z0-9]*)\b")
_YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")
_ENGINE_PATTERN = re.compile(r"\b(\d[.,]\d)\s*(l|dci|hdi|tdi|tsi|tfsi)?\b", re.I)


def _contains_word(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(needle.lower())}(?!\w)", haystack) is not None


def generate_normalize_cache_key(request: NormalizeRequest) -> str:
    """Stable key for memoizing a normalization request."""
    data = "|".join([
        request.raw_title.lower().strip(),
        request.locale,
        request.site_domain,
        request.brand_hint or "",
        request.model_hint or "",
    ])
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:32]


def detect_brand(title_lower: str) -> str | None:
    for brand in KNOWN_BRANDS:
        if _contains_word(title_lower, brand):
            return brand
    return None


def detect_product_line(title_lower: str) -> str | None:
    for line in PRODUCT_LINES:
        if _contains_word(title_lower, line):
            return line
    return None


def _line_model(title: str, line: str, model: str | None) -> str:
    """
    Model prefixed with its product line.

    Examples:
        "Apple iPhone 13 Pro 128 Go", "iPhone", "13 Pro" -> "iPhone 13 Pro"
        "Sony PlayStation 5 CFI1216A", "PlayStation", "CFI1216A" -> "PlayStation 5"
    """
    match = re.search(rf"(?<!\w){re.escape(line)}{_LINE_MODEL_SUFFIX}", title, re.I)
    if match and len(match.group(0)) > len(line):
        return line + re.sub(r"\s+", " ", match.group(0)[len(line):])
    if model and line.lower() not in model.lower():
        return f"{line} {model}"
    return model or line


def is_vehicle_title(title_lower: str) -> bool:
    return any(_contains_word(title_lower, b) for b in VEHICLE_BRANDS)


def _strip_boilerplate(title: str) -> str:
    for pattern in _BOILERPLATE_PATTERNS:
        title = pattern.sub(" ", title)
    return re.sub(r"\s+", " ", title).strip()


def _detect_legacy_condition(title_lower: str) -> NormalizedCondition:
    for keyword, condition in _CONDITION_KEYWORDS:
        if _contains_word(title_lower, keyword):
            return condition
    return NormalizedCondition.UNKNOWN


def _first_match(patterns: list[re.Pattern[str]], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(0).strip()
    return None


def _legacy_to_grade(condition: NormalizedCondition) -> ConditionGrade:
    if condition == NormalizedCondition.NEW:
        return ConditionGrade.NEW
    if condition in (NormalizedCondition.USED, NormalizedCondition.REFURBISHED):
        return ConditionGrade.USED
    return ConditionGrade.UNKNOWN


def normalize_heuristic(request: NormalizeRequest) -> NormalizedResult:
    """
    Normalize an auction title without AI.

    Strips auction boilerplate, detects brand, model, reference, capacity,
    condition and accessory keywords, builds a search query (with year and
    engine size for vehicles) and up to two alternative queries.
    """
    original = request.raw_title.strip()
    title_lower = original.lower()
    title = _strip_boilerplate(original)

    condition = _detect_legacy_condition(title_lower)
    is_accessory = any(_contains_word(title_lower, kw) for kw in _ACCESSORY_KEYWORDS)

    brand = request.brand_hint or detect_brand(title_lower)

    capacity = _first_match(_CAPACITY_PATTERNS, title)
    if capacity:
        capacity = re.sub(r"\s+", "", capacity).upper()

    model = request.model_hint or _first_match(_MODEL_PATTERNS, title)
    line = None if request.model_hint else detect_product_line(title_lower)
    if line:
        model = _line_model(title, line, model)
        if brand and brand.lower() == line.lower():
            brand = normalize_brand(brand)

    ref_match = _REFERENCE_PATTERN.search(title)
    reference = ref_match.group(1) if ref_match else None

    # Normalized title: brand, model, then whatever is left of the title
    parts: list[str] = []
    if brand:
        parts.append(brand)
    if model and model != brand:
        parts.append(model)
    remainder = title
    for known in (brand, model):
        if known:
            remainder = re.sub(re.escape(known), "", remainder, flags=re.I)
    remainder = re.sub(r"\s+", " ", remainder).strip()
    if 3 < len(remainder) <= 80:
        parts.append(remainder)
    normalized_title = " ".join(parts).strip() or title or original

    is_vehicle = request.category_hint == ItemCategory.VEHICLE or is_vehicle_title(title_lower)
    category = request.category_hint or (ItemCategory.VEHICLE if is_vehicle else ItemCategory.PRODUCT)

    # Search query
    query_parts: list[str] = [p for p in (brand, model) if p]
    if is_vehicle:
        year = _YEAR_PATTERN.search(original)
        if year:
            query_parts.append(year.group(0))
        engine = _ENGINE_PATTERN.search(original)
        if engine:
            query_parts.append(engine.group(0).replace(",", "."))
    if capacity:
        query_parts.append(capacity)
    if not query_parts:
        query_parts.append(normalized_title[:settings.MAX_QUERY_LENGTH])
    query = " ".join(query_parts).strip()

    alt_queries: list[str] = []
    if brand and model:
        alt_queries.append(f"{brand} {model}")
    if condition == NormalizedCondition.USED and len(query) < settings.MAX_QUERY_LENGTH:
        alt_queries.append(f"{query} occasion")

    confidence = settings.HEURISTIC_BASE_CONFIDENCE
    if brand:
        confidence += 0.2
    if model:
        confidence += 0.2
    if reference:
        confidence += 0.1
    if not is_accessory:
        confidence += 0.1
    confidence = min(round(confidence, 2), settings.HEURISTIC_MAX_CONFIDENCE)

    hints = request.hints or get_deterministic_hints(original)
    functional_state = resolve_functional_state(hints)
    grade, condition_confidence = resolve_condition_grade(hints)
    if condition_confidence <= settings.CONDITION_FALLBACK_CONFIDENCE:
        grade = _legacy_to_grade(condition)

    result = NormalizedResult(
        normalized_title=normalized_title,
        brand=normalize_brand(brand),
        model=normalize_model(model),
        reference=reference,
        capacity=capacity,
        capacity_gb=parse_capacity_to_gb(capacity or original),
        category=category,
        condition=condition,
        condition_grade=grade,
        functional_state=functional_state,
        locale=request.locale or settings.DEFAULT_LOCALE,
        is_accessory=is_accessory,
        query=query,
        alt_queries=alt_queries[:settings.MAX_ALT_QUERIES],
        confidence=confidence,
        condition_confidence=max(condition_confidence, settings.CONDITION_FALLBACK_CONFIDENCE),
        used_ai=False,
        cache_key=generate_normalize_cache_key(request),
        hints=hints,
    )
    result.signatures = compute_signatures(result, result.normalized_title)

    logger.debug(
        "heuristic_normalized",
        brand=result.brand,
        model=result.model,
        capacity_gb=result.capacity_gb,
        confidence=result.confidence,
        source="heuristic",
    )
    return result
