"""
Auction Comparator - Title Canonicalization & Product Signatures

Deterministic layer of the normalizer:
- canonicalize_text(): case/diacritic/punctuation-insensitive form of a title
- get_deterministic_hints(): weighted FR/EN regexes for broken and condition
  indicators
- parse_capacity_to_gb(): storage capacity in GB
- resolve_functional_state() / resolve_condition_grade(): merge deterministic
  hints with an optional AI opinion, deterministic evidence first
- compute_signatures(): strict and loose cache keys

Signatures:
    strict = digest(brand, model, capacity_gb, category, condition_grade)
    loose  = digest(brand, model, capacity_gb, category)

digest is SHA-256 over the canonicalized, pipe-joined fields (first 32 hex
chars). A missing field serializes to SIGNATURE_SENTINEL. When neither brand
nor model is known, the canonical full title stands in for both.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata

import structlog

from src.config import ConditionGrade, FunctionalState, settings
from src.models.normalization import DeterministicHints, NormalizedProduct, ProductSignatures

logger = structlog.get_logger(__name__)

SIGNATURE_SENTINEL = "<none>"
SIGNATURE_LENGTH = 32

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


# ---------------------------------------------------------------------------
# Indicator tables (French + English)
# ---------------------------------------------------------------------------

_BROKEN_INDICATORS: list[tuple[re.Pattern[str], float]] = [
    # French
    (re.compile(r"\bhs\b", re.I), 1.0),
    (re.compile(r"\bhors\s*service\b", re.I), 1.0),
    (re.compile(r"\bne\s*s['’]?allume\s*p(as|lus)\b", re.I), 1.0),
    (re.compile(r"\bpour\s*pi[eè]ces?\b", re.I), 1.0),
    (re.compile(r"\b[àa]\s*r[ée]parer\b", re.I), 0.9),
    (re.compile(r"\bicloud\s*lock(ed)?\b", re.I), 1.0),
    (re.compile(r"\bbloqu[ée]\s*icloud\b", re.I), 1.0),
    (re.compile(r"\bne\s*fonctionne\s*p(as|lus)\b", re.I), 1.0),
    (re.compile(r"\ben\s*panne\b", re.I), 0.9),
    (re.compile(r"\bcass[ée]e?\b", re.I), 0.7),
    (re.compile(r"\b[ée]cran\s*cass[ée]\b", re.I), 0.6),
    (re.compile(r"\bfissur[ée]e?\b", re.I), 0.5),
    (re.compile(r"\bd[ée]fectueu(x|se)\b", re.I), 0.9),
    # English
    (re.compile(r"\bfor\s*parts?\b", re.I), 1.0),
    (re.compile(r"\bbroken\b", re.I), 0.9),
    (re.compile(r"\bnot\s*working\b", re.I), 1.0),
    (re.compile(r"\bdoesn['’]?t\s*(turn\s*on|power\s*on|work)\b", re.I), 1.0),
    (re.compile(r"\bwon['’]?t\s*(turn\s*on|power\s*on|start)\b", re.I), 1.0),
    (re.compile(r"\bdefective\b", re.I), 0.9),
    (re.compile(r"\bas[\s-]*is\b", re.I), 0.6),
    (re.compile(r"\bspares?\s*(only|or\s*repair)\b", re.I), 1.0),
    (re.compile(r"\bsalvage\b", re.I), 0.8),
]

_CONDITION_INDICATORS: list[tuple[re.Pattern[str], ConditionGrade, float]] = [
    # New
    (re.compile(r"\bneuf\b", re.I), ConditionGrade.NEW, 0.9),
    (re.compile(r"\bnouveau\b", re.I), ConditionGrade.NEW, 0.7),
    (re.compile(r"\bsealed\b", re.I), ConditionGrade.NEW, 1.0),
    (re.compile(r"\bbrand\s*new\b", re.I), ConditionGrade.NEW, 1.0),
    (re.compile(r"\bnew\s*in\s*box\b", re.I), ConditionGrade.NEW, 1.0),
    (re.compile(r"\bnib\b", re.I), ConditionGrade.NEW, 0.9),
    (re.compile(r"\bbnib\b", re.I), ConditionGrade.NEW, 1.0),
    (re.compile(r"\bsous\s*blister\b", re.I), ConditionGrade.NEW, 1.0),
    # Used
    (re.compile(r"\boccasion\b", re.I), ConditionGrade.USED, 0.9),
    (re.compile(r"\busag[ée]e?\b", re.I), ConditionGrade.USED, 0.9),
    (re.compile(r"\bused\b", re.I), ConditionGrade.USED, 0.9),
    (re.compile(r"\bpre[\s-]*owned\b", re.I), ConditionGrade.USED, 0.9),
    (re.compile(r"\bsecond[\s-]*hand\b", re.I), ConditionGrade.USED, 0.9),
    (re.compile(r"\bd['’]occasion\b", re.I), ConditionGrade.USED, 0.9),
    (re.compile(r"\breconditionn[ée]e?\b", re.I), ConditionGrade.USED, 0.8),
    (re.compile(r"\brefurbished\b", re.I), ConditionGrade.USED, 0.8),
    (re.compile(r"\brenewed\b", re.I), ConditionGrade.USED, 0.8),
    (re.compile(r"\bcomme\s*neuf\b", re.I), ConditionGrade.USED, 0.85),
    (re.compile(r"\blike\s*new\b", re.I), ConditionGrade.USED, 0.85),
    (re.compile(r"\btr[eè]s\s*bon\s*[ée]tat\b", re.I), ConditionGrade.USED, 0.8),
    (re.compile(r"\bbon\s*[ée]tat\b", re.I), ConditionGrade.USED, 0.7),
]

# Checked in order; the first match inside the valid range wins
_CAPACITY_PATTERNS: list[tuple[re.Pattern[str], float]] = [
    (re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:tb|to)\b", re.I), 1024),
    (re.compile(r"(\d+)\s*(?:gb|go)\b", re.I), 1),
    (re.compile(r"(\d+)\s*(?:mb|mo)\b", re.I), 1 / 1024),
    (re.compile(
        r"\b(16|32|64|128|256|512|1024|2048)\b"
        r"(?!\s*(?:gb|go|tb|to|mb|mo|g|t|px|mp|inch|pouces?|\"))",
        re.I,
    ), 1),
]
_CAPACITY_MIN_GB = 1
_CAPACITY_MAX_GB = 16384

_BRAND_ALIASES: dict[str, str] = {
    "iphone": "Apple",
    "ipad": "Apple",
    "macbook": "Apple",
    "imac": "Apple",
    "airpods": "Apple",
    "apple watch": "Apple",
    "galaxy": "Samsung",
    "surface": "Microsoft",
    "pixel": "Google",
    "playstation": "Sony",
    "ps5": "Sony",
    "ps4": "Sony",
    "xbox": "Microsoft",
    "vw": "Volkswagen",
    "merc": "Mercedes",
    "mercedes-benz": "Mercedes",
    "land rover": "Land Rover",
    "range rover": "Land Rover",
}


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def canonicalize_text(text: str | None) -> str:
    """
    Case, diacritic and punctuation insensitive form of a string.

    Lowercases, strips combining marks after NFD decomposition, collapses
    every run of non-alphanumerics into a single space and trims.

    Examples:
        >>> canonicalize_text("  Écran  CASSÉ -- iPhone!! ")
        'ecran casse iphone'
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(" ", stripped).strip()


# ---------------------------------------------------------------------------
# Deterministic hints
# ---------------------------------------------------------------------------

def detect_broken_indicators(text: str) -> tuple[list[str], float]:
    """Return matched broken/for-parts phrases and the highest weight (0 if none)."""
    indicators: list[str] = []
    max_weight = 0.0
    for pattern, weight in _BROKEN_INDICATORS:
        match = pattern.search(text)
        if match:
            indicators.append(match.group(0))
            max_weight = max(max_weight, weight)
    return indicators, max_weight


def detect_condition_indicators(text: str) -> tuple[list[str], ConditionGrade, float]:
    """Return matched condition phrases, the best-weighted grade and its weight."""
    indicators: list[str] = []
    best_condition = ConditionGrade.UNKNOWN
    best_weight = 0.0
    for pattern, condition, weight in _CONDITION_INDICATORS:
        match = pattern.search(text)
        if match:
            indicators.append(match.group(0))
            if weight > best_weight:
                best_condition = condition
                best_weight = weight
    return indicators, best_condition, best_weight


def get_deterministic_hints(raw_title: str) -> DeterministicHints:
    broken, broken_confidence = detect_broken_indicators(raw_title)
    conditions, _, condition_confidence = detect_condition_indicators(raw_title)
    return DeterministicHints(
        broken_indicators=broken,
        condition_indicators=conditions,
        broken_confidence=broken_confidence,
        condition_confidence=condition_confidence,
    )


def parse_capacity_to_gb(text: str | None) -> int | None:
    """
    Parse a storage capacity and normalize it to whole GB.

    Accepts TB/To, GB/Go and MB/Mo units, and bare powers of two that look
    like capacities (e.g. "iPhone 13 128"). Results outside 1..16384 GB are
    rejected.

    Examples:
        >>> parse_capacity_to_gb("MacBook 1,5 To")
        1536
        >>> parse_capacity_to_gb("iPhone 13 256 Go")
        256
    """
    if not text:
        return None
    for pattern, factor in _CAPACITY_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        gb = round(float(match.group(1).replace(",", ".")) * factor)
        if _CAPACITY_MIN_GB <= gb <= _CAPACITY_MAX_GB:
            return gb
    return None


# ---------------------------------------------------------------------------
# Brand / model
# ---------------------------------------------------------------------------

def normalize_brand(brand: str | None) -> str | None:
    """Map product-line names to their maker, otherwise capitalize."""
    if not brand or not brand.strip():
        return None
    cleaned = brand.strip()
    alias = _BRAND_ALIASES.get(cleaned.lower())
    if alias:
        return alias
    return cleaned[0].upper() + cleaned[1:].lower()


def normalize_model(model: str | None) -> str | None:
    if not model or not model.strip():
        return None
    return re.sub(r"\s+", " ", model.strip())


# ---------------------------------------------------------------------------
# Resolvers: deterministic evidence first, AI second
# ---------------------------------------------------------------------------

def resolve_functional_state(
    hints: DeterministicHints,
    ai_result: FunctionalState | None = None,
) -> FunctionalState:
    """
    Decide whether the item works.

    A strong broken indicator is authoritative. A medium one holds unless
    the AI explicitly says the item works, in which case the answer is
    unknown. With no indicators the AI opinion (or ok) is used.
    """
    if hints.broken_confidence >= settings.BROKEN_AUTHORITATIVE_CONFIDENCE:
        return FunctionalState.BROKEN

    if hints.broken_confidence >= settings.BROKEN_MEDIUM_CONFIDENCE:
        if ai_result in (None, FunctionalState.BROKEN, FunctionalState.UNKNOWN):
            return FunctionalState.BROKEN
        return FunctionalState.UNKNOWN

    if not hints.broken_indicators:
        return ai_result or FunctionalState.OK

    return ai_result or FunctionalState.UNKNOWN


def resolve_condition_grade(
    hints: DeterministicHints,
    ai_result: ConditionGrade | None = None,
) -> tuple[ConditionGrade, float]:
    """
    Decide the condition grade and how sure we are.

    Returns:
        (grade, confidence). Deterministic hints at or above the
        authoritative threshold win; otherwise a definite AI grade is used
        with a capped confidence.
    """
    _, detected, _ = detect_condition_indicators(" ".join(hints.condition_indicators))

    if hints.condition_confidence >= settings.CONDITION_AUTHORITATIVE_CONFIDENCE:
        return detected, hints.condition_confidence

    if ai_result is not None and ai_result != ConditionGrade.UNKNOWN:
        return ai_result, settings.AI_CONDITION_CONFIDENCE

    return detected, hints.condition_confidence or settings.CONDITION_FALLBACK_CONFIDENCE


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def _signature_field(value: object) -> str:
    if value is None:
        return SIGNATURE_SENTINEL
    return canonicalize_text(str(getattr(value, "value", value)))


def signature_digest(*fields: object) -> str:
    """SHA-256 (first 32 hex chars) of canonicalized, pipe-joined fields."""
    data = "|".join(_signature_field(f) for f in fields)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:SIGNATURE_LENGTH]


def compute_signatures(product: NormalizedProduct, title: str | None = None) -> ProductSignatures:
    """
    Strict and loose signatures for a normalized product.

    Args:
        product: Normalized product identity.
        title: Full title used when neither brand nor model is resolved.
            Defaults to the product's search query.

    Returns:
        ProductSignatures. Loose omits condition_grade, so two listings of
        the same item in different condition share it.
    """
    if product.brand is None and product.model is None:
        fallback_title = canonicalize_text(title or product.query)
        logger.debug(
            "signature_degraded_to_title",
            title=fallback_title,
            source="canonical",
        )
        return ProductSignatures(
            strict=signature_digest(fallback_title, product.category, product.condition_grade),
            loose=signature_digest(fallback_title, product.category),
        )

    return ProductSignatures(
        strict=signature_digest(
            product.brand,
            product.model,
            product.capacity_gb,
            product.category,
            product.condition_grade,
        ),
        loose=signature_digest(
            product.brand,
            product.model,
            product.capacity_gb,
            product.category,
        ),
    )
