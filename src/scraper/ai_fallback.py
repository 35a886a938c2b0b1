"""
Auction Comparator - AI Extraction Fallback

Reads the lot title and current bid from a screenshot of the page when no
adapter could. The screenshot and the document title are the only page
content sent to the model; lot descriptions and seller text are not.
"""

from __future__ import annotations

import base64
import json
import re
from decimal import Decimal, InvalidOperation
from typing import Any

import anthropic
import structlog

from src.config import ExtractionConfidence, settings
from src.scraper import AiExtractionResult, ExtractedPrice
from src.scraper.domain_config import detect_lot_page
from src.utils.currency import normalize_currency

logger = structlog.get_logger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

# Amounts that are not what a buyer would pay right now
_REJECTED_PRICE_TYPES = {"starting_price", "estimate", "sold"}

EXTRACTION_PROMPT = (
    "This is a screenshot of an auction lot page. "
    "Identify the item being auctioned and its CURRENT BID. "
    "Ignore estimates, starting prices, sold/hammer prices and fees. "
    "Return ONLY a JSON object: "
    '{"title": <string|null>, "price": <number|null>, "currency": <"EUR"|"USD"|"GBP"|null>, '
    '"price_type": <"current_bid"|"starting_price"|"estimate"|"sold"|"unknown">} '
    "No other text."
)


class AiFallbackExtractor:
    """
    Usage:
        extractor = AiFallbackExtractor()
        result = await extractor.extract(page)
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: Any = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.ANTHROPIC_API_KEY
        self.model = model or settings.EXTRACTION_MODEL_ID
        self._client = client

    def is_available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def extract(self, page: Any) -> AiExtractionResult | None:
        """
        Extract title and current bid from the rendered page.

        Args:
            page: Playwright-style page already showing the lot.

        Returns:
            AiExtractionResult when a title or a price was read, None otherwise.
        """
        url = str(getattr(page, "url", "") or "")
        lot_page_info = detect_lot_page(url)

        if not self.is_available():
            logger.warning("ai_extraction_no_api_key", url=url, source="ai_fallback")
            return None

        try:
            screenshot_bytes = await page.screenshot(full_page=False)
            document_title = await page.title()
        except Exception as e:
            logger.error("ai_extraction_capture_failed", url=url, error=str(e), source="ai_fallback")
            return None

        if not screenshot_bytes:
            logger.warning("ai_extraction_no_screenshot", url=url, source="ai_fallback")
            return None

        image_data = base64.standard_b64encode(screenshot_bytes).decode("utf-8")

        try:
            response = await self._get_client().messages.create(
                model=self.model,
                max_tokens=settings.EXTRACTION_MAX_TOKENS,
                messages=[{
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/png",
                                "data": image_data,
                            },
                        },
                        {
                            "type": "text",
                            "text": f"Page title: {document_title or ''}\n\n{EXTRACTION_PROMPT}",
                        },
                    ],
                }],
            )
        except anthropic.APIError as e:
            logger.error("ai_extraction_api_error", url=url, error=str(e), source="ai_fallback")
            return None

        try:
            extracted = _parse_response(response.content[0].text)
        except (ValueError, IndexError, AttributeError) as parse_err:
            logger.warning("ai_extraction_parse_error", url=url, error=str(parse_err), source="ai_fallback")
            return None

        title = extracted.get("title")
        title = title.strip() if isinstance(title, str) and title.strip() else None
        price = _price_from(extracted)

        if title is None and price is None:
            logger.info("ai_extraction_empty", url=url, source="ai_fallback")
            return None

        result = AiExtractionResult(
            title=title,
            price=price,
            confidence=ExtractionConfidence.MEDIUM if title and price else ExtractionConfidence.LOW,
            domain=lot_page_info.domain,
            lot_page_info=lot_page_info,
        )
        logger.info(
            "ai_extraction_success",
            url=url,
            has_title=title is not None,
            price=str(price.value) if price else None,
            source="ai_fallback",
        )
        return result


def _parse_response(text: str) -> dict[str, Any]:
    raw = text.strip()
    fenced = _FENCED_JSON.search(raw)
    if fenced:
        raw = fenced.group(1).strip()
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def _price_from(extracted: dict[str, Any]) -> ExtractedPrice | None:
    if extracted.get("price_type") in _REJECTED_PRICE_TYPES:
        return None
    raw = extracted.get("price")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return ExtractedPrice(value=value, currency=normalize_currency(extracted.get("currency")))
