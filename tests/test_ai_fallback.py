"""Tests for screenshot-based AI extraction (Anthropic client mocked)."""

from __future__ import annotations

import base64
import json
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from src.config import Currency, ExtractionConfidence
from src.scraper.ai_fallback import AiFallbackExtractor

LOT_URL = "https://www.interencheres.com/high-tech/lot-678.html"


def _client(text: str) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=SimpleNamespace(content=[SimpleNamespace(text=text)]),
    )
    return client


def _reply(**fields: object) -> str:
    data: dict[str, object] = {
        "title": "Apple iPhone 13 128 Go",
        "price": 450,
        "currency": "EUR",
        "price_type": "current_bid",
    }
    data.update(fields)
    return json.dumps(data)


class TestAiFallbackExtractor:
    @pytest.mark.asyncio
    async def test_extracts_title_and_price(self, fake_page) -> None:
        client = _client(_reply())
        page = fake_page(url=LOT_URL, title="iPhone 13 | Interenchères", screenshot=b"png-bytes")

        result = await AiFallbackExtractor(api_key="sk-test", model="claude-test", client=client).extract(page)

        assert result is not None
        assert result.title == "Apple iPhone 13 128 Go"
        assert result.price.value == Decimal("450")
        assert result.price.currency == Currency.EUR
        assert result.confidence == ExtractionConfidence.MEDIUM
        assert result.domain == "www.interencheres.com"
        assert result.lot_page_info.is_lot_page is True
        assert result.lot_page_info.buyer_premium == Decimal("0.25")

        kwargs = client.messages.create.await_args.kwargs
        image, text = kwargs["messages"][0]["content"]
        assert kwargs["model"] == "claude-test"
        assert image["source"]["data"] == base64.standard_b64encode(b"png-bytes").decode("utf-8")
        assert text["text"].startswith("Page title: iPhone 13 | Interenchères")

    @pytest.mark.asyncio
    async def test_fenced_reply(self, fake_page) -> None:
        client = _client("```json\n" + _reply(price=99.5, currency="usd") + "\n```")
        result = await AiFallbackExtractor(api_key="sk-test", client=client).extract(fake_page())
        assert result.price.value == Decimal("99.5")
        assert result.price.currency == Currency.USD

    @pytest.mark.asyncio
    async def test_estimate_is_not_a_current_bid(self, fake_page) -> None:
        """A title with an estimate only yields a title, low confidence."""
        client = _client(_reply(price_type="estimate"))
        result = await AiFallbackExtractor(api_key="sk-test", client=client).extract(fake_page())
        assert result.price is None
        assert result.title == "Apple iPhone 13 128 Go"
        assert result.confidence == ExtractionConfidence.LOW

    @pytest.mark.parametrize("price", [0, -5, True, "abc", None])
    @pytest.mark.asyncio
    async def test_invalid_prices_dropped(self, fake_page, price: object) -> None:
        client = _client(_reply(price=price))
        result = await AiFallbackExtractor(api_key="sk-test", client=client).extract(fake_page())
        assert result.price is None

    @pytest.mark.asyncio
    async def test_nothing_found(self, fake_page) -> None:
        client = _client(_reply(title=None, price=None))
        assert await AiFallbackExtractor(api_key="sk-test", client=client).extract(fake_page()) is None

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, fake_page) -> None:
        client = _client("I cannot see a price on this page.")
        assert await AiFallbackExtractor(api_key="sk-test", client=client).extract(fake_page()) is None

    @pytest.mark.asyncio
    async def test_api_error(self, fake_page) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=anthropic.APIConnectionError(
                request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"),
            ),
        )
        assert await AiFallbackExtractor(api_key="sk-test", client=client).extract(fake_page()) is None

    @pytest.mark.asyncio
    async def test_no_api_key(self, fake_page) -> None:
        extractor = AiFallbackExtractor(api_key="")
        assert extractor.is_available() is False
        assert await extractor.extract(fake_page()) is None

    @pytest.mark.asyncio
    async def test_screenshot_failure(self, fake_page) -> None:
        client = _client(_reply())
        page = fake_page()
        page.screenshot = AsyncMock(side_effect=RuntimeError("page closed"))

        assert await AiFallbackExtractor(api_key="sk-test", client=client).extract(page) is None
        client.messages.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_screenshot(self, fake_page) -> None:
        client = _client(_reply())
        assert await AiFallbackExtractor(api_key="sk-test", client=client).extract(fake_page(screenshot=b"")) is None
        client.messages.create.assert_not_awaited()
