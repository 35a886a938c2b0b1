"""
Auction Comparator - Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- Playwright-style fake pages for adapters and extractors
- Web offer factory for scoring/cache/service tests
- Controllable clock for TTL tests
- Async test support via pytest-asyncio
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable

import pytest

from src.config import CompareSource, ConfidenceLevel, VerdictStatus
from src.models.comparison import (
    CacheMetadata,
    CompareResponse,
    PriceStats,
    Verdict,
    WebPriceResult,
)


# ---------------------------------------------------------------------------
# Fake page
# ---------------------------------------------------------------------------


class FakeElement:
    def __init__(self, text: str | None = "", attributes: dict[str, str] | None = None) -> None:
        self._text = text
        self._attributes = attributes or {}

    async def text_content(self) -> str | None:
        return self._text

    async def get_attribute(self, name: str) -> str | None:
        return self._attributes.get(name)


class FakePage:
    """
    Minimal async page: selectors map to one or more element texts.

    Mutate `selectors` between calls to simulate a page that renders late.
    """

    def __init__(
        self,
        url: str = "https://www.example-auction.com/lot/42",
        title: str = "",
        selectors: dict[str, Any] | None = None,
        attributes: dict[str, dict[str, str]] | None = None,
        body: str = "",
        screenshot: bytes = b"fake-png",
    ) -> None:
        self.url = url
        self._title = title
        self.selectors: dict[str, Any] = selectors or {}
        self.attributes = attributes or {}
        self.body = body
        self._screenshot = screenshot

    def _elements(self, selector: str) -> list[FakeElement]:
        value = self.selectors.get(selector)
        texts = value if isinstance(value, list) else ([value] if value is not None else [])
        elements = [FakeElement(t, self.attributes.get(selector)) for t in texts]
        if not elements and selector in self.attributes:
            elements = [FakeElement("", self.attributes[selector])]
        return elements

    async def query_selector(self, selector: str) -> FakeElement | None:
        elements = self._elements(selector)
        return elements[0] if elements else None

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        return self._elements(selector)

    async def inner_text(self, selector: str) -> str:
        return self.body

    async def title(self) -> str:
        return self._title

    async def screenshot(self, **kwargs: Any) -> bytes:
        return self._screenshot


@pytest.fixture
def fake_page() -> type[FakePage]:
    return FakePage


# ---------------------------------------------------------------------------
# Web offers & responses
# ---------------------------------------------------------------------------


@pytest.fixture
def make_result() -> Callable[..., WebPriceResult]:
    def _make(price: str | int, relevance: float = 0.8, title: str = "Apple iPhone 13 128 Go") -> WebPriceResult:
        return WebPriceResult(
            title=title,
            price=Decimal(str(price)),
            price_string=f"{price} €",
            source="example.com",
            url=f"https://example.com/{price}",
            relevance_score=relevance,
        )
    return _make


@pytest.fixture
def make_response(make_result: Callable[..., WebPriceResult]) -> Callable[..., CompareResponse]:
    def _make(query: str = "Apple iPhone 13", prices: tuple[int, ...] = (100, 200, 300)) -> CompareResponse:
        results = [make_result(p) for p in prices]
        return CompareResponse(
            query_used=query,
            results=results,
            stats=PriceStats(
                min=Decimal(min(prices)),
                max=Decimal(max(prices)),
                median=Decimal(sorted(prices)[len(prices) // 2]),
                average=Decimal(sum(prices)) / len(prices),
                count=len(prices),
            ),
            confidence=ConfidenceLevel.MEDIUM,
            verdict=Verdict(status=VerdictStatus.BORDERLINE, margin=Decimal("0"), reason="test"),
            cache=CacheMetadata(source=CompareSource.FRESH_FETCH),
        )
    return _make


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
