"""Tests for the Anthropic-backed title normalizer (client mocked)."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest

from src.config import ConditionGrade, ItemCategory
from src.errors import NormalizationError
from src.models.normalization import NormalizeRequest
from src.normalization import ai_normalizer
from src.normalization.ai_normalizer import (
    AnthropicNormalizer,
    build_user_prompt,
    get_normalizer_provider,
    parse_ai_response,
)


def _reply(**overrides: object) -> str:
    data: dict[str, object] = {
        "normalizedTitle": "Apple iPhone 13 128GB",
        "brand": "apple",
        "model": "iPhone 13",
        "reference": None,
        "capacity": "128GB",
        "capacity_gb": 128,
        "condition": "new",
        "functional_state": "ok",
        "category": "product",
        "isAccessory": False,
        "query": "Apple iPhone 13 128GB",
        "altQueries": ["iPhone 13", 42, "iPhone 13 reconditionné", "extra"],
        "confidence": 0.85,
    }
    data.update(overrides)
    return json.dumps(data)


def _client_returning(text: str) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=SimpleNamespace(content=[SimpleNamespace(text=text)]),
    )
    return client


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestBuildUserPrompt:
    def test_includes_title_and_detected_indicators(self) -> None:
        prompt = build_user_prompt(NormalizeRequest(
            raw_title="iPhone 12 HS occasion",
            site_domain="interencheres.com",
            brand_hint="Apple",
        ))
        assert 'Title: "iPhone 12 HS occasion"' in prompt
        assert "Site: interencheres.com" in prompt
        assert "Brand hint: Apple" in prompt
        assert "Broken/parts indicators detected" in prompt
        assert "Condition indicators detected" in prompt
        assert '"normalizedTitle"' in prompt


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


class TestParseAiResponse:
    def test_valid_reply(self) -> None:
        result = parse_ai_response(_reply(), NormalizeRequest(raw_title="iphone 13 128go"))
        assert result.brand == "Apple"
        assert result.model == "iPhone 13"
        assert result.capacity_gb == 128
        assert result.category == ItemCategory.PRODUCT
        assert result.used_ai is True
        assert result.confidence == 0.85
        assert result.alt_queries == ["iPhone 13", "iPhone 13 reconditionné"]
        assert result.signatures is not None

    def test_fenced_json(self) -> None:
        text = "Here you go:\n```json\n" + _reply() + "\n```"
        result = parse_ai_response(text, NormalizeRequest(raw_title="iphone 13"))
        assert result.normalized_title == "Apple iPhone 13 128GB"

    def test_confidence_clamped_and_defaulted(self) -> None:
        request = NormalizeRequest(raw_title="iphone 13")
        assert parse_ai_response(_reply(confidence=1.7), request).confidence == 1.0
        assert parse_ai_response(_reply(confidence=-2), request).confidence == 0.0
        assert parse_ai_response(_reply(confidence="high"), request).confidence == 0.5

    def test_deterministic_condition_wins(self) -> None:
        """'occasion' in the title beats an AI 'new'."""
        result = parse_ai_response(_reply(condition="new"), NormalizeRequest(raw_title="iPhone 13 occasion"))
        assert result.condition_grade == ConditionGrade.USED
        assert result.condition_confidence == 0.9

    def test_refurbished_maps_to_used(self) -> None:
        result = parse_ai_response(_reply(condition="refurbished"), NormalizeRequest(raw_title="iPhone 13"))
        assert result.condition_grade == ConditionGrade.USED
        assert result.condition_confidence == 0.6

    def test_capacity_from_string_when_gb_missing(self) -> None:
        result = parse_ai_response(
            _reply(capacity_gb=None, capacity="1 To"),
            NormalizeRequest(raw_title="MacBook"),
        )
        assert result.capacity_gb == 1024

    def test_invalid_json(self) -> None:
        with pytest.raises(NormalizationError) as exc_info:
            parse_ai_response("not json at all", NormalizeRequest(raw_title="x"))
        assert exc_info.value.code == "NORMALIZATION_FAILED"

    def test_missing_query(self) -> None:
        with pytest.raises(NormalizationError):
            parse_ai_response(_reply(query=""), NormalizeRequest(raw_title="x"))

    def test_not_an_object(self) -> None:
        with pytest.raises(NormalizationError):
            parse_ai_response("[1, 2, 3]", NormalizeRequest(raw_title="x"))


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class TestAnthropicNormalizer:
    @pytest.mark.asyncio
    async def test_normalize_calls_messages_api(self) -> None:
        client = _client_returning(_reply())
        normalizer = AnthropicNormalizer(api_key="sk-test", model="claude-test", client=client)

        result = await normalizer.normalize(NormalizeRequest(raw_title="iphone 13 128go"))

        assert result.brand == "Apple"
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == ai_normalizer.SYSTEM_PROMPT
        assert "iphone 13 128go" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_api_error_becomes_provider_error(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=anthropic.APIConnectionError(
                request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"),
            ),
        )
        normalizer = AnthropicNormalizer(api_key="sk-test", client=client)

        with pytest.raises(NormalizationError) as exc_info:
            await normalizer.normalize(NormalizeRequest(raw_title="iphone 13"))
        assert exc_info.value.code == "PROVIDER_ERROR"

    @pytest.mark.asyncio
    async def test_empty_content(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=SimpleNamespace(content=[]))
        normalizer = AnthropicNormalizer(api_key="sk-test", client=client)

        with pytest.raises(NormalizationError) as exc_info:
            await normalizer.normalize(NormalizeRequest(raw_title="iphone 13"))
        assert exc_info.value.code == "PROVIDER_ERROR"

    @pytest.mark.asyncio
    async def test_unavailable_without_key(self) -> None:
        normalizer = AnthropicNormalizer(api_key="")
        assert normalizer.is_available() is False
        with pytest.raises(NormalizationError):
            await normalizer.normalize(NormalizeRequest(raw_title="iphone 13"))


class TestGetNormalizerProvider:
    def test_disabled(self) -> None:
        with patch.object(ai_normalizer.settings, "NORMALIZER_PROVIDER", "none"):
            assert get_normalizer_provider() is None

    def test_unsupported_provider(self) -> None:
        with patch.object(ai_normalizer.settings, "NORMALIZER_PROVIDER", "ollama"), \
             patch.object(ai_normalizer.settings, "ANTHROPIC_API_KEY", "sk-test"):
            assert get_normalizer_provider() is None

    def test_anthropic_needs_key(self) -> None:
        with patch.object(ai_normalizer.settings, "NORMALIZER_PROVIDER", "anthropic"), \
             patch.object(ai_normalizer.settings, "ANTHROPIC_API_KEY", ""):
            assert get_normalizer_provider() is None

    def test_anthropic_configured(self) -> None:
        with patch.object(ai_normalizer.settings, "NORMALIZER_PROVIDER", "anthropic"), \
             patch.object(ai_normalizer.settings, "ANTHROPIC_API_KEY", "sk-test"):
            assert isinstance(get_normalizer_provider(), AnthropicNormalizer)
