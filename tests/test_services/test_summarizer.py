"""Tests for the end-of-call summarizer."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from callbridge.config import DEFAULT_INTENT_LABELS
from callbridge.services.llm import (
    CallSummarizer,
    GroqService,
    LLMServiceError,
    SummaryParseError,
)


@pytest.fixture
def mock_llm():
    llm = MagicMock(spec=GroqService)
    llm.extract_json = AsyncMock()
    llm.close = AsyncMock()
    return llm


@pytest.fixture
def summarizer(mock_llm) -> CallSummarizer:
    return CallSummarizer(
        mock_llm,
        intent_labels=DEFAULT_INTENT_LABELS,
        default_intent="General Inquiry",
    )


class TestCallSummarizer:
    """Tests for CallSummarizer."""

    @pytest.mark.asyncio
    async def test_summarize(self, summarizer, mock_llm) -> None:
        mock_llm.extract_json.return_value = {
            "summary": " Caller's server is down and needs help. ",
            "intent": "Technical Support",
        }

        result = await summarizer.summarize("Caller: Our server is down")

        assert result.summary == "Caller's server is down and needs help."
        assert result.intent == "Technical Support"

        messages = mock_llm.extract_json.call_args.args[0]
        assert messages[0]["role"] == "system"
        assert "Technical Support" in messages[0]["content"]
        assert messages[1] == {"role": "user", "content": "Caller: Our server is down"}

    @pytest.mark.asyncio
    async def test_intent_matched_case_insensitively(self, summarizer, mock_llm) -> None:
        mock_llm.extract_json.return_value = {"summary": "Billing.", "intent": "billing question"}

        result = await summarizer.summarize("Caller: My invoice is wrong")

        assert result.intent == "Billing Question"

    @pytest.mark.asyncio
    async def test_unknown_intent_maps_to_default(self, summarizer, mock_llm) -> None:
        mock_llm.extract_json.return_value = {"summary": "Pizza order.", "intent": "Food Order"}

        result = await summarizer.summarize("Caller: One pizza please")

        assert result.intent == "General Inquiry"

    @pytest.mark.asyncio
    async def test_missing_summary_raises_parse_error(self, summarizer, mock_llm) -> None:
        mock_llm.extract_json.return_value = {"intent": "Other"}

        with pytest.raises(SummaryParseError):
            await summarizer.summarize("Caller: hello")

    @pytest.mark.asyncio
    async def test_llm_errors_propagate(self, summarizer, mock_llm) -> None:
        mock_llm.extract_json.side_effect = LLMServiceError("boom")

        with pytest.raises(LLMServiceError):
            await summarizer.summarize("Caller: hello")

    def test_parse_error_is_llm_service_error(self) -> None:
        assert issubclass(SummaryParseError, LLMServiceError)


class TestGroqExtractJson:
    """Tests for GroqService.extract_json with a mocked client."""

    @pytest.fixture
    def groq_service(self, settings_factory) -> GroqService:
        return GroqService(settings=settings_factory())

    def _mock_response(self, content: str | None):
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    def test_uses_summary_model(self, settings_factory) -> None:
        service = GroqService(settings=settings_factory(summary_model="llama-test"))

        assert service._model == "llama-test"

    @pytest.mark.asyncio
    async def test_extract_json_parses_object(self, groq_service) -> None:
        create = AsyncMock(return_value=self._mock_response('{"summary": "ok", "intent": "Other"}'))
        groq_service._client = MagicMock()
        groq_service._client.chat.completions.create = create

        result = await groq_service.extract_json([{"role": "user", "content": "hi"}])

        assert result == {"summary": "ok", "intent": "Other"}
        assert create.call_args.kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_extract_json_invalid_json(self, groq_service) -> None:
        groq_service._client = MagicMock()
        groq_service._client.chat.completions.create = AsyncMock(
            return_value=self._mock_response("not json")
        )

        with pytest.raises(LLMServiceError):
            await groq_service.extract_json([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_extract_json_empty_content(self, groq_service) -> None:
        groq_service._client = MagicMock()
        groq_service._client.chat.completions.create = AsyncMock(
            return_value=self._mock_response(None)
        )

        with pytest.raises(LLMServiceError):
            await groq_service.extract_json([{"role": "user", "content": "hi"}])
