"""End-of-call summary and intent classification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from callbridge.logging_config import get_logger
from callbridge.prompts import build_summary_prompt
from callbridge.services.llm.exceptions import SummaryParseError
from callbridge.services.llm.groq import GroqService

logger: Any = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CallSummary:
    """Summary and intent label for a finished call."""

    summary: str
    intent: str


class Summarizer(Protocol):
    """Protocol for call summarizers."""

    async def summarize(self, transcript_text: str) -> CallSummary:
        """Summarize a rendered transcript (``Speaker: text`` lines).

        Raises:
            LLMServiceError: If no usable summary could be produced
        """
        ...


class CallSummarizer:
    """Summarizes a transcript with one JSON completion request.

    The intent is normalized onto the configured closed label set;
    anything outside it becomes the default intent.
    """

    def __init__(
        self,
        llm: GroqService,
        *,
        intent_labels: list[str],
        default_intent: str,
    ) -> None:
        self._llm = llm
        self._intent_labels = list(intent_labels)
        self._default_intent = default_intent
        self._labels_by_key = {label.casefold(): label for label in self._intent_labels}

    async def summarize(self, transcript_text: str) -> CallSummary:
        messages = [
            {"role": "system", "content": build_summary_prompt(self._intent_labels)},
            {"role": "user", "content": transcript_text},
        ]
        result = await self._llm.extract_json(messages)
        return self.parse_result(result)

    def parse_result(self, result: dict[str, Any]) -> CallSummary:
        """Validate a ``{"summary", "intent"}`` response.

        Raises:
            SummaryParseError: If the summary is missing or not a string
        """
        summary = result.get("summary")
        if not isinstance(summary, str):
            raise SummaryParseError(f"Summary response has no summary text: {result!r}")

        return CallSummary(summary=summary.strip(), intent=self.normalize_intent(result.get("intent")))

    def normalize_intent(self, raw: Any) -> str:
        if not isinstance(raw, str) or not raw.strip():
            return self._default_intent

        label = self._labels_by_key.get(raw.strip().casefold())
        if label is None:
            logger.debug(f"Intent '{raw}' not in label set, using default")
            return self._default_intent
        return label

    async def close(self) -> None:
        await self._llm.close()
