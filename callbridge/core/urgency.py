"""Urgency detection for caller turns."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from callbridge.config import DEFAULT_URGENCY_KEYWORDS


class UrgencyDetector(Protocol):
    """Decides whether a caller turn signals an urgent problem."""

    def judge(self, text: str) -> bool: ...


class KeywordUrgencyDetector:
    """Case-insensitive substring match against a keyword lexicon.

    Substring matching means "down" also matches "download"; the lexicon
    is configurable so deployments can tighten it.
    """

    def __init__(self, keywords: Iterable[str] | None = None) -> None:
        source = DEFAULT_URGENCY_KEYWORDS if keywords is None else keywords
        self._keywords = tuple(k.lower() for k in source if k and k.strip())

    @property
    def keywords(self) -> tuple[str, ...]:
        return self._keywords

    def judge(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self._keywords)
