"""LLM services (Groq) for end-of-call summaries."""

from callbridge.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
    SummaryParseError,
)
from callbridge.services.llm.groq import GroqService
from callbridge.services.llm.summarizer import CallSummarizer, CallSummary, Summarizer

__all__ = [
    # Protocol and types
    "Summarizer",
    "CallSummary",
    # Implementation
    "GroqService",
    "CallSummarizer",
    # Exceptions
    "LLMServiceError",
    "LLMRateLimitError",
    "LLMConnectionError",
    "LLMAuthenticationError",
    "SummaryParseError",
]
