"""Groq LLM service for one-shot JSON completions."""

from __future__ import annotations

import json
from typing import Any

import groq
from groq import AsyncGroq

from callbridge.config import Settings, get_settings
from callbridge.logging_config import get_logger
from callbridge.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
)

logger: Any = get_logger(__name__)


class GroqService:
    """Groq chat completions with JSON response format."""

    def __init__(
        self,
        settings: Settings | None = None,
        model: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model or self._settings.summary_model
        self._client: AsyncGroq | None = None

    @property
    def client(self) -> AsyncGroq:
        """Lazy initialization of AsyncGroq client."""
        if self._client is None:
            self._client = AsyncGroq(
                api_key=self._settings.groq_api_key.get_secret_value(),
                timeout=self._settings.summary_timeout_seconds,
                max_retries=1,
            )
        return self._client

    async def extract_json(
        self,
        messages: list[dict],
        *,
        max_tokens: int = 300,
        temperature: float = 0.3,
    ) -> dict:
        """Run a chat completion and parse its JSON object response.

        Args:
            messages: List of message dicts with role/content
            max_tokens: Maximum response tokens
            temperature: Sampling temperature

        Returns:
            Parsed JSON dict from LLM response

        Raises:
            LLMRateLimitError: When rate limit exceeded
            LLMConnectionError: When API unreachable
            LLMAuthenticationError: When API key invalid
            LLMServiceError: For other API errors or JSON parse failure
        """
        try:
            response = await self.client.chat.completions.create(  # type: ignore[call-overload]
                messages=messages,
                model=self._model,
                temperature=temperature,
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
            )

            content = response.choices[0].message.content
            if not content:
                raise LLMServiceError("Empty response from Groq JSON completion")

            result = json.loads(content)
            if not isinstance(result, dict):
                raise LLMServiceError("Groq JSON completion is not an object")
            return result

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON from Groq response: {e}")
            raise LLMServiceError(f"Invalid JSON in response: {e}") from e

        except groq.RateLimitError as e:
            logger.warning(f"Groq rate limit hit: {e}")
            raise LLMRateLimitError(
                "Rate limit exceeded",
                retry_after=self._extract_retry_after(e),
            ) from e

        except groq.APIConnectionError as e:
            logger.error(f"Groq connection error: {e.__cause__}")
            raise LLMConnectionError("Failed to connect to Groq API") from e

        except groq.AuthenticationError as e:
            logger.error("Groq authentication failed")
            raise LLMAuthenticationError("Invalid Groq API key") from e

        except groq.APIStatusError as e:
            logger.error(f"Groq API error: {e.status_code} - {e.message}")
            raise LLMServiceError(f"Groq API error: {e.status_code}") from e

    def _extract_retry_after(self, error: groq.RateLimitError) -> float:
        """Extract retry-after from rate limit error."""
        if hasattr(error, "response") and error.response:
            retry_after = error.response.headers.get("retry-after")
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass
        return 60.0

    async def close(self) -> None:
        """Close the client connection."""
        if self._client:
            await self._client.close()
            self._client = None
