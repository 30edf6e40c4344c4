"""Language-model provider interface and the Groq implementation.

The service only needs one operation, ``complete``. GroqLLMClient wraps
AsyncGroq and turns SDK exceptions into the typed errors the retry
orchestrator classifies.
"""

import logging
from typing import Any, Protocol

import groq
from groq import AsyncGroq

from ..errors import (
    ContextTooLongError,
    ModelUnavailableError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    ServerError,
)

logger = logging.getLogger(__name__)

Message = dict[str, Any]


class LLMProvider(Protocol):
    """Anything that can complete a chat prompt with a named model."""

    async def complete(
        self,
        model: str,
        messages: list[Message],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return the completion text or raise a ModelCallError subclass."""
        ...


def _error_text(error: groq.APIStatusError) -> str:
    parts = [str(error.message)]
    body = error.body
    if isinstance(body, dict):
        detail = body.get("error", body)
        if isinstance(detail, dict):
            parts.extend(str(detail.get(k, "")) for k in ("message", "code", "type"))
    code = getattr(error, "code", None)
    if code:
        parts.append(str(code))
    return " ".join(parts).lower()


def translate_error(error: Exception, model: str) -> Exception:
    """Map a Groq SDK exception to the service's typed errors.

    Unknown errors are returned unchanged and end up classified as "other".
    """
    if isinstance(error, groq.APIConnectionError):
        # Also covers APITimeoutError.
        return NetworkError(f"{model}: {error}", model)

    if not isinstance(error, groq.APIStatusError):
        return error

    status = error.status_code
    text = _error_text(error)

    if status == 429:
        if "quota" in text or "insufficient" in text:
            return QuotaExceededError(f"{model}: {error.message}", model)
        return RateLimitError(f"{model}: {error.message}", model)

    if status == 413 or "context_length" in text or "context length" in text or "too long" in text:
        return ContextTooLongError(f"{model}: {error.message}", model)

    if status == 404 or (
        "model" in text
        and ("not found" in text or "decommissioned" in text or "does not exist" in text)
    ):
        return ModelUnavailableError(f"{model}: {error.message}", model)

    if status >= 500:
        return ServerError(f"{model}: HTTP {status} {error.message}", model)

    return error


class GroqLLMClient:
    """LLMProvider implementation that wraps AsyncGroq.

    Example:
        from groq import AsyncGroq
        from sixvoices.routing import GroqLLMClient

        client = GroqLLMClient(AsyncGroq(api_key="..."), timeout=60.0)
        text = await client.complete(
            "llama-3.3-70b-versatile",
            [{"role": "user", "content": "Hello"}],
            max_tokens=200,
            temperature=0.8,
        )
    """

    def __init__(self, client: AsyncGroq, timeout: float | None = None) -> None:
        """Initialize the Groq client wrapper.

        Args:
            client: The AsyncGroq client instance to wrap.
            timeout: Per-call timeout in seconds, passed to the SDK.
        """
        self._client = client
        self._timeout = timeout

    async def complete(
        self,
        model: str,
        messages: list[Message],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Complete a chat prompt and return the text response.

        Raises:
            ModelCallError: Typed subclass for classified provider failures.
        """
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except groq.APIError as e:
            translated = translate_error(e, model)
            if translated is e:
                raise
            logger.debug("Groq error on %s translated to %s", model, type(translated).__name__)
            raise translated from e

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug("Groq call on %s used %s tokens", model, getattr(usage, "total_tokens", "?"))

        return response.choices[0].message.content or ""
