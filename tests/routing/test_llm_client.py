"""Tests for the Groq provider wrapper and error translation."""

from unittest.mock import AsyncMock, MagicMock

import groq
import httpx
import pytest

from sixvoices.errors import (
    ContextTooLongError,
    ModelUnavailableError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    ServerError,
)
from sixvoices.routing import GroqLLMClient, translate_error

REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def status_error(status: int, message: str, body: dict | None = None) -> groq.APIStatusError:
    response = httpx.Response(status, request=REQUEST)
    error_types = {
        400: groq.BadRequestError,
        404: groq.NotFoundError,
        413: groq.APIStatusError,
        429: groq.RateLimitError,
        500: groq.InternalServerError,
        503: groq.InternalServerError,
    }
    error_type = error_types.get(status, groq.APIStatusError)
    return error_type(message, response=response, body=body)


def mock_groq(content: str | None = "LLM response") -> MagicMock:
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = content

    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=mock_response)
    return client


class TestTranslateError:
    """Tests for mapping SDK errors to typed errors."""

    def test_rate_limit(self):
        translated = translate_error(status_error(429, "Rate limit reached"), "m")
        assert isinstance(translated, RateLimitError)
        assert translated.model == "m"

    def test_quota(self):
        error = status_error(
            429,
            "Limit exceeded",
            {"error": {"message": "You exceeded your current quota", "code": "insufficient_quota"}},
        )
        assert isinstance(translate_error(error, "m"), QuotaExceededError)

    def test_context_length(self):
        error = status_error(
            400,
            "Bad request",
            {"error": {"message": "Please reduce the length", "code": "context_length_exceeded"}},
        )
        assert isinstance(translate_error(error, "m"), ContextTooLongError)

    def test_payload_too_large(self):
        assert isinstance(translate_error(status_error(413, "Request too large"), "m"), ContextTooLongError)

    def test_model_not_found(self):
        assert isinstance(translate_error(status_error(404, "Not found"), "m"), ModelUnavailableError)

    def test_decommissioned_model(self):
        error = status_error(
            400,
            "The model `old-model` has been decommissioned",
            {"error": {"message": "The model `old-model` has been decommissioned"}},
        )
        assert isinstance(translate_error(error, "m"), ModelUnavailableError)

    @pytest.mark.parametrize("status", [500, 503])
    def test_server_error(self, status: int):
        assert isinstance(translate_error(status_error(status, "oops"), "m"), ServerError)

    def test_connection_error(self):
        error = groq.APIConnectionError(request=REQUEST)
        assert isinstance(translate_error(error, "m"), NetworkError)

    def test_timeout(self):
        error = groq.APITimeoutError(request=REQUEST)
        assert isinstance(translate_error(error, "m"), NetworkError)

    def test_unknown_bad_request_unchanged(self):
        error = status_error(400, "messages must not be empty")
        assert translate_error(error, "m") is error

    def test_non_groq_error_unchanged(self):
        error = ValueError("x")
        assert translate_error(error, "m") is error


class TestGroqLLMClient:
    """Tests for GroqLLMClient."""

    @pytest.mark.asyncio
    async def test_complete(self):
        client = mock_groq()
        llm = GroqLLMClient(client)
        messages = [{"role": "user", "content": "Hello"}]

        result = await llm.complete("test-model", messages, max_tokens=100, temperature=0.5)

        assert result == "LLM response"
        client.chat.completions.create.assert_called_once_with(
            model="test-model",
            messages=messages,
            max_tokens=100,
            temperature=0.5,
        )

    @pytest.mark.asyncio
    async def test_passes_timeout(self):
        client = mock_groq()
        llm = GroqLLMClient(client, timeout=12.0)

        await llm.complete("m", [], max_tokens=10, temperature=0.0)

        assert client.chat.completions.create.call_args.kwargs["timeout"] == 12.0

    @pytest.mark.asyncio
    async def test_none_content(self):
        llm = GroqLLMClient(mock_groq(content=None))
        assert await llm.complete("m", [], max_tokens=10, temperature=0.0) == ""

    @pytest.mark.asyncio
    async def test_translates_errors(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=status_error(429, "slow down"))
        llm = GroqLLMClient(client)

        with pytest.raises(RateLimitError) as exc_info:
            await llm.complete("m", [], max_tokens=10, temperature=0.0)
        assert isinstance(exc_info.value.__cause__, groq.RateLimitError)

    @pytest.mark.asyncio
    async def test_unclassified_error_reraised(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=status_error(400, "bad input"))
        llm = GroqLLMClient(client)

        with pytest.raises(groq.BadRequestError):
            await llm.complete("m", [], max_tokens=10, temperature=0.0)
