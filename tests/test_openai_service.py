"""
Tests for the OpenAI completion service wrapper.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from survey.errors import UpstreamUnavailable
from voicesurvey.openai_service import OpenAICompletionService


def mock_openai_client(*contents):
    """AsyncOpenAI stand-in whose chat completion returns the given contents."""
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=c)) for c in contents]
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


class TestComplete:
    """complete() returns candidate texts in order."""

    @pytest.mark.asyncio
    async def test_sends_single_user_message(self):
        client = mock_openai_client("Hello")
        service = OpenAICompletionService(client=client, model="gpt-4")

        assert await service.complete("Say hello") == ["Hello"]

        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["messages"] == [{"role": "user", "content": "Say hello"}]

    @pytest.mark.asyncio
    async def test_multiple_candidates_keep_order(self):
        service = OpenAICompletionService(client=mock_openai_client("a", "b"))
        assert await service.complete("x") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_zero_candidates(self):
        service = OpenAICompletionService(client=mock_openai_client())
        assert await service.complete("x") == []

    @pytest.mark.asyncio
    async def test_null_content_is_empty_text(self):
        service = OpenAICompletionService(client=mock_openai_client(None))
        assert await service.complete("x") == [""]

    @pytest.mark.asyncio
    async def test_api_error_is_upstream_unavailable(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=OpenAIError("rate limited"))
        service = OpenAICompletionService(client=client)

        with pytest.raises(UpstreamUnavailable):
            await service.complete("x")


class TestConfiguration:

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
            OpenAICompletionService()

    def test_model_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_MODEL", "gpt-4o-mini")
        service = OpenAICompletionService(client=mock_openai_client())
        assert service.model == "gpt-4o-mini"

    def test_default_model(self, monkeypatch):
        monkeypatch.delenv("OPENAI_MODEL", raising=False)
        service = OpenAICompletionService(client=mock_openai_client())
        assert service.model == "gpt-4"
