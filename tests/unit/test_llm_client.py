"""Unit tests for the OpenAI-compatible client, using httpx.MockTransport."""

import json

import httpx
import pytest

from kgrag.core.config import settings
from kgrag.services.llm_client import (
    EmbeddingError,
    LLMAPIError,
    LLMMessage,
    LLMProvider,
    LLMRateLimitError,
    MockLLMClient,
    OpenAIClient,
    get_llm_client,
)

MESSAGES = [LLMMessage(role="system", content="sys"), LLMMessage(role="user", content="hi")]


def _client(handler) -> OpenAIClient:
    return OpenAIClient(
        api_key="test-key",
        base_url="https://llm.test/v1/",
        transport=httpx.MockTransport(handler),
    )


class TestOpenAIClient:
    """Tests for request shape and error mapping."""

    async def test_complete(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "model": "gpt-test",
                    "choices": [{"message": {"role": "assistant", "content": "Hello"}}],
                    "usage": {"total_tokens": 12},
                },
            )

        async with _client(handler) as llm:
            response = await llm.complete(MESSAGES, temperature=0.3)

        assert response.content == "Hello"
        assert response.total_tokens == 12
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["temperature"] == 0.3
        assert seen["body"]["stream"] is False
        assert seen["body"]["messages"][1] == {"role": "user", "content": "hi"}

    async def test_rate_limit(self) -> None:
        async with _client(lambda request: httpx.Response(429, text="slow down")) as llm:
            with pytest.raises(LLMRateLimitError):
                await llm.complete(MESSAGES)

    async def test_server_error(self) -> None:
        async with _client(lambda request: httpx.Response(500, text="boom")) as llm:
            with pytest.raises(LLMAPIError, match="500"):
                await llm.complete(MESSAGES)

    async def test_malformed_body(self) -> None:
        async with _client(lambda request: httpx.Response(200, json={"choices": []})) as llm:
            with pytest.raises(LLMAPIError, match="malformed"):
                await llm.complete(MESSAGES)

    async def test_transport_error_is_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as llm:
            with pytest.raises(LLMAPIError, match="request failed"):
                await llm.complete(MESSAGES)

    async def test_embed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            data = [{"index": i, "embedding": [float(i), 0.5]} for i, _ in enumerate(body["input"])]
            return httpx.Response(200, json={"data": data})

        async with _client(handler) as llm:
            vectors = await llm.embed(["a", "b"])

        assert vectors == [[0.0, 0.5], [1.0, 0.5]]

    async def test_embed_without_data(self) -> None:
        async with _client(lambda request: httpx.Response(200, json={"data": []})) as llm:
            with pytest.raises(EmbeddingError):
                await llm.embed(["a"])

    async def test_stream_lines(self) -> None:
        body = 'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n\n'

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

        async with _client(handler) as llm:
            lines = [line async for line in llm.stream_lines(MESSAGES)]

        assert 'data: {"choices":[{"delta":{"content":"Hi"}}]}' in lines
        assert "data: [DONE]" in lines

    async def test_stream_error_status(self) -> None:
        async with _client(lambda request: httpx.Response(401, text="no key")) as llm:
            with pytest.raises(LLMAPIError, match="API key"):
                async for _ in llm.stream_lines(MESSAGES):
                    pass

    async def test_requires_context_manager(self) -> None:
        llm = _client(lambda request: httpx.Response(200))
        with pytest.raises(RuntimeError):
            _ = llm.client

    def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "openai_api_key", None)
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            OpenAIClient()


class TestFactory:
    """Tests for provider selection."""

    def test_mock_provider(self) -> None:
        client = get_llm_client("mock")
        assert isinstance(client, MockLLMClient)
        assert client.provider() == LLMProvider.MOCK

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            get_llm_client("gemini")
