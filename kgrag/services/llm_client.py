"""
LLM client abstraction for chat completion, streaming chat and embeddings.

This module provides a single interface over an OpenAI-compatible HTTP API:

- `complete()`: one chat completion, returns the full message content
- `stream_lines()`: a streaming chat completion, yields raw server-sent lines
- `embed()`: one embeddings request for a list of inputs

Non-success responses and malformed bodies raise `LLMAPIError`; transport
failures are wrapped into it as well, so callers only handle `LLMError`.
Retries are driven by tenacity and disabled by default
(`OPENAI_MAX_ATTEMPTS=1`).
"""

import hashlib
import json
import math
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from kgrag.core.config import settings
from kgrag.core.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Enums and Constants
# =============================================================================


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    MOCK = "mock"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class LLMMessage:
    """A chat message."""

    role: str  # "system", "user", or "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    """Response from a chat completion call."""

    content: str
    model: str
    provider: LLMProvider
    usage: dict[str, int] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


# =============================================================================
# Exceptions
# =============================================================================


class LLMError(Exception):
    """Base exception for LLM client errors."""


class LLMRateLimitError(LLMError):
    """Raised when rate limited by the API (HTTP 429)."""


class LLMAPIError(LLMError):
    """Raised on a non-success response, a malformed body, or a transport failure."""


class EmbeddingError(LLMAPIError):
    """Raised when an embeddings response does not match the request."""


# =============================================================================
# Base LLM Client
# =============================================================================


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    def __init__(
        self,
        model: str | None = None,
        embedding_model: str | None = None,
        timeout: float = 60.0,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize LLM client.

        Args:
            model: Chat model identifier
            embedding_model: Embedding model identifier
            timeout: Request timeout in seconds
            base_url: API base URL
            headers: Default request headers
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.model = model
        self.embedding_model = embedding_model
        self.timeout = timeout
        self.base_url = base_url
        self.headers = headers or {}
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BaseLLMClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self.headers,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client."""
        if self._client is None:
            raise RuntimeError(
                "LLM client must be used as async context manager: "
                "async with Client() as client: ..."
            )
        return self._client

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,
    ) -> LLMResponse:
        """Generate a single chat completion."""

    @abstractmethod
    def stream_lines(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,
    ) -> AsyncIterator[str]:
        """Yield raw server-sent event lines of a streaming chat completion."""

    @abstractmethod
    async def embed(self, inputs: list[str]) -> list[list[float]]:
        """Embed every input; one vector per input, in input order."""

    @abstractmethod
    def provider(self) -> LLMProvider:
        """Get the provider type."""


# =============================================================================
# OpenAI-compatible Client
# =============================================================================


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    if response.status_code == 429:
        logger.warning(
            "LLM rate limit hit",
            operation=operation,
            retry_after=response.headers.get("retry-after"),
        )
        raise LLMRateLimitError(f"{operation}: rate limit exceeded")

    if response.status_code >= 400:
        error_text = response.text[:500]
        logger.error(
            "LLM API error",
            operation=operation,
            status_code=response.status_code,
            response=error_text,
        )
        if response.status_code == 401:
            raise LLMAPIError(f"{operation}: API key invalid or missing")
        raise LLMAPIError(f"{operation}: API returned status {response.status_code}: {error_text}")


class OpenAIClient(BaseLLMClient):
    """Client for the OpenAI chat completions and embeddings endpoints."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        embedding_model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or settings.openai_api_key
        if not self.api_key:
            raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY in .env")

        super().__init__(
            model=model or settings.openai_chat_model,
            embedding_model=embedding_model or settings.openai_embedding_model,
            timeout=timeout or settings.openai_timeout_seconds,
            base_url=(base_url or settings.openai_base_url).rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def provider(self) -> LLMProvider:
        return LLMProvider.OPENAI

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, LLMRateLimitError)),
        stop=stop_after_attempt(settings.openai_max_attempts),
        wait=wait_random_exponential(multiplier=1, min=1, max=20),
        reraise=True,
    )
    async def _post_json(self, path: str, payload: dict[str, Any], operation: str) -> dict[str, Any]:
        response = await self.client.post(path, json=payload)
        _raise_for_status(response, operation)
        try:
            return response.json()
        except ValueError as e:
            raise LLMAPIError(f"{operation}: response body is not JSON") from e

    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,
    ) -> LLMResponse:
        payload = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "stream": False,
        }
        logger.debug("Chat completion request", model=self.model, messages=len(messages))

        try:
            data = await self._post_json("/chat/completions", payload, "chat completion")
        except httpx.HTTPError as e:
            raise LLMAPIError(f"chat completion: request failed: {e}") from e

        # {"choices": [{"message": {"content": "..."}}], "usage": {...}}
        try:
            content = data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise LLMAPIError("chat completion: malformed response body") from e

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            provider=LLMProvider.OPENAI,
            usage=data.get("usage") or {},
            raw_response=data,
        )

    async def stream_lines(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,
    ) -> AsyncIterator[str]:
        payload = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "stream": True,
        }
        try:
            async with self.client.stream("POST", "/chat/completions", json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    _raise_for_status(response, "chat stream")
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as e:
            raise LLMAPIError(f"chat stream: request failed: {e}") from e

    async def embed(self, inputs: list[str]) -> list[list[float]]:
        payload = {"model": self.embedding_model, "input": inputs}
        try:
            data = await self._post_json("/embeddings", payload, "embeddings")
        except httpx.HTTPError as e:
            raise LLMAPIError(f"embeddings: request failed: {e}") from e

        # {"data": [{"index": 0, "embedding": [...]}, ...]}
        items = data.get("data") if isinstance(data, dict) else None
        if not items:
            raise EmbeddingError("embeddings: response contained no data")
        try:
            return [list(item["embedding"]) for item in items]
        except (KeyError, TypeError) as e:
            raise EmbeddingError("embeddings: malformed data item") from e


# =============================================================================
# Mock Client (for testing and offline development)
# =============================================================================


class MockLLMClient(BaseLLMClient):
    """
    Mock LLM client for tests and local runs without an API key.

    Chat responses are served from `set_responses()` in order (the last one
    repeats); streaming splits the next response into word frames; embeddings
    are deterministic unit vectors derived from a hash of the text.
    Every call is recorded for assertions.
    """

    def __init__(
        self,
        model: str = "mock-model",
        embedding_model: str = "mock-embedding",
        timeout: float = 60.0,
        dimensions: int = 8,
    ):
        super().__init__(model=model, embedding_model=embedding_model, timeout=timeout)
        self.dimensions = dimensions
        self._responses: list[str] = []
        self._call_count = 0
        self.calls: list[list[LLMMessage]] = []
        self.embedding_calls: list[list[str]] = []

    def provider(self) -> LLMProvider:
        return LLMProvider.MOCK

    def set_responses(self, responses: list[str]) -> None:
        """Set predefined chat responses."""
        self._responses = responses
        self._call_count = 0

    def _next_response(self, messages: list[LLMMessage]) -> str:
        self.calls.append(list(messages))
        if self._responses:
            idx = min(self._call_count, len(self._responses) - 1)
            self._call_count += 1
            return self._responses[idx]
        return self._generate_default_response(messages)

    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,  # noqa: ARG002 - Required by interface
    ) -> LLMResponse:
        return LLMResponse(
            content=self._next_response(messages),
            model=self.model,
            provider=LLMProvider.MOCK,
            usage={"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
        )

    async def stream_lines(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,  # noqa: ARG002 - Required by interface
    ) -> AsyncIterator[str]:
        content = self._next_response(messages)
        for i, word in enumerate(content.split(" ")):
            token = word if i == 0 else f" {word}"
            frame = {"choices": [{"delta": {"content": token}}]}
            yield f"data: {json.dumps(frame)}"
            yield ""
        yield "data: [DONE]"

    async def embed(self, inputs: list[str]) -> list[list[float]]:
        self.embedding_calls.append(list(inputs))
        return [self._vector_for(text) for text in inputs]

    def _vector_for(self, text: str) -> list[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        raw = [(digest[i % len(digest)] / 255.0) - 0.5 for i in range(self.dimensions)]
        norm = math.sqrt(sum(v * v for v in raw)) or 1.0
        return [v / norm for v in raw]

    def _generate_default_response(self, messages: list[LLMMessage]) -> str:
        system = next((m.content for m in messages if m.role == "system"), "").lower()
        if "intent classifier" in system:
            return json.dumps({"intent": "none", "confidence": 0.0})
        if "extract structured entities" in system:
            return json.dumps({"entities": [], "events": [], "participants": [], "relations": []})
        if "classify" in system:
            return "OTHER"
        return "This is a mock answer."


# =============================================================================
# Factory Function
# =============================================================================


def get_llm_client(
    provider: str | LLMProvider | None = None,
    **kwargs: Any,
) -> BaseLLMClient:
    """
    Build an LLM client for the configured provider.

    Example:
        async with get_llm_client() as llm:
            response = await llm.complete(messages)
    """
    if provider is None:
        provider = settings.llm_provider

    if isinstance(provider, str):
        provider = LLMProvider(provider.lower())

    if provider == LLMProvider.OPENAI:
        return OpenAIClient(**kwargs)
    elif provider == LLMProvider.MOCK:
        return MockLLMClient(**kwargs)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")
