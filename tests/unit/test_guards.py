"""Unit tests for request guards."""

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from kgrag.api.guards import RateLimiter, client_key, require_api_key
from kgrag.core.config import settings


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.0.0.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/v1/query",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestRateLimiter:
    """Tests for the fixed-window limiter."""

    def test_admits_up_to_limit(self) -> None:
        limiter = RateLimiter(max_requests=3, clock=FakeClock())

        assert [limiter.allow("a") for _ in range(4)] == [True, True, True, False]

    def test_window_resets(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)

        assert limiter.allow("a")
        clock.now = 59.9
        assert not limiter.allow("a")
        clock.now = 60.0
        assert limiter.allow("a")

    def test_keys_are_independent(self) -> None:
        limiter = RateLimiter(max_requests=1, clock=FakeClock())

        assert limiter.allow("a")
        assert limiter.allow("b")
        assert not limiter.allow("a")
        assert len(limiter) == 2


class TestClientKey:
    """Tests for client identification."""

    def test_forwarded_for_first_entry(self) -> None:
        request = _request({"X-Forwarded-For": " 203.0.113.7 , 10.0.0.1"})
        assert client_key(request) == "203.0.113.7"

    def test_peer_host(self) -> None:
        assert client_key(_request()) == "10.0.0.9"

    def test_unknown(self) -> None:
        assert client_key(_request(client=None)) == "unknown"


class TestRequireApiKey:
    """Tests for the API key check."""

    async def test_disabled_when_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "api_key", None)
        await require_api_key(None)

    async def test_matching_key_passes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "api_key", "s3cret")
        await require_api_key("s3cret")

    @pytest.mark.parametrize("provided", [None, "", "wrong"])
    async def test_missing_or_wrong_key(self, monkeypatch: pytest.MonkeyPatch, provided: str | None) -> None:
        monkeypatch.setattr(settings, "api_key", "s3cret")
        with pytest.raises(HTTPException) as exc_info:
            await require_api_key(provided)
        assert exc_info.value.status_code == 401
