"""Tests for the global token-bucket rate limiter."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.requests import Request
from starlette.responses import Response

from src.theaterpos.core.rate_limit import (
    _check_global_rate_limit,
    get_rate_limit_key,
    global_rate_limit_middleware,
)

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]

SETTINGS_PATH = "src.theaterpos.core.rate_limit.get_settings"
TIME_PATH = "src.theaterpos.core.rate_limit.time.time"


@pytest.fixture(autouse=True)
def _reset_rate_limit_state(reset_rate_limit_buckets):
    yield


@pytest.fixture
def mock_settings() -> MagicMock:
    """Limits active: rate limiting is disabled when app_env is 'testing'."""
    settings = MagicMock()
    settings.app_env = "development"
    settings.global_rate_limit_per_second = 2
    settings.global_rate_limit_burst = 3
    return settings


def make_request(path: str = "/api/v1/orders", host: str = "10.0.0.7") -> MagicMock:
    request = MagicMock(spec=Request)
    request.headers = {}
    request.client = MagicMock()
    request.client.host = host
    request.url.path = path
    return request


class TestRateLimitKey:
    async def test_key_is_client_ip(self):
        request = make_request()
        request.headers = {"X-Tenant-ID": "rotating-value"}

        with patch(
            "src.theaterpos.core.rate_limit.get_remote_address", return_value="10.0.0.7"
        ):
            assert get_rate_limit_key(request) == "10.0.0.7"


class TestTokenBucket:
    async def test_burst_then_refused(self, mock_settings):
        with patch(SETTINGS_PATH, return_value=mock_settings), patch(TIME_PATH, return_value=100.0):
            results = [await _check_global_rate_limit("10.0.0.7") for _ in range(4)]

        assert results == [True, True, True, False]

    async def test_tokens_replenish(self, mock_settings):
        with patch(SETTINGS_PATH, return_value=mock_settings):
            with patch(TIME_PATH, return_value=100.0):
                for _ in range(3):
                    await _check_global_rate_limit("10.0.0.7")
                assert await _check_global_rate_limit("10.0.0.7") is False

            with patch(TIME_PATH, return_value=100.5):
                assert await _check_global_rate_limit("10.0.0.7") is True

    async def test_buckets_are_per_ip(self, mock_settings):
        with patch(SETTINGS_PATH, return_value=mock_settings), patch(TIME_PATH, return_value=100.0):
            for _ in range(3):
                await _check_global_rate_limit("10.0.0.7")

            assert await _check_global_rate_limit("10.0.0.8") is True

    async def test_disabled_in_testing(self, mock_settings):
        mock_settings.app_env = "testing"

        with patch(SETTINGS_PATH, return_value=mock_settings):
            results = [await _check_global_rate_limit("10.0.0.7") for _ in range(10)]

        assert all(results)


class TestMiddleware:
    async def test_refusal_uses_error_envelope(self, mock_settings):
        call_next = AsyncMock(return_value=Response("ok"))
        mock_settings.global_rate_limit_burst = 1

        with patch(SETTINGS_PATH, return_value=mock_settings), patch(TIME_PATH, return_value=100.0):
            await global_rate_limit_middleware(make_request(), call_next)
            refused = await global_rate_limit_middleware(make_request(), call_next)

        assert refused.status_code == 429
        assert refused.headers["Retry-After"] == "1"
        assert json.loads(refused.body)["code"] == "RATE_LIMITED"
        assert call_next.await_count == 1

    @pytest.mark.parametrize("path", ["/health", "/metrics", "/api/v1/stream"])
    async def test_exempt_paths(self, mock_settings, path):
        call_next = AsyncMock(return_value=Response("ok"))
        mock_settings.global_rate_limit_burst = 0

        with patch(SETTINGS_PATH, return_value=mock_settings):
            response = await global_rate_limit_middleware(make_request(path), call_next)

        assert response.status_code == 200
