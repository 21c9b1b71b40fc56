"""Tests for HTTP client with transport retry."""

import httpx
import pytest
import respx

from src.ingestion.http_client import FeedProviderError, HTTPClient, RetryConfig

URL = "https://api.example.com/data"


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        """Retries are disabled by default."""
        config = RetryConfig()

        assert config.max_retries == 0
        assert config.max_backoff_seconds == 60.0
        assert config.base_delay == 1.0
        assert config.jitter_factor == 0.1

    def test_calculate_backoff_exponential(self):
        """Should calculate exponential backoff."""
        config = RetryConfig(base_delay=1.0, jitter_factor=0.0)

        assert config.calculate_backoff(0) == 1.0
        assert config.calculate_backoff(1) == 2.0
        assert config.calculate_backoff(2) == 4.0
        assert config.calculate_backoff(3) == 8.0

    def test_calculate_backoff_respects_max(self):
        """Should cap backoff at max_backoff_seconds."""
        config = RetryConfig(
            base_delay=1.0,
            max_backoff_seconds=5.0,
            jitter_factor=0.0,
        )

        assert config.calculate_backoff(2) == 4.0
        assert config.calculate_backoff(3) == 5.0  # Capped
        assert config.calculate_backoff(10) == 5.0

    def test_calculate_backoff_with_jitter(self):
        """Should add jitter within expected range."""
        config = RetryConfig(base_delay=1.0, jitter_factor=0.1)

        backoffs = [config.calculate_backoff(0) for _ in range(100)]

        assert all(1.0 <= b < 1.1 for b in backoffs)

    def test_retryable_exceptions(self):
        config = RetryConfig()
        request = httpx.Request("GET", URL)

        assert config.is_retryable_exception(httpx.ConnectError("refused", request=request))
        assert config.is_retryable_exception(httpx.ReadTimeout("slow", request=request))
        assert not config.is_retryable_exception(ValueError("nope"))


class TestHTTPClient:
    """Tests for HTTPClient."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_success(self):
        """Should return response on successful GET."""
        respx.get(URL).mock(return_value=httpx.Response(200, json={"result": "success"}))

        async with HTTPClient() as client:
            response = await client.get(URL)

        assert response.status_code == 200
        assert response.json() == {"result": "success"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_with_params_and_headers(self):
        """Should send query parameters and headers."""
        route = respx.get(URL).mock(return_value=httpx.Response(200, json={}))

        async with HTTPClient() as client:
            await client.get(URL, params={"q": "search"}, headers={"X-API-Key": "k"})

        request = route.calls.last.request
        assert "q=search" in str(request.url)
        assert request.headers["X-API-Key"] == "k"

    @pytest.mark.asyncio
    @respx.mock
    async def test_status_error_not_retried(self):
        """Non-2xx responses raise immediately, even with retries enabled."""
        route = respx.get(URL).mock(return_value=httpx.Response(500, text="boom"))

        config = RetryConfig(max_retries=3, base_delay=0.01, jitter_factor=0.0)
        async with HTTPClient(retry_config=config) as client:
            with pytest.raises(FeedProviderError) as exc_info:
                await client.get(URL)

        assert exc_info.value.status_code == 500
        assert exc_info.value.response_body == "boom"
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_429_not_retried(self):
        route = respx.get(URL).mock(return_value=httpx.Response(429, text="Rate limited"))

        async with HTTPClient() as client:
            with pytest.raises(FeedProviderError) as exc_info:
                await client.get(URL)

        assert exc_info.value.status_code == 429
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_retried(self):
        """Connection failures are retried up to max_retries."""
        call_count = 0

        def side_effect(request):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"success": True})

        respx.get(URL).mock(side_effect=side_effect)

        config = RetryConfig(max_retries=2, base_delay=0.01, jitter_factor=0.0)
        async with HTTPClient(retry_config=config) as client:
            response = await client.get(URL)

        assert response.status_code == 200
        assert call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_without_retries(self):
        """With retries disabled a single transport failure is raised."""
        route = respx.get(URL).mock(side_effect=httpx.ConnectTimeout("timed out"))

        async with HTTPClient() as client:
            with pytest.raises(FeedProviderError) as exc_info:
                await client.get(URL)

        assert exc_info.value.status_code is None
        assert "1 attempts" in str(exc_info.value)
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_protocol_error_not_retried(self):
        """Transport errors outside the retryable set propagate on first failure."""
        route = respx.get(URL).mock(side_effect=httpx.RemoteProtocolError("bad frame"))

        config = RetryConfig(max_retries=3, base_delay=0.01, jitter_factor=0.0)
        async with HTTPClient(retry_config=config) as client:
            with pytest.raises(httpx.RemoteProtocolError):
                await client.get(URL)

        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        client = HTTPClient()
        with pytest.raises(RuntimeError):
            await client.get(URL)
