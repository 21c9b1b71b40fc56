"""
HTTP infrastructure layer for feed provider requests.

Provides:
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async HTTP client with optional transport-level retry
- FeedProviderError: Raised for any non-2xx provider response

Provider status errors are never retried here: a failed page aborts the
source's sync and the next scheduled run picks up from the unchanged
watermark. Retries only cover transport failures (timeouts, refused
connections) and are disabled unless MAX_HTTP_RETRIES is set.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for transport retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 0
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration for a given retry attempt.

        Args:
            attempt: The retry attempt number (0-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        jitter = delay * self.jitter_factor * random.random()
        return delay + jitter

    def is_retryable_exception(self, exc: Exception) -> bool:
        """Timeouts and connection failures are the only retryable errors."""
        return isinstance(
            exc,
            (
                httpx.TimeoutException,
                httpx.ConnectError,
                httpx.ReadError,
            ),
        )


class FeedProviderError(Exception):
    """Raised when a feed provider request fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class HTTPClient:
    """
    Async HTTP client with optional transport retry.

    Example:
        async with HTTPClient(RetryConfig(max_retries=2)) as client:
            response = await client.get(
                "https://api.example.com/data",
                params={"q": "search"},
                headers={"X-API-Key": key},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Request timeout in seconds.
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform GET request.

        Args:
            url: Request URL
            params: Query parameters
            headers: Request headers

        Returns:
            httpx.Response on success (2xx)

        Raises:
            FeedProviderError: On non-2xx status or exhausted transport retries
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                response = await self._client.get(url, params=params, headers=headers)
            except httpx.HTTPError as e:
                if not self.retry_config.is_retryable_exception(e):
                    raise
                if attempt < self.retry_config.max_retries:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        "Retryable transport error",
                        url=url,
                        error_type=type(e).__name__,
                        attempt=attempt + 1,
                        max_attempts=self.retry_config.max_retries + 1,
                        backoff_seconds=round(backoff, 2),
                    )
                    await asyncio.sleep(backoff)
                    continue

                raise FeedProviderError(
                    f"Request failed after {attempt + 1} attempts: {e}",
                ) from e

            if not response.is_success:
                raise FeedProviderError(
                    f"Request failed with status {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            return response

        # Unreachable: the loop always returns or raises
        raise FeedProviderError("Request failed")
