"""Async client for the Polymarket data API with rate limiting and retry logic.

Source-wallet trades and account positions are read from the public data
API. Transient failures (network errors, 429 and 5xx) are retried with
exponential backoff; other client errors surface immediately.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from functools import wraps
from typing import Any, ParamSpec, TypeVar

import httpx

from polymarket_copytrader.ingestor.models import CopySignal, VenuePosition

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_BASE_URL = "https://data-api.polymarket.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
MAX_REQUESTS_PER_SECOND = 5

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_TRADES = 100


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(self, max_requests_per_second: float = MAX_REQUESTS_PER_SECOND) -> None:
        """Initialize the rate limiter.

        Args:
            max_requests_per_second: Maximum requests allowed per second.
        """
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


class DataApiError(Exception):
    """Base exception for data API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DataApiTransientError(DataApiError):
    """Raised for retryable/transient errors (e.g., 429/5xx, network issues)."""


class RetryError(DataApiError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


def with_async_retry(
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    retry_on: tuple[type[Exception], ...] = (DataApiTransientError,),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for adding retry logic with exponential backoff to coroutines.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds (doubles with each retry).
        retry_on: Tuple of exception types to retry on.

    Returns:
        Decorated coroutine function with retry logic.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            last_exception: Exception | None = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e
                    if attempt == max_retries:
                        break

                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                        attempt + 1,
                        max_retries + 1,
                        str(e),
                        delay,
                    )
                    await asyncio.sleep(delay)

            raise RetryError(
                f"All {max_retries + 1} attempts failed for {func.__name__}",
                last_exception=last_exception,
            )

        return wrapper

    return decorator


class DataApiClient:
    """Async client for trades and positions on the Polymarket data API.

    Example:
        ```python
        async with DataApiClient() as client:
            signals = await client.fetch_recent_signals(
                "0xabc...", max_age=timedelta(minutes=60)
            )
        ```
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        requests_per_second: float = MAX_REQUESTS_PER_SECOND,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the data API client.

        Args:
            base_url: Data API root URL.
            timeout_seconds: Per-request timeout.
            max_retries: Maximum retry attempts for transient failures.
            retry_base_delay: Base backoff delay in seconds.
            requests_per_second: Rate limit for API requests.
            client: Optional pre-built httpx client (its base_url is used as-is).
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0)),
            headers={"Accept": "application/json"},
        )
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._rate_limiter = RateLimiter(requests_per_second)

        logger.info(
            "Initialized DataApiClient with base_url=%s, rate_limit=%.1f req/s",
            self._client.base_url,
            requests_per_second,
        )

    async def __aenter__(self) -> DataApiClient:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_once(self, path: str, params: dict[str, Any]) -> Any:
        await self._rate_limiter.acquire()
        try:
            response = await self._client.get(path, params=params)
        except httpx.TransportError as e:
            raise DataApiTransientError(f"GET {path} failed: {e!r}") from e

        status = response.status_code
        if status in RETRY_STATUS_CODES:
            raise DataApiTransientError(f"GET {path} returned HTTP {status}", status_code=status)
        if status >= 400:
            raise DataApiError(f"GET {path} returned HTTP {status}: {response.text[:200]}", status_code=status)
        try:
            return response.json()
        except ValueError as e:
            raise DataApiError(f"GET {path} returned invalid JSON") from e

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        retrying = with_async_retry(
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
            retry_on=(DataApiTransientError,),
        )(self._get_once)
        return await retrying(path, params)

    @staticmethod
    def _as_records(payload: Any, path: str) -> list[dict[str, Any]]:
        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            payload = payload["data"]
        if not isinstance(payload, list):
            raise DataApiError(f"Unexpected response shape from {path}")
        return [r for r in payload if isinstance(r, dict)]

    async def get_trades_page(self, wallet_address: str, *, limit: int, offset: int) -> list[dict[str, Any]]:
        """Fetch one page of raw trades for a wallet, most recent first."""
        payload = await self._get_json(
            "/trades",
            {"user": wallet_address.lower(), "limit": limit, "offset": offset},
        )
        return self._as_records(payload, "/trades")

    async def fetch_recent_signals(
        self,
        wallet_address: str,
        *,
        max_age: timedelta,
        max_trades: int = DEFAULT_MAX_TRADES,
        page_size: int = DEFAULT_PAGE_SIZE,
        now: datetime | None = None,
    ) -> list[CopySignal]:
        """Fetch a wallet's recent trades as validated signals.

        Pages through the feed until a trade older than ``max_age`` is seen,
        a short page is returned, or ``max_trades`` signals were collected.
        Malformed records are logged and dropped.

        Returns:
            Signals ordered most recent first.

        Raises:
            RetryError: If transient failures exhausted the retry budget.
            DataApiError: On non-retryable API errors.
        """
        wallet = wallet_address.lower()
        cutoff = int((now or datetime.now(UTC)).timestamp() - max_age.total_seconds())

        signals: list[CopySignal] = []
        rejected = 0
        offset = 0
        while len(signals) < max_trades:
            page = await self.get_trades_page(wallet, limit=page_size, offset=offset)

            reached_cutoff = False
            for raw in page:
                try:
                    signal = CopySignal.from_api(raw, source_wallet=wallet)
                except ValueError as e:
                    rejected += 1
                    logger.debug("Dropping malformed trade for %s: %s", wallet, e)
                    continue
                if signal.timestamp < cutoff:
                    reached_cutoff = True
                    break
                signals.append(signal)
                if len(signals) >= max_trades:
                    break

            if reached_cutoff or len(page) < page_size:
                break
            offset += page_size

        if rejected:
            logger.warning("Dropped %d malformed trade record(s) for %s", rejected, wallet)
        logger.debug("Fetched %d recent signal(s) for %s", len(signals), wallet)
        return signals

    async def get_positions(self, wallet_address: str) -> list[VenuePosition]:
        """Fetch the venue's current position list for an account."""
        payload = await self._get_json("/positions", {"user": wallet_address.lower(), "sizeThreshold": 0})
        positions: list[VenuePosition] = []
        for raw in self._as_records(payload, "/positions"):
            try:
                positions.append(VenuePosition.from_api(raw))
            except ValueError as e:
                # A record we cannot read must not look like an absent position.
                raise DataApiError(f"Malformed position record: {e}") from e
        return positions
