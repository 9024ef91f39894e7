"""Tests for the data API client."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import httpx
import pytest

from polymarket_copytrader.ingestor.data_api import (
    DataApiClient,
    DataApiError,
    DataApiTransientError,
    RetryError,
    with_async_retry,
)

WALLET = "0x1234567890abcdef1234567890abcdef12345678"
NOW = datetime(2025, 10, 9, 12, 0, tzinfo=UTC)


def _raw_trade(n: int, *, age_seconds: int = 60) -> dict[str, Any]:
    return {
        "proxyWallet": WALLET,
        "side": "BUY",
        "asset": f"token-{n}",
        "conditionId": f"0xcondition{n}",
        "size": 10,
        "price": 0.5,
        "timestamp": int(NOW.timestamp()) - age_seconds,
        "transactionHash": f"0xtx{n}",
    }


def _client(handler: Callable[[httpx.Request], httpx.Response], *, max_retries: int = 2) -> DataApiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://data-api.test")
    return DataApiClient(client=http, max_retries=max_retries, retry_base_delay=0, requests_per_second=1000)


# ============================================================================
# Retry decorator
# ============================================================================


class TestWithAsyncRetry:
    """Tests for the retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        calls = {"n": 0}

        @with_async_retry(max_retries=2, base_delay=0)
        async def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 3:
                raise DataApiTransientError("busy", status_code=503)
            return "ok"

        assert await flaky() == "ok"
        assert calls["n"] == 3

    @pytest.mark.asyncio
    async def test_exhaustion_raises_retry_error(self) -> None:
        @with_async_retry(max_retries=1, base_delay=0)
        async def always_down() -> None:
            raise DataApiTransientError("down")

        with pytest.raises(RetryError) as exc_info:
            await always_down()
        assert isinstance(exc_info.value.last_exception, DataApiTransientError)


# ============================================================================
# Trades
# ============================================================================


class TestFetchRecentSignals:
    """Tests for DataApiClient.fetch_recent_signals."""

    @pytest.mark.asyncio
    async def test_pages_until_short_page(self) -> None:
        requests: list[httpx.Request] = []
        trades = [_raw_trade(n) for n in range(5)]

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            return httpx.Response(200, json=trades[offset : offset + limit])

        async with _client(handler) as client:
            signals = await client.fetch_recent_signals(
                WALLET.upper().replace("0X", "0x"), max_age=timedelta(hours=1), page_size=2, now=NOW
            )

        assert [s.transaction_hash for s in signals] == [f"0xtx{n}" for n in range(5)]
        assert [r.url.params["offset"] for r in requests] == ["0", "2", "4"]
        assert requests[0].url.path == "/trades"
        assert requests[0].url.params["user"] == WALLET

    @pytest.mark.asyncio
    async def test_stops_at_age_cutoff(self) -> None:
        trades = [_raw_trade(0), _raw_trade(1, age_seconds=7200), _raw_trade(2)]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=trades)

        async with _client(handler) as client:
            signals = await client.fetch_recent_signals(WALLET, max_age=timedelta(hours=1), now=NOW)

        assert [s.transaction_hash for s in signals] == ["0xtx0"]

    @pytest.mark.asyncio
    async def test_respects_max_trades(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[_raw_trade(n) for n in range(10)])

        async with _client(handler) as client:
            signals = await client.fetch_recent_signals(
                WALLET, max_age=timedelta(hours=1), max_trades=3, page_size=10, now=NOW
            )

        assert len(signals) == 3

    @pytest.mark.asyncio
    async def test_drops_malformed_records(self) -> None:
        bad = _raw_trade(1)
        bad["price"] = "not-a-price"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[_raw_trade(0), bad, "garbage", _raw_trade(2)])

        async with _client(handler) as client:
            signals = await client.fetch_recent_signals(WALLET, max_age=timedelta(hours=1), now=NOW)

        assert [s.transaction_hash for s in signals] == ["0xtx0", "0xtx2"]

    @pytest.mark.asyncio
    async def test_drops_non_finite_timestamp(self) -> None:
        body = (
            b'[{"proxyWallet": "' + WALLET.encode() + b'", "side": "BUY", "asset": "token-9",'
            b' "conditionId": "0xc9", "size": 10, "price": 0.5, "timestamp": 1e400,'
            b' "transactionHash": "0xtx9"}]'
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body, headers={"content-type": "application/json"})

        async with _client(handler) as client:
            signals = await client.fetch_recent_signals(WALLET, max_age=timedelta(hours=1), now=NOW)

        assert signals == []

    @pytest.mark.asyncio
    async def test_retries_server_errors(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(502)
            return httpx.Response(200, json={"data": [_raw_trade(0)]})

        async with _client(handler) as client:
            signals = await client.fetch_recent_signals(WALLET, max_age=timedelta(hours=1), now=NOW)

        assert calls["n"] == 2
        assert len(signals) == 1

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(400, text="bad user")

        async with _client(handler) as client:
            with pytest.raises(DataApiError) as exc_info:
                await client.fetch_recent_signals(WALLET, max_age=timedelta(hours=1), now=NOW)

        assert calls["n"] == 1
        assert exc_info.value.status_code == 400
        assert not isinstance(exc_info.value, RetryError)

    @pytest.mark.asyncio
    async def test_rate_limited_until_exhausted(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(429)

        async with _client(handler, max_retries=2) as client:
            with pytest.raises(RetryError):
                await client.fetch_recent_signals(WALLET, max_age=timedelta(hours=1), now=NOW)

        assert calls["n"] == 3

    @pytest.mark.asyncio
    async def test_transport_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler, max_retries=0) as client:
            with pytest.raises(RetryError) as exc_info:
                await client.fetch_recent_signals(WALLET, max_age=timedelta(hours=1), now=NOW)

        assert isinstance(exc_info.value.last_exception, DataApiTransientError)

    @pytest.mark.asyncio
    async def test_unexpected_shape(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": "nope"})

        async with _client(handler) as client:
            with pytest.raises(DataApiError, match="Unexpected response shape"):
                await client.fetch_recent_signals(WALLET, max_age=timedelta(hours=1), now=NOW)


# ============================================================================
# Positions
# ============================================================================


class TestGetPositions:
    """Tests for DataApiClient.get_positions."""

    @pytest.mark.asyncio
    async def test_parses_positions(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/positions"
            return httpx.Response(
                200,
                json=[
                    {"asset": "token-1", "conditionId": "0xc1", "size": 10, "avgPrice": 0.3},
                    {"asset": "token-2", "size": "0"},
                ],
            )

        async with _client(handler) as client:
            positions = await client.get_positions(WALLET)

        assert [p.token_id for p in positions] == ["token-1", "token-2"]
        assert positions[0].size == Decimal("10")

    @pytest.mark.asyncio
    async def test_malformed_position_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"asset": "token-1"}])

        async with _client(handler) as client:
            with pytest.raises(DataApiError, match="Malformed position"):
                await client.get_positions(WALLET)

    @pytest.mark.asyncio
    async def test_malformed_price_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"asset": "token-1", "size": 5, "avgPrice": "n/a"}])

        async with _client(handler) as client:
            with pytest.raises(DataApiError, match="invalid avgPrice"):
                await client.get_positions(WALLET)
