"""Venue adapter around py-clob-client.

Order placement returns an explicit OrderResult instead of raising, so the
orchestrator can record a failed submission without unwinding the run.
Position queries go through the data API, which reports what the venue
holds for our funder account.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Literal, Protocol

from py_clob_client.client import ClobClient as BaseClobClient
from py_clob_client.clob_types import ApiCreds, OrderArgs, OrderType
from py_clob_client.exceptions import PolyApiException
from py_clob_client.order_builder.constants import BUY, SELL

from polymarket_copytrader.ingestor.data_api import RateLimiter

if TYPE_CHECKING:
    from polymarket_copytrader.config import PolymarketSettings
    from polymarket_copytrader.ingestor.data_api import DataApiClient
    from polymarket_copytrader.ingestor.models import VenuePosition

logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://clob.polymarket.com"
MAX_ORDERS_PER_SECOND = 2
ERROR_MAX_LENGTH = 200


class VenueError(ValueError):
    """Raised when the venue adapter cannot be built or used."""


@dataclass(frozen=True)
class OrderResult:
    """Outcome of a single order submission."""

    success: bool
    order_id: str | None = None
    error: str | None = None

    @classmethod
    def placed(cls, order_id: str) -> OrderResult:
        return cls(success=True, order_id=order_id)

    @classmethod
    def failed(cls, error: str) -> OrderResult:
        return cls(success=False, error=(error or "unknown error")[:ERROR_MAX_LENGTH])


class PositionSource(Protocol):
    """Anything that can list the venue's positions for an account."""

    async def get_positions(self, wallet_address: str) -> list[VenuePosition]: ...


class OrderVenue(PositionSource, Protocol):
    """Order submission plus position queries."""

    async def submit_order(
        self,
        *,
        side: Literal["BUY", "SELL"],
        token_id: str,
        price: Decimal,
        size: Decimal,
    ) -> OrderResult: ...


def parse_order_response(response: Any) -> OrderResult:
    """Interpret a CLOB post-order response.

    Any response carrying an ``error`` field, or an explicit ``success: false``,
    is a failed submission.
    """
    if not isinstance(response, dict):
        return OrderResult.failed(f"unexpected order response: {response!r}")
    if response.get("error"):
        return OrderResult.failed(str(response["error"]))
    if response.get("success") is False:
        return OrderResult.failed(str(response.get("errorMsg") or "order rejected"))

    order_id = response.get("orderID") or response.get("order_id") or response.get("id")
    if not order_id:
        return OrderResult.failed(f"no order id in response: {response!r}")
    return OrderResult.placed(str(order_id))


class ClobVenueAdapter:
    """Signs and posts GTC limit orders through py-clob-client.

    The underlying client is synchronous, so calls run in a worker thread.
    Order submission is never retried: a retry after an ambiguous failure
    could double the position.
    """

    def __init__(
        self,
        *,
        data_api: DataApiClient,
        private_key: str,
        api_creds: ApiCreds,
        host: str = DEFAULT_HOST,
        chain_id: int = 137,
        signature_type: int | None = None,
        funder: str | None = None,
        orders_per_second: float = MAX_ORDERS_PER_SECOND,
        client: Any | None = None,
    ) -> None:
        """Initialize the venue adapter.

        Args:
            data_api: Data API client used for position queries.
            private_key: Key used to sign orders.
            api_creds: CLOB API credentials (key/secret/passphrase).
            host: CLOB API endpoint URL.
            chain_id: Chain ID for signing (Polygon=137).
            signature_type: Optional signature type override.
            funder: Optional funder (proxy wallet) address.
            orders_per_second: Rate limit for order submissions.
            client: Optional pre-built CLOB client.
        """
        self._data_api = data_api
        self._rate_limiter = RateLimiter(orders_per_second)
        self._client = client or BaseClobClient(
            host,
            chain_id=chain_id,
            key=private_key,
            creds=api_creds,
            signature_type=signature_type,
            funder=funder,
        )
        logger.info("Initialized ClobVenueAdapter with host=%s", host)

    @classmethod
    def from_settings(cls, settings: PolymarketSettings, data_api: DataApiClient) -> ClobVenueAdapter:
        """Build an adapter from settings.

        Raises:
            VenueError: If order credentials are not configured.
        """
        if not (
            settings.clob_private_key
            and settings.clob_api_key
            and settings.clob_api_secret
            and settings.clob_api_passphrase
        ):
            raise VenueError("CLOB private key and L2 API credentials are required to submit orders")
        creds = ApiCreds(
            api_key=settings.clob_api_key.get_secret_value(),
            api_secret=settings.clob_api_secret.get_secret_value(),
            api_passphrase=settings.clob_api_passphrase.get_secret_value(),
        )
        return cls(
            data_api=data_api,
            private_key=settings.clob_private_key.get_secret_value(),
            api_creds=creds,
            host=settings.clob_host,
            chain_id=settings.clob_chain_id,
            signature_type=settings.clob_signature_type,
            funder=settings.clob_funder,
        )

    def _create_and_post(self, side: str, token_id: str, price: Decimal, size: Decimal) -> Any:
        order_args = OrderArgs(
            token_id=token_id,
            price=float(price),
            size=float(size),
            side=BUY if side == "BUY" else SELL,
        )
        signed_order = self._client.create_order(order_args)
        return self._client.post_order(signed_order, OrderType.GTC)

    async def submit_order(
        self,
        *,
        side: Literal["BUY", "SELL"],
        token_id: str,
        price: Decimal,
        size: Decimal,
    ) -> OrderResult:
        """Create, sign and post a GTC limit order."""
        await self._rate_limiter.acquire()
        try:
            response = await asyncio.to_thread(self._create_and_post, side, token_id, price, size)
        except PolyApiException as e:
            logger.warning("Order rejected by venue (%s %s @ %s): %s", side, size, price, e)
            return OrderResult.failed(str(getattr(e, "error_msg", None) or e))
        except Exception as e:
            logger.exception("Order submission failed (%s %s @ %s)", side, size, price)
            return OrderResult.failed(f"{type(e).__name__}: {e}")

        result = parse_order_response(response)
        if result.success:
            logger.info("Order placed: %s %s %s @ %s (order_id=%s)", side, size, token_id, price, result.order_id)
        else:
            logger.warning("Order failed: %s %s %s @ %s: %s", side, size, token_id, price, result.error)
        return result

    async def get_positions(self, wallet_address: str) -> list[VenuePosition]:
        return await self._data_api.get_positions(wallet_address)
