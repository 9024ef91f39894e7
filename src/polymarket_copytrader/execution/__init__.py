"""Order execution - venue adapter and order results."""

from polymarket_copytrader.execution.venue import (
    ClobVenueAdapter,
    OrderResult,
    OrderVenue,
    PositionSource,
    VenueError,
    parse_order_response,
)

__all__ = [
    "ClobVenueAdapter",
    "OrderResult",
    "OrderVenue",
    "PositionSource",
    "VenueError",
    "parse_order_response",
]
