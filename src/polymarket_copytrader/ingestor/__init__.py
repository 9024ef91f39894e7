"""Data ingestion layer - Source-wallet trade feed and venue positions."""

from polymarket_copytrader.ingestor.data_api import (
    DataApiClient,
    DataApiError,
    DataApiTransientError,
    RetryError,
)
from polymarket_copytrader.ingestor.models import (
    CopySignal,
    VenuePosition,
)

__all__ = [
    "CopySignal",
    "DataApiClient",
    "DataApiError",
    "DataApiTransientError",
    "RetryError",
    "VenuePosition",
]
