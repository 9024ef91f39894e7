"""Data models for the ingestor module.

Raw data API payloads are parsed into these frozen dataclasses at the
boundary; anything that does not parse is rejected before it can reach
guardrail or ledger code.
"""

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

Side = Literal["BUY", "SELL"]

# Year 10000 starts here; datetime cannot represent it.
MAX_UNIX_SECONDS = 253402300800


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _require_decimal(data: dict[str, Any], *keys: str) -> Decimal:
    raw = _first(data, *keys)
    if raw is None:
        raise ValueError(f"missing {keys[0]}")
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"invalid {keys[0]}: {raw!r}") from e
    if not value.is_finite():
        raise ValueError(f"invalid {keys[0]}: {raw!r}")
    return value


def _optional_decimal(data: dict[str, Any], *keys: str) -> Decimal | None:
    if _first(data, *keys) is None:
        return None
    return _require_decimal(data, *keys)


def _optional_str(data: dict[str, Any], *keys: str) -> str | None:
    raw = _first(data, *keys)
    return str(raw) if raw is not None else None


def parse_unix_seconds(raw: Any) -> int:
    """Parse a unix timestamp, accepting milliseconds as well as seconds."""
    if raw is None:
        raise ValueError("missing timestamp")
    try:
        ts = float(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid timestamp: {raw!r}") from e
    if not math.isfinite(ts) or ts <= 0:
        raise ValueError(f"invalid timestamp: {raw!r}")
    if ts > 1e12:
        ts /= 1000.0
    if ts >= MAX_UNIX_SECONDS:
        raise ValueError(f"timestamp out of range: {raw!r}")
    return int(ts)


@dataclass(frozen=True)
class CopySignal:
    """A single source-wallet trade observed on the data API."""

    source_wallet: str
    side: Side
    token_id: str
    condition_id: str
    price: Decimal
    size: Decimal
    transaction_hash: str
    timestamp: int
    market_title: str | None = None
    market_slug: str | None = None
    event_slug: str | None = None
    outcome: str | None = None

    @property
    def notional(self) -> Decimal:
        """Source trade value in dollars (size x price)."""
        return self.size * self.price

    @property
    def occurred_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=UTC)

    @classmethod
    def from_api(cls, data: dict[str, Any], *, source_wallet: str | None = None) -> "CopySignal":
        """Create a CopySignal from a data API trade record.

        Raises:
            ValueError: If a required field is missing or malformed.
        """
        side_raw = str(data.get("side") or "").upper()
        if side_raw not in ("BUY", "SELL"):
            raise ValueError(f"invalid side: {data.get('side')!r}")

        token_id = _optional_str(data, "asset", "asset_id", "tokenId", "token_id")
        if not token_id:
            raise ValueError("missing asset")
        condition_id = _optional_str(data, "conditionId", "condition_id", "market")
        if not condition_id:
            raise ValueError("missing conditionId")
        tx_hash = _optional_str(data, "transactionHash", "transaction_hash", "id")
        if not tx_hash:
            raise ValueError("missing transactionHash")

        price = _require_decimal(data, "price")
        if not (Decimal("0") < price <= Decimal("1")):
            raise ValueError(f"price out of range: {price}")
        size = _require_decimal(data, "size")
        if size <= 0:
            raise ValueError(f"size must be positive: {size}")

        wallet = source_wallet or _optional_str(data, "proxyWallet", "proxy_wallet", "user")
        if not wallet:
            raise ValueError("missing proxyWallet")

        side: Side = "BUY" if side_raw == "BUY" else "SELL"
        return cls(
            source_wallet=wallet.lower(),
            side=side,
            token_id=token_id,
            condition_id=condition_id,
            price=price,
            size=size,
            transaction_hash=tx_hash,
            timestamp=parse_unix_seconds(data.get("timestamp")),
            market_title=_optional_str(data, "title"),
            market_slug=_optional_str(data, "slug"),
            event_slug=_optional_str(data, "eventSlug", "event_slug"),
            outcome=_optional_str(data, "outcome"),
        )


@dataclass(frozen=True)
class VenuePosition:
    """A position held by an account according to the venue."""

    token_id: str
    condition_id: str | None
    size: Decimal
    avg_price: Decimal | None = None
    current_price: Decimal | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "VenuePosition":
        """Create a VenuePosition from a data API positions record.

        Raises:
            ValueError: If the token id is missing or a numeric field is malformed.
        """
        token_id = _optional_str(data, "asset", "asset_id", "tokenId", "token_id")
        if not token_id:
            raise ValueError("missing asset")
        return cls(
            token_id=token_id,
            condition_id=_optional_str(data, "conditionId", "condition_id"),
            size=_require_decimal(data, "size"),
            avg_price=_optional_decimal(data, "avgPrice", "avg_price"),
            current_price=_optional_decimal(data, "curPrice", "cur_price"),
        )
