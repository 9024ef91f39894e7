"""Position sizing for copied trades.

Sizes are whole shares; a fractional quantity is never requested.

Conviction sizing scales with the dollar value of the source trade:

    notional < $1          -> 0 shares (dust, skipped)
    $1 <= notional <= $5   -> match the source notional
    notional > $5          -> min(max($1, ratio * notional), max cost per trade)

and shares = floor(dollars / price).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import TYPE_CHECKING

from polymarket_copytrader.copier.models import SizingCalculation, SizingMode

if TYPE_CHECKING:
    from polymarket_copytrader.copier.models import EffectivePolicy
    from polymarket_copytrader.ingestor.models import CopySignal
    from polymarket_copytrader.storage.repos import PositionDTO

ZERO = Decimal("0")
ONE = Decimal("1")

DUST_NOTIONAL = Decimal("1")
MATCH_NOTIONAL_CEILING = Decimal("5")
MIN_CONVICTION_DOLLARS = Decimal("1")


def floor_shares(value: Decimal) -> Decimal:
    if value <= 0:
        return ZERO
    return value.quantize(ONE, rounding=ROUND_FLOOR)


@dataclass(frozen=True)
class SizeResult:
    """Shares to buy and their cost at the source price."""

    shares: Decimal
    price: Decimal
    cost: Decimal
    mode: SizingMode
    input_value: Decimal

    def to_calculation(self) -> SizingCalculation:
        return SizingCalculation(
            mode=self.mode.value,
            input_value=self.input_value,
            calculated_shares=self.shares,
            final_cost=self.cost,
        )


class PositionSizer:
    """Derives copy quantities from source signals."""

    def conviction_dollars(self, notional: Decimal, policy: EffectivePolicy) -> Decimal:
        if notional < DUST_NOTIONAL:
            return ZERO
        if notional <= MATCH_NOTIONAL_CEILING:
            return notional
        scaled = max(MIN_CONVICTION_DOLLARS, policy.conviction_ratio * notional)
        return min(scaled, policy.max_cost_per_trade)

    def size(self, signal: CopySignal, policy: EffectivePolicy) -> SizeResult:
        """Compute the BUY size for a source signal under a policy."""
        mode = policy.sizing_mode
        price = signal.price

        if mode is SizingMode.FIXED_DOLLAR:
            input_value = policy.fixed_dollar_amount
            shares = floor_shares(policy.fixed_dollar_amount / price)
        elif mode is SizingMode.FIXED_SHARES:
            input_value = policy.fixed_shares
            shares = floor_shares(policy.fixed_shares)
        elif mode is SizingMode.PROPORTIONAL:
            input_value = policy.proportional_ratio
            shares = max(ONE, floor_shares(signal.size * policy.proportional_ratio))
        elif mode is SizingMode.MATCH:
            input_value = signal.size
            shares = floor_shares(signal.size)
        else:
            input_value = signal.notional
            shares = floor_shares(self.conviction_dollars(signal.notional, policy) / price)

        return SizeResult(shares=shares, price=price, cost=shares * price, mode=mode, input_value=input_value)

    def size_exit(self, position: PositionDTO) -> Decimal:
        """Exits always liquidate the full position."""
        return position.shares
