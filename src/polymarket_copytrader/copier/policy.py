"""Per-wallet guardrail policy resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from polymarket_copytrader.copier.models import CopySide, EffectivePolicy, SizingMode

if TYPE_CHECKING:
    from polymarket_copytrader.config import GuardrailSettings
    from polymarket_copytrader.storage.repos import TrackedWalletDTO

T = TypeVar("T")


def _override(value: T | None, default: T) -> T:
    return default if value is None else value


def resolve_policy(wallet: TrackedWalletDTO, defaults: GuardrailSettings) -> EffectivePolicy:
    """Merge a wallet's overrides over the global defaults.

    Each override that is set wins; everything else comes from ``defaults``.

    Args:
        wallet: The tracked wallet, with nullable override fields.
        defaults: Global guardrail settings.

    Returns:
        A fully populated policy.
    """
    return EffectivePolicy(
        max_cost_per_trade=_override(wallet.max_cost_per_trade, defaults.max_cost_per_trade),
        max_exposure=_override(wallet.max_exposure, defaults.max_exposure_per_wallet),
        max_cost_per_run=defaults.max_cost_per_run,
        max_trades_per_run=defaults.max_trades_per_run,
        min_trade_size=defaults.min_trade_size,
        sizing_mode=SizingMode.parse(_override(wallet.sizing_mode, defaults.sizing_mode)),
        fixed_dollar_amount=_override(wallet.fixed_dollar_amount, defaults.fixed_dollar_amount),
        fixed_shares=defaults.fixed_shares,
        proportional_ratio=defaults.proportional_ratio,
        conviction_ratio=_override(wallet.conviction_ratio, defaults.conviction_ratio),
        copy_side=CopySide(defaults.copy_side),
        copy_exits=defaults.copy_exits,
        min_price=_override(wallet.min_price, defaults.min_price),
        max_price=_override(wallet.max_price, defaults.max_price),
        allow_overdraft=bool(wallet.allow_overdraft),
    )
