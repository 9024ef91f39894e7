"""Guardrail evaluation for copy signals.

Static rules (side, price band, size) are checked for every signal in one
pass and all recorded, so the stored trace shows every rule and not only
the first failure. Sizing and running-total rules are appended later by
the orchestrator once the copy quantity and run state are known.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from polymarket_copytrader.copier.models import CopySide, GuardrailEvaluation, RuleCheck

if TYPE_CHECKING:
    from polymarket_copytrader.copier.models import EffectivePolicy, RunTotals
    from polymarket_copytrader.copier.sizing import SizeResult
    from polymarket_copytrader.ingestor.models import CopySignal
    from polymarket_copytrader.storage.repos import PositionDTO

RULE_COPY_EXITS = "Copy Exits Enabled"
RULE_HAS_POSITION = "Has Position to Exit"
RULE_SIDE_FILTER = "Side Filter"
RULE_MIN_PRICE = "Min Price"
RULE_MAX_PRICE = "Max Price"
RULE_MIN_TRADE_SIZE = "Min Trade Size"
RULE_NON_ZERO_SIZE = "Non-zero Size"
RULE_MAX_COST_PER_TRADE = "Max Cost Per Trade"
RULE_MAX_TRADES_PER_RUN = "Max Trades Per Run"
RULE_MAX_RUN_SPEND = "Max Run Spend"
RULE_MAX_EXPOSURE = "Max Exposure"
RULE_AVAILABLE_BALANCE = "Available Balance"


def _usd(value: Decimal) -> str:
    return f"${value:.2f}"


class GuardrailEvaluator:
    """Applies guardrail rules to signals and records every check."""

    def evaluate(self, signal: CopySignal, policy: EffectivePolicy) -> GuardrailEvaluation:
        """Evaluate the static rules for a signal.

        SELL signals are exits and only check whether exits are copied at
        all; the price and size filters apply to BUYs.
        """
        evaluation = GuardrailEvaluation(side=signal.side)

        if signal.side == "SELL":
            evaluation.add(
                RuleCheck(
                    rule=RULE_COPY_EXITS,
                    passed=policy.copy_exits,
                    actual=str(policy.copy_exits).lower(),
                    threshold="true",
                ),
                reason="copy exits disabled",
            )
            return evaluation

        evaluation.add(
            RuleCheck(
                rule=RULE_SIDE_FILTER,
                passed=policy.copy_side is not CopySide.SELL,
                actual=policy.copy_side.value,
                threshold="BUY or BOTH",
            ),
            reason="only copying SELLs",
        )
        evaluation.add(
            RuleCheck(
                rule=RULE_MIN_PRICE,
                passed=signal.price >= policy.min_price,
                actual=str(signal.price),
                threshold=f">= {policy.min_price}",
            ),
            reason=f"price {signal.price} below min {policy.min_price}",
        )
        evaluation.add(
            RuleCheck(
                rule=RULE_MAX_PRICE,
                passed=signal.price <= policy.max_price,
                actual=str(signal.price),
                threshold=f"<= {policy.max_price}",
            ),
            reason=f"price {signal.price} above max {policy.max_price}",
        )
        evaluation.add(
            RuleCheck(
                rule=RULE_MIN_TRADE_SIZE,
                passed=signal.size >= policy.min_trade_size,
                actual=str(signal.size),
                threshold=f">= {policy.min_trade_size}",
            ),
            reason=f"size {signal.size} below min {policy.min_trade_size}",
        )
        return evaluation

    def check_exit(self, evaluation: GuardrailEvaluation, position: PositionDTO | None) -> RuleCheck:
        """Record whether there is an open position to exit."""
        held = position.shares if position is not None else Decimal("0")
        return evaluation.add(
            RuleCheck(
                rule=RULE_HAS_POSITION,
                passed=position is not None,
                actual=f"{held} shares",
                threshold="> 0 shares",
            ),
            reason="no position to exit",
        )

    def check_sizing(
        self,
        evaluation: GuardrailEvaluation,
        policy: EffectivePolicy,
        size: SizeResult,
    ) -> RuleCheck | None:
        """Record the sizing and per-trade rules.

        Returns:
            The first failing check, or None. A failure skips this signal only.
        """
        evaluation.sizing = size.to_calculation()
        checks = [
            evaluation.add(
                RuleCheck(
                    rule=RULE_NON_ZERO_SIZE,
                    passed=size.shares > 0,
                    actual=f"{size.shares} shares",
                    threshold="> 0 shares",
                    math=f"{size.mode.value}({size.input_value}) -> {size.shares} shares",
                ),
                reason="computed size is zero",
            ),
            evaluation.add(
                RuleCheck(
                    rule=RULE_MAX_COST_PER_TRADE,
                    passed=size.cost <= policy.max_cost_per_trade,
                    actual=_usd(size.cost),
                    threshold=f"<= {_usd(policy.max_cost_per_trade)}",
                    math=f"{size.shares} x {size.price} = {_usd(size.cost)}",
                ),
                reason=f"cost {_usd(size.cost)} above max per trade {_usd(policy.max_cost_per_trade)}",
            ),
        ]
        return next((c for c in checks if not c.passed), None)

    def check_capacity(
        self,
        evaluation: GuardrailEvaluation,
        policy: EffectivePolicy,
        totals: RunTotals,
        trade_cost: Decimal,
    ) -> RuleCheck | None:
        """Record the running-total rules for a BUY.

        Returns:
            The first failing check, or None. A failure halts all further
            BUYs for the run.
        """
        projected_spend = totals.spend + trade_cost
        projected_exposure = totals.existing_exposure + projected_spend
        projected_balance = totals.available_balance - projected_spend
        overdraft = " (overdraft allowed)" if policy.allow_overdraft else ""

        checks = [
            evaluation.add(
                RuleCheck(
                    rule=RULE_MAX_TRADES_PER_RUN,
                    passed=totals.trades_copied < policy.max_trades_per_run,
                    actual=str(totals.trades_copied),
                    threshold=f"< {policy.max_trades_per_run}",
                ),
                reason=f"max trades per run reached ({policy.max_trades_per_run})",
            ),
            evaluation.add(
                RuleCheck(
                    rule=RULE_MAX_RUN_SPEND,
                    passed=projected_spend <= policy.max_cost_per_run,
                    actual=_usd(projected_spend),
                    threshold=f"<= {_usd(policy.max_cost_per_run)}",
                    math=f"{_usd(totals.spend)} + {_usd(trade_cost)} = {_usd(projected_spend)}",
                ),
                reason=f"run spend would reach {_usd(projected_spend)} (max {_usd(policy.max_cost_per_run)})",
            ),
            evaluation.add(
                RuleCheck(
                    rule=RULE_MAX_EXPOSURE,
                    passed=policy.allow_overdraft or projected_exposure <= policy.max_exposure,
                    actual=_usd(projected_exposure),
                    threshold=f"<= {_usd(policy.max_exposure)}{overdraft}",
                    math=(
                        f"{_usd(totals.existing_exposure)} + {_usd(totals.spend)} + {_usd(trade_cost)}"
                        f" = {_usd(projected_exposure)}"
                    ),
                ),
                reason=f"exposure would reach {_usd(projected_exposure)} (max {_usd(policy.max_exposure)})",
            ),
            evaluation.add(
                RuleCheck(
                    rule=RULE_AVAILABLE_BALANCE,
                    passed=policy.allow_overdraft or projected_balance >= 0,
                    actual=_usd(projected_balance),
                    threshold=f">= $0.00{overdraft}",
                    math=(
                        f"{_usd(totals.available_balance)} - {_usd(totals.spend)} - {_usd(trade_cost)}"
                        f" = {_usd(projected_balance)}"
                    ),
                ),
                reason=f"insufficient balance ({_usd(projected_balance)} after trade)",
            ),
        ]
        return next((c for c in checks if not c.passed), None)
