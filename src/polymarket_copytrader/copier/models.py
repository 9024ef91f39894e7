"""Data models for copy decisions.

Guardrail evaluations are persisted verbatim on each copied trade record,
so every model here round-trips through plain JSON-compatible dicts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class SizingMode(str, Enum):
    """How the size of a copied BUY is derived from the source trade."""

    CONVICTION = "conviction"
    FIXED_DOLLAR = "fixed_dollar"
    FIXED_SHARES = "fixed_shares"
    PROPORTIONAL = "proportional"
    MATCH = "match"

    @classmethod
    def parse(cls, value: str | None) -> SizingMode:
        """Parse a mode name; unknown names fall back to conviction."""
        if value is None:
            return cls.CONVICTION
        try:
            return cls(value.lower())
        except ValueError:
            logger.warning("Unknown sizing mode %r, falling back to conviction", value)
            return cls.CONVICTION


class CopySide(str, Enum):
    """Which source sides are copied."""

    BUY = "BUY"
    SELL = "SELL"
    BOTH = "BOTH"


class TradeStatus(str, Enum):
    """Lifecycle status of a copied trade record."""

    PENDING = "pending"
    PLACED = "placed"
    FILLED = "filled"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class EffectivePolicy:
    """Guardrail parameters for one wallet: overrides merged over globals."""

    max_cost_per_trade: Decimal
    max_exposure: Decimal
    max_cost_per_run: Decimal
    max_trades_per_run: int
    min_trade_size: Decimal
    sizing_mode: SizingMode
    fixed_dollar_amount: Decimal
    fixed_shares: Decimal
    proportional_ratio: Decimal
    conviction_ratio: Decimal
    copy_side: CopySide
    copy_exits: bool
    min_price: Decimal
    max_price: Decimal
    allow_overdraft: bool = False


@dataclass(frozen=True)
class RuleCheck:
    """One guardrail rule applied to one signal."""

    rule: str
    passed: bool
    actual: str
    threshold: str
    math: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "passed": self.passed,
            "actual": self.actual,
            "threshold": self.threshold,
            "math": self.math,
        }


@dataclass(frozen=True)
class SizingCalculation:
    """How the copied quantity was derived."""

    mode: str
    input_value: Decimal
    calculated_shares: Decimal
    final_cost: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "input_value": str(self.input_value),
            "calculated_shares": str(self.calculated_shares),
            "final_cost": str(self.final_cost),
        }


@dataclass
class GuardrailEvaluation:
    """Ordered trace of rule checks for one signal.

    Every rule that was evaluated is kept, passed or not; the first failure
    determines the skip reason.
    """

    side: str
    rules: list[RuleCheck] = field(default_factory=list)
    outcome: TradeStatus | None = None
    skip_reason: str | None = None
    sizing: SizingCalculation | None = None
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.rules)

    @property
    def first_failure(self) -> RuleCheck | None:
        return next((r for r in self.rules if not r.passed), None)

    def add(self, check: RuleCheck, *, reason: str | None = None) -> RuleCheck:
        """Append a rule check; the first failing check sets the skip reason."""
        self.rules.append(check)
        if not check.passed and self.skip_reason is None:
            self.skip_reason = reason or f"{check.rule} failed"
        return check

    def mark(self, outcome: TradeStatus, reason: str | None = None) -> None:
        self.outcome = outcome
        if reason is not None and self.skip_reason is None:
            self.skip_reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {
            "side": self.side,
            "rules": [r.to_dict() for r in self.rules],
            "outcome": self.outcome.value if self.outcome else None,
            "skip_reason": self.skip_reason,
            "sizing": self.sizing.to_dict() if self.sizing else None,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass
class RunTotals:
    """Running counters carried across one wallet's run.

    ``existing_exposure`` and ``available_balance`` are the wallet's figures
    at the start of the run; ``spend`` and ``trades_copied`` grow as copies
    succeed.
    """

    existing_exposure: Decimal = ZERO
    available_balance: Decimal = ZERO
    trades_copied: int = 0
    spend: Decimal = ZERO

    def record_buy(self, cost: Decimal) -> None:
        self.trades_copied += 1
        self.spend += cost

    def record_exit(self) -> None:
        self.trades_copied += 1
