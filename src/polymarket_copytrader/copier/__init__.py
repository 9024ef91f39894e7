"""Copier - guardrails, sizing and the copy orchestrator."""

from polymarket_copytrader.copier.guardrails import GuardrailEvaluator
from polymarket_copytrader.copier.models import (
    CopySide,
    EffectivePolicy,
    GuardrailEvaluation,
    RuleCheck,
    RunTotals,
    SizingCalculation,
    SizingMode,
    TradeStatus,
)
from polymarket_copytrader.copier.orchestrator import CopyOrchestrator, RunResult, TradeFeed
from polymarket_copytrader.copier.policy import resolve_policy
from polymarket_copytrader.copier.reconciliation import ReconciliationEngine
from polymarket_copytrader.copier.sizing import PositionSizer, SizeResult

__all__ = [
    "CopyOrchestrator",
    "CopySide",
    "EffectivePolicy",
    "GuardrailEvaluation",
    "GuardrailEvaluator",
    "PositionSizer",
    "ReconciliationEngine",
    "RuleCheck",
    "RunResult",
    "RunTotals",
    "SizeResult",
    "SizingCalculation",
    "SizingMode",
    "TradeFeed",
    "TradeStatus",
    "resolve_policy",
]
