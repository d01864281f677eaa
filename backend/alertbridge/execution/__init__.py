"""
Execution Module

Components turning alerts into broker orders and keeping them in sync:
- Risk Evaluator (symbol, hours and risk gating)
- Order Builder (alert + strategy -> order parameters)
- Execution Orchestrator (alert pipeline)
- Order Reconciler (broker state -> orders, trades, positions)
- Credential Store
"""

from alertbridge.execution.risk import RiskDecision, RiskEvaluator, TradingState
from alertbridge.execution.order_builder import build_order_params, resolve_quantity
from alertbridge.execution.credentials import CredentialStore
from alertbridge.execution.alert_status import AlertStatusUpdater
from alertbridge.execution.orchestrator import (
    AlertResult,
    ExecutionOrchestrator,
    ExecutionResult,
    StrategyOutcome,
    StrategyResult,
)
from alertbridge.execution.reconciler import OrderReconciler, ReconcileSummary, merge_fill


__all__ = [
    "RiskDecision",
    "RiskEvaluator",
    "TradingState",
    "build_order_params",
    "resolve_quantity",
    "CredentialStore",
    "AlertStatusUpdater",
    "AlertResult",
    "ExecutionOrchestrator",
    "ExecutionResult",
    "StrategyOutcome",
    "StrategyResult",
    "OrderReconciler",
    "ReconcileSummary",
    "merge_fill",
]
