"""
Services Layer
AlertBridge Trade Automation

Long-lived services around the execution pipeline:
    - ReconciliationScheduler: periodic reconciliation, price refresh, daily summary
    - StrategyService: validated strategy creation and updates
    - ServiceRegistry: wires broker, orchestrator, reconciler and scheduler
"""

from alertbridge.services.scheduler import ReconciliationScheduler
from alertbridge.services.strategy_service import StrategyService, validate_config
from alertbridge.services.registry import ServiceRegistry


__all__ = [
    "ReconciliationScheduler",
    "StrategyService",
    "validate_config",
    "ServiceRegistry",
]
