"""
Repositories Package
AlertBridge Trade Automation

Data access layer for database operations.
"""

from alertbridge.db.repositories.trading import (
    UserRepository,
    SettingsRepository,
    StrategyRepository,
    AlertRepository,
    OrderRepository,
    TradeRepository,
    PositionRepository,
)


__all__ = [
    "UserRepository",
    "SettingsRepository",
    "StrategyRepository",
    "AlertRepository",
    "OrderRepository",
    "TradeRepository",
    "PositionRepository",
]
