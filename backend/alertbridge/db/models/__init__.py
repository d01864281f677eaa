"""
Database Models Package
AlertBridge Trade Automation

Exports all SQLAlchemy models for the application.
"""

from alertbridge.db.base import Base

from alertbridge.db.models.trading import (
    AlertAction,
    AlertStatus,
    OrderSide,
    OrderType,
    ProductType,
    OrderStatus,
    TERMINAL_ORDER_STATUSES,
    OPEN_ORDER_STATUSES,
    User,
    Strategy,
    Alert,
    Order,
    Trade,
    Position,
)

from alertbridge.db.models.settings import UserSettings


__all__ = [
    # Base
    "Base",

    # Enums
    "AlertAction",
    "AlertStatus",
    "OrderSide",
    "OrderType",
    "ProductType",
    "OrderStatus",
    "TERMINAL_ORDER_STATUSES",
    "OPEN_ORDER_STATUSES",

    # Models
    "User",
    "UserSettings",
    "Strategy",
    "Alert",
    "Order",
    "Trade",
    "Position",
]
