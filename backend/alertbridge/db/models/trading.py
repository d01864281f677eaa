"""
Domain Models - Alerts, Strategies, Orders, Trades, Positions
AlertBridge Trade Automation

SQLAlchemy models for the alert-to-order pipeline.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    String, Integer, Boolean, DateTime, Numeric,
    Text, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from alertbridge.db.base import Base, JSONDocument


class AlertAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class AlertStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    IGNORED = "IGNORED"
    ERROR = "ERROR"


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "STOP_LOSS"


class ProductType(str, Enum):
    INTRADAY = "INTRADAY"
    CNC = "CNC"
    MARGIN = "MARGIN"
    CO = "CO"
    BO = "BO"
    MTF = "MTF"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ORDER_STATUSES


TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.REJECTED}
)

# Orders the reconciler keeps polling
OPEN_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.SUBMITTED,
    OrderStatus.PARTIALLY_FILLED,
)


class User(Base):
    """Account owning alerts, strategies and broker credentials."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Strategy(Base):
    """
    User-owned automation configuration.

    ``config`` holds the stored document; it is parsed into a typed
    ``StrategyConfig`` before the pipeline reads it.
    """
    __tablename__ = "strategies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    config: Mapped[Dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=func.now())

    __table_args__ = (
        Index('idx_strategies_user_active', 'user_id', 'is_active'),
    )


class Alert(Base):
    """Trading signal received from the external screener."""
    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    symbol: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)  # BUY, SELL, HOLD
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 4))
    quantity: Mapped[Optional[int]] = mapped_column(Integer)
    data: Mapped[Dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AlertStatus.PENDING.value)
    status_message: Mapped[Optional[str]] = mapped_column(Text)

    received_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index('idx_alerts_user', 'user_id'),
        Index('idx_alerts_status', 'status'),
        Index('idx_alerts_received', 'received_at'),
    )


class Order(Base):
    """
    One brokerage order request and its tracked lifecycle.

    ``broker_order_id`` is only set once the broker accepted the order
    (status SUBMITTED or later).
    """
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    strategy_id: Mapped[Optional[int]] = mapped_column(ForeignKey("strategies.id", ondelete="SET NULL"))
    alert_id: Mapped[Optional[int]] = mapped_column(ForeignKey("alerts.id", ondelete="SET NULL"))

    # Order Details
    symbol: Mapped[str] = mapped_column(String(50), nullable=False)
    side: Mapped[str] = mapped_column(String(10), nullable=False)  # BUY, SELL
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    order_type: Mapped[str] = mapped_column(String(20), nullable=False)  # MARKET, LIMIT, STOP_LOSS
    product_type: Mapped[str] = mapped_column(String(20), nullable=False, default=ProductType.INTRADAY.value)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 4))
    stop_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 4))

    # Status
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    filled_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 4))
    charges: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False, default=0)

    # Broker Details
    broker_order_id: Mapped[Optional[str]] = mapped_column(String(100))
    broker_response: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSONDocument)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    filled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    trades: Mapped[List["Trade"]] = relationship(back_populates="order")

    __table_args__ = (
        Index('idx_orders_user', 'user_id'),
        Index('idx_orders_status', 'status'),
        Index('idx_orders_broker', 'broker_order_id'),
        Index('idx_orders_created', 'created_at'),
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)


class Trade(Base):
    """Executed fill. Append-only."""
    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id", ondelete="SET NULL"))

    # Trade Details
    symbol: Mapped[str] = mapped_column(String(50), nullable=False)
    side: Mapped[str] = mapped_column(String(10), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    charges: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False, default=0)
    realized_pnl: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False, default=0)

    executed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Relationships
    order: Mapped[Optional["Order"]] = relationship(back_populates="trades")

    __table_args__ = (
        Index('idx_trades_user_executed', 'user_id', 'executed_at'),
        Index('idx_trades_order', 'order_id'),
    )


class Position(Base):
    """
    Net exposure per (user, symbol).

    Signed quantity: negative means net short. A zero quantity row is
    always inactive.
    """
    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    symbol: Mapped[str] = mapped_column(String(50), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_price: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    current_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 4))

    # P&L
    unrealized_pnl: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False, default=0)
    realized_pnl: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False, default=0)

    opened_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'symbol', name='uq_positions_user_symbol'),
        Index('idx_positions_user_active', 'user_id', 'is_active'),
    )
