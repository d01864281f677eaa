"""
Trading Repository
AlertBridge Trade Automation

Data access layer for users, settings, strategies, alerts, orders, trades
and positions.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alertbridge.core.config import settings
from alertbridge.core.exceptions import PersistenceError
from alertbridge.db.repository import BaseRepository
from alertbridge.db.models import (
    OPEN_ORDER_STATUSES,
    Alert,
    Order,
    Position,
    Strategy,
    Trade,
    User,
    UserSettings,
)


class UserRepository(BaseRepository[User]):
    """Repository for users."""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def get_active_users(self) -> List[User]:
        result = await self.session.execute(
            select(self.model).where(self.model.is_active.is_(True)).order_by(self.model.id)
        )
        return list(result.scalars().all())


class SettingsRepository(BaseRepository[UserSettings]):
    """Repository for per-user settings."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserSettings, session)

    async def get_by_user(self, user_id: int) -> Optional[UserSettings]:
        result = await self.session.execute(
            select(self.model).where(self.model.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: int) -> UserSettings:
        existing = await self.get_by_user(user_id)
        if existing is not None:
            return existing
        return await self.create(
            user_id=user_id,
            auto_execute_enabled=settings.trading.auto_execute_default,
        )


class StrategyRepository(BaseRepository[Strategy]):
    """Repository for strategies."""

    def __init__(self, session: AsyncSession):
        super().__init__(Strategy, session)

    async def get_active_for_user(self, user_id: int) -> List[Strategy]:
        """Active strategies owned by the user, in creation order."""
        result = await self.session.execute(
            select(self.model)
            .where(self.model.user_id == user_id, self.model.is_active.is_(True))
            .order_by(self.model.id)
        )
        return list(result.scalars().all())


class AlertRepository(BaseRepository[Alert]):
    """Repository for alerts."""

    def __init__(self, session: AsyncSession):
        super().__init__(Alert, session)

    async def set_status(
        self,
        alert_id: int,
        status: str,
        message: Optional[str],
        processed_at: datetime,
    ) -> bool:
        """Write a terminal status. Returns False when the alert does not exist."""
        try:
            result = await self.session.execute(
                update(self.model)
                .where(self.model.id == alert_id)
                .values(status=status, status_message=message, processed_at=processed_at)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update alert {alert_id}: {e}") from e
        return result.rowcount > 0


class OrderRepository(BaseRepository[Order]):
    """Repository for orders."""

    def __init__(self, session: AsyncSession):
        super().__init__(Order, session)

    async def get_for_reconciliation(self) -> List[Order]:
        """Open orders the broker has acknowledged."""
        result = await self.session.execute(
            select(self.model)
            .where(
                self.model.status.in_([s.value for s in OPEN_ORDER_STATUSES]),
                self.model.broker_order_id.is_not(None),
            )
            .order_by(self.model.id)
        )
        return list(result.scalars().all())

    async def append_broker_response(self, order: Order, response: Dict[str, Any]) -> None:
        """Append a raw broker payload; the history is never rewritten."""
        history = list(order.broker_response or [])
        history.append(response)
        await self.update(order, broker_response=history)


class TradeRepository(BaseRepository[Trade]):
    """Repository for executed trades."""

    def __init__(self, session: AsyncSession):
        super().__init__(Trade, session)

    async def get_fill_totals(self, order_id: int) -> Dict[str, Decimal]:
        """Quantity, notional and charges already recorded for an order."""
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(Trade.quantity), 0),
                func.coalesce(func.sum(Trade.quantity * Trade.price), 0),
                func.coalesce(func.sum(Trade.charges), 0),
            ).where(Trade.order_id == order_id)
        )
        quantity, notional, charges = result.one()
        return {
            "quantity": Decimal(str(quantity)),
            "notional": Decimal(str(notional)),
            "charges": Decimal(str(charges)),
        }

    async def get_realized_pnl_since(self, user_id: int, since: datetime) -> Decimal:
        """Sum of realized P&L contributions executed at or after ``since``."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(Trade.realized_pnl), 0))
            .where(Trade.user_id == user_id, Trade.executed_at >= since)
        )
        return Decimal(str(result.scalar_one()))

    async def get_daily_summary(self, user_id: int, since: datetime) -> Dict[str, Any]:
        result = await self.session.execute(
            select(
                func.count(Trade.id),
                func.coalesce(func.sum(Trade.realized_pnl), 0),
                func.coalesce(func.sum(Trade.charges), 0),
            ).where(Trade.user_id == user_id, Trade.executed_at >= since)
        )
        count, pnl, charges = result.one()
        return {
            "trade_count": int(count),
            "realized_pnl": Decimal(str(pnl)),
            "charges": Decimal(str(charges)),
        }


class PositionRepository(BaseRepository[Position]):
    """Repository for positions. (user_id, symbol) is unique."""

    def __init__(self, session: AsyncSession):
        super().__init__(Position, session)

    async def count_active(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count(Position.id))
            .where(Position.user_id == user_id, Position.is_active.is_(True))
        )
        return int(result.scalar_one())

    async def get_by_symbol(self, user_id: int, symbol: str, for_update: bool = False) -> Optional[Position]:
        """
        Position row for (user, symbol).

        With ``for_update`` the row stays locked until the transaction ends
        (PostgreSQL only; SQLite ignores the clause).
        """
        query = select(Position).where(Position.user_id == user_id, Position.symbol == symbol)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_active(self, user_id: Optional[int] = None) -> List[Position]:
        query = select(Position).where(Position.is_active.is_(True))
        if user_id is not None:
            query = query.where(Position.user_id == user_id)
        result = await self.session.execute(query.order_by(Position.id))
        return list(result.scalars().all())

    async def upsert(self, user_id: int, symbol: str, values: Dict[str, Any]) -> None:
        """
        Insert or update the (user, symbol) row in one statement.

        The unique constraint is the concurrency control point: two writers
        can never produce two rows for the same symbol.
        """
        dialect = self.session.bind.dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise PersistenceError(f"Position upsert not supported for dialect {dialect}")

        stmt = insert(Position).values(user_id=user_id, symbol=symbol, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Position.user_id, Position.symbol],
            set_=values,
        )
        try:
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to upsert position {symbol} for user {user_id}: {e}") from e

    async def mark_price(self, position: Position, price: Decimal) -> None:
        unrealized = (price - position.avg_price) * position.quantity
        await self.update(position, current_price=price, unrealized_pnl=unrealized)
