"""
Order Reconciler

Polls the broker's order book for orders we submitted, writes the broker
state back onto the local rows and materializes fills as trades and
position changes.

Fills are recorded incrementally: each pass creates a trade only for the
quantity the broker reports beyond what is already recorded for that
order, so re-running a pass never duplicates a trade. Terminal orders are
left untouched.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alertbridge.brokers.base import BrokerClient
from alertbridge.core.clock import now, start_of_day
from alertbridge.core.exceptions import CredentialsMissingError, OrderNotFoundError
from alertbridge.db.models import Order, OrderSide, OrderStatus, Position
from alertbridge.db.repositories import (
    OrderRepository,
    PositionRepository,
    TradeRepository,
    UserRepository,
)
from alertbridge.db.session import AsyncSessionLocal
from alertbridge.execution.credentials import CredentialStore
from alertbridge.schemas.broker import BrokerOrder


PRICE_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0")


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(PRICE_QUANTUM)


def merge_fill(
    quantity: int,
    avg_price: Decimal,
    fill_quantity: int,
    fill_price: Decimal,
) -> Tuple[int, Decimal, Decimal]:
    """
    Merge a signed fill into a signed position.

    Returns (new quantity, new average price, realized P&L). Adding to a
    position re-weights the average; reducing it realizes
    ``(fill - avg) * closed`` for longs and the mirror for shorts. A fill
    that flips the side opens the remainder at the fill price.
    """
    new_quantity = quantity + fill_quantity
    if quantity == 0:
        return fill_quantity, fill_price, ZERO

    if (quantity > 0) == (fill_quantity > 0):
        weighted = abs(quantity) * avg_price + abs(fill_quantity) * fill_price
        return new_quantity, _money(weighted / abs(new_quantity)), ZERO

    closed = min(abs(quantity), abs(fill_quantity))
    direction = 1 if quantity > 0 else -1
    realized = _money((fill_price - avg_price) * closed * direction)

    if new_quantity == 0:
        return 0, avg_price, realized
    if (new_quantity > 0) != (quantity > 0):
        return new_quantity, fill_price, realized
    return new_quantity, avg_price, realized


@dataclass
class ReconcileSummary:
    checked: int = 0
    updated: int = 0
    failed: int = 0


class OrderReconciler:
    """Brings local orders, trades and positions in line with the broker."""

    def __init__(
        self,
        broker: BrokerClient,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        credential_store: Optional[CredentialStore] = None,
        clock: Callable[[], datetime] = now,
    ):
        self.broker = broker
        self.session_factory = session_factory
        self.credentials = credential_store or CredentialStore(session_factory)
        self.clock = clock

    async def _access_token(self, user_id: int) -> str:
        credentials = await self.credentials.get_credentials(user_id)
        if credentials is None:
            raise CredentialsMissingError()
        return credentials.access_token

    # =========================================================================
    # Order status
    # =========================================================================

    async def monitor_order_status(
        self,
        order_id: int,
        order_book: Optional[List[BrokerOrder]] = None,
    ) -> Order:
        """
        Reconcile one order against the broker.

        Orders without a broker id, or already terminal, are returned
        unchanged. ``order_book`` may be passed in to share one fetch across
        several orders of the same user.
        """
        async with self.session_factory() as session:
            orders = OrderRepository(session)
            order = await orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(f"Order {order_id} not found")
            if not order.broker_order_id or order.order_status.is_terminal:
                return order

            if order_book is None:
                order_book = await self.broker.get_order_book(await self._access_token(order.user_id))

            entry = next((o for o in order_book if o.order_id == order.broker_order_id), None)
            if entry is None:
                logger.debug(f"Order {order_id} ({order.broker_order_id}) not in broker order book")
                return order

            await self._apply_broker_state(session, order, entry)
            await session.commit()
            return order

    async def _apply_broker_state(self, session: AsyncSession, order: Order, entry: BrokerOrder) -> None:
        log = logger.bind(user_id=order.user_id, order_id=order.id)
        moment = self.clock()
        orders = OrderRepository(session)
        trades = TradeRepository(session)

        recorded = await trades.get_fill_totals(order.id)
        recorded_quantity = int(recorded["quantity"])

        filled = min(entry.filled_quantity, order.quantity)
        if entry.status == OrderStatus.FILLED and filled == 0:
            filled = order.quantity

        average_price = _money(entry.average_price) if entry.average_price else order.average_price
        if average_price is None:
            average_price = _money(order.price or 0)

        delta = filled - recorded_quantity
        if delta > 0:
            # Broker reports a cumulative average; price only the new slice
            fill_price = _money((average_price * filled - recorded["notional"]) / delta)
            charges = max(_money(entry.charges) - recorded["charges"], ZERO)
            realized = await self._apply_fill_to_position(session, order, delta, fill_price, moment)
            await trades.create(
                user_id=order.user_id,
                order_id=order.id,
                symbol=order.symbol,
                side=order.side,
                quantity=delta,
                price=fill_price,
                charges=charges,
                realized_pnl=realized,
                executed_at=moment,
            )
            log.info(f"Recorded fill {order.side} {delta} {order.symbol} @ {fill_price} (realized {realized})")

        values: Dict[str, Any] = {
            "status": entry.status.value,
            "filled_quantity": max(filled, recorded_quantity),
            "charges": _money(entry.charges),
            "updated_at": moment,
        }
        if filled:
            values["average_price"] = average_price
        if entry.status == OrderStatus.FILLED:
            values["filled_at"] = moment

        if entry.status.value != order.status:
            log.info(f"Order {order.id} {order.status} -> {entry.status.value}")
        await orders.update(order, **values)
        await orders.append_broker_response(order, entry.raw)

    async def _apply_fill_to_position(
        self,
        session: AsyncSession,
        order: Order,
        quantity: int,
        price: Decimal,
        moment: datetime,
    ) -> Decimal:
        positions = PositionRepository(session)
        existing = await positions.get_by_symbol(order.user_id, order.symbol, for_update=True)
        signed = quantity if order.side == OrderSide.BUY.value else -quantity

        if existing is None or not existing.is_active or existing.quantity == 0:
            realized = ZERO
            values = {
                "quantity": signed,
                "avg_price": price,
                "current_price": price,
                "unrealized_pnl": ZERO,
                "realized_pnl": existing.realized_pnl if existing else ZERO,
                "opened_at": moment,
                "closed_at": None,
                "is_active": True,
            }
        else:
            new_quantity, avg_price, realized = merge_fill(existing.quantity, existing.avg_price, signed, price)
            mark = existing.current_price if existing.current_price is not None else price
            values = {
                "quantity": new_quantity,
                "avg_price": avg_price,
                "current_price": mark,
                "unrealized_pnl": _money((mark - avg_price) * new_quantity),
                "realized_pnl": existing.realized_pnl + realized,
                "opened_at": existing.opened_at,
                "closed_at": moment if new_quantity == 0 else None,
                "is_active": new_quantity != 0,
            }

        await positions.upsert(order.user_id, order.symbol, values)
        return realized

    async def reconcile_open_orders(self) -> ReconcileSummary:
        """
        Reconcile every submitted, not yet terminal order.

        The order book is fetched once per user. A failure for one user or
        one order is logged and never stops the rest of the pass.
        """
        summary = ReconcileSummary()
        async with self.session_factory() as session:
            open_orders = await OrderRepository(session).get_for_reconciliation()

        by_user: Dict[int, List[Order]] = defaultdict(list)
        for order in open_orders:
            by_user[order.user_id].append(order)

        for user_id, orders in by_user.items():
            try:
                order_book = await self.broker.get_order_book(await self._access_token(user_id))
            except Exception as e:
                logger.bind(user_id=user_id).error(f"Order book unavailable, skipping {len(orders)} orders: {e}")
                summary.failed += len(orders)
                continue

            for order in orders:
                summary.checked += 1
                previous = order.status
                try:
                    reconciled = await self.monitor_order_status(order.id, order_book)
                except Exception as e:
                    logger.bind(user_id=user_id, order_id=order.id).exception(f"Reconcile failed: {e}")
                    summary.failed += 1
                    continue
                if reconciled.status != previous or reconciled.filled_quantity != order.filled_quantity:
                    summary.updated += 1

        if summary.checked or summary.failed:
            logger.info(f"Reconciled {summary.checked} orders ({summary.updated} updated, {summary.failed} failed)")
        return summary

    # =========================================================================
    # Positions
    # =========================================================================

    async def update_position_prices(self) -> int:
        """Mark active positions to the latest quote. Returns rows updated."""
        updated = 0
        async with self.session_factory() as session:
            positions = await PositionRepository(session).get_active()

        by_user: Dict[int, List[Position]] = defaultdict(list)
        for position in positions:
            by_user[position.user_id].append(position)

        for user_id, user_positions in by_user.items():
            try:
                token = await self._access_token(user_id)
                quotes = await self.broker.get_quotes(token, [p.symbol for p in user_positions])
            except Exception as e:
                logger.bind(user_id=user_id).warning(f"Price refresh skipped: {e}")
                continue

            async with self.session_factory() as session:
                repo = PositionRepository(session)
                for position in user_positions:
                    quote = quotes.get(position.symbol)
                    if quote is None or not quote.last_price:
                        continue
                    row = await repo.get(position.id)
                    if row is None or not row.is_active:
                        continue
                    await repo.mark_price(row, _money(quote.last_price))
                    updated += 1
                await session.commit()

        return updated

    async def daily_summary(self, moment: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Per-user trade count, realized and unrealized P&L for the day."""
        moment = moment or self.clock()
        since = start_of_day(moment)
        reports = []

        async with self.session_factory() as session:
            users = await UserRepository(session).get_active_users()
            for user in users:
                summary = await TradeRepository(session).get_daily_summary(user.id, since)
                positions = await PositionRepository(session).get_active(user.id)
                summary.update(
                    user_id=user.id,
                    date=moment.date().isoformat(),
                    open_positions=len(positions),
                    unrealized_pnl=sum((p.unrealized_pnl for p in positions), ZERO),
                )
                reports.append(summary)
                logger.bind(user_id=user.id).info(
                    f"Daily summary {summary['date']}: {summary['trade_count']} trades, "
                    f"realized {summary['realized_pnl']}, unrealized {summary['unrealized_pnl']}, "
                    f"{summary['open_positions']} open positions"
                )

        return reports
