import asyncio
import random
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from alertbridge.brokers.base import BrokerClient
from alertbridge.core.exceptions import BrokerError
from alertbridge.db.models import OrderSide, OrderStatus, OrderType
from alertbridge.schemas.broker import BrokerOrder, BrokerPosition, OrderParams, PlacedOrder, Quote


class PaperBrokerClient(BrokerClient):
    """
    Simulated broker for paper trading.

    Market orders fill on placement at the alert's reference price plus
    random slippage; limit and stop orders fill at their own price. Orders
    with no usable price stay pending. State lives in process memory.
    """

    name = "paper"

    def __init__(
        self,
        slippage_std_dev: float = 0.0,
        latency_ms: int = 0,
        initial_balance: float = 1_000_000.0,
    ):
        self.slippage_std_dev = slippage_std_dev
        self.latency_ms = latency_ms
        self.balance = initial_balance
        self.orders: Dict[str, BrokerOrder] = {}
        self.positions: Dict[str, BrokerPosition] = {}
        self.last_prices: Dict[str, float] = {}
        self._sequence = 0

    def _next_order_id(self) -> str:
        self._sequence += 1
        return f"PAPER-{self._sequence:06d}"

    def _fill_price(self, params: OrderParams) -> Optional[float]:
        if params.order_type == OrderType.LIMIT:
            return params.limit_price
        if params.order_type == OrderType.STOP_LOSS:
            return params.limit_price or params.stop_price
        base_price = params.reference_price or self.last_prices.get(params.symbol)
        if base_price is None:
            return None
        slippage = random.gauss(0, self.slippage_std_dev) if self.slippage_std_dev else 0.0
        return round(base_price + slippage, 2)

    def _apply_fill(self, params: OrderParams, price: float) -> None:
        signed = params.quantity if params.side == OrderSide.BUY else -params.quantity
        current = self.positions.get(params.symbol)
        if current is None:
            self.positions[params.symbol] = BrokerPosition(
                symbol=params.symbol, quantity=signed, average_price=price,
                last_price=price, product_type=params.product_type.value,
            )
            return

        new_quantity = current.quantity + signed
        if new_quantity == 0:
            del self.positions[params.symbol]
            return
        if current.quantity * signed > 0:
            current.average_price = (
                abs(current.quantity) * current.average_price + abs(signed) * price
            ) / abs(new_quantity)
        elif current.quantity * new_quantity < 0:
            current.average_price = price
        current.quantity = new_quantity
        current.last_price = price

    async def place_order(self, access_token: str, params: OrderParams) -> PlacedOrder:
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000.0)

        order_id = self._next_order_id()
        price = self._fill_price(params)
        raw: Dict[str, Any] = {
            "id": order_id,
            "symbol": params.symbol,
            "qty": params.quantity,
            "side": params.side.value,
            "type": params.order_type.value,
        }

        if price is None:
            order = BrokerOrder(order_id=order_id, status=OrderStatus.SUBMITTED, raw=raw)
        else:
            self._apply_fill(params, price)
            self.last_prices[params.symbol] = price
            raw["tradedPrice"] = price
            order = BrokerOrder(
                order_id=order_id,
                status=OrderStatus.FILLED,
                filled_quantity=params.quantity,
                average_price=price,
                raw=raw,
            )
        self.orders[order_id] = order

        logger.info(f"[Paper] {params.side.value} {params.quantity} {params.symbol} -> {order.status.value} ({order_id})")
        return PlacedOrder(order_id=order_id, message="Paper order placed", raw={"s": "ok", **raw})

    async def get_order_book(self, access_token: str) -> List[BrokerOrder]:
        return list(self.orders.values())

    async def get_positions(self, access_token: str) -> List[BrokerPosition]:
        return list(self.positions.values())

    async def get_balance(self, access_token: str) -> Dict[str, Any]:
        return {"Available Balance": self.balance}

    async def get_quotes(self, access_token: str, symbols: List[str]) -> Dict[str, Quote]:
        now = datetime.now()
        return {
            s: Quote(symbol=s, last_price=self.last_prices[s], timestamp=now)
            for s in symbols
            if s in self.last_prices
        }

    async def cancel_order(self, access_token: str, order_id: str) -> Dict[str, Any]:
        order = self.orders.get(order_id)
        if order is None:
            raise BrokerError(f"Order {order_id} not found")
        if order.status.is_terminal:
            raise BrokerError(f"Order {order_id} is already {order.status.value}")
        order.status = OrderStatus.CANCELLED
        return {"s": "ok", "id": order_id, "message": "Order cancelled"}

    async def refresh_access_token(self, refresh_token: str, pin: Optional[str] = None) -> str:
        return f"paper-{refresh_token}"
