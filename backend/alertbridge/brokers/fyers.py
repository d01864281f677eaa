import hashlib
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from alertbridge.brokers.base import BrokerClient
from alertbridge.core.config import FyersSettings
from alertbridge.core.exceptions import BrokerError, ValidationError
from alertbridge.db.models import OrderSide, OrderStatus, OrderType
from alertbridge.schemas.broker import BrokerOrder, BrokerPosition, OrderParams, PlacedOrder, Quote


# Fyers order type codes: 1=Limit, 2=Market, 3=SL-M, 4=SL-L
LIMIT_ORDER = 1
MARKET_ORDER = 2
STOP_MARKET_ORDER = 3
STOP_LIMIT_ORDER = 4

# Fyers order status codes
STATUS_CANCELLED = 1
STATUS_FILLED = 2
STATUS_TRANSIT = 4
STATUS_REJECTED = 5
STATUS_PENDING = 6

_TEXT_STATUS_MAP = {
    "FILLED": OrderStatus.FILLED,
    "TRADED": OrderStatus.FILLED,
    "COMPLETE": OrderStatus.FILLED,
    "REJECTED": OrderStatus.REJECTED,
    "CANCELLED": OrderStatus.CANCELLED,
    "CANCELED": OrderStatus.CANCELLED,
    "PENDING": OrderStatus.SUBMITTED,
    "TRANSIT": OrderStatus.SUBMITTED,
    "OPEN": OrderStatus.SUBMITTED,
    "PARTIALLY_FILLED": OrderStatus.PARTIALLY_FILLED,
}


def format_symbol(symbol: str) -> str:
    """
    Convert a bare ticker into the Fyers instrument format.

    ``RELIANCE`` becomes ``NSE:RELIANCE-EQ``; anything already carrying an
    exchange prefix is passed through untouched.
    """
    if ":" in symbol:
        return symbol
    return f"NSE:{symbol}-EQ"


def map_order_status(raw_status: Any, filled_quantity: int = 0) -> OrderStatus:
    """Map a Fyers numeric (or textual) order status onto ``OrderStatus``."""
    if isinstance(raw_status, str) and not raw_status.isdigit():
        status = _TEXT_STATUS_MAP.get(raw_status.upper(), OrderStatus.SUBMITTED)
    else:
        try:
            code = int(raw_status)
        except (TypeError, ValueError):
            code = STATUS_PENDING
        if code == STATUS_FILLED:
            status = OrderStatus.FILLED
        elif code == STATUS_CANCELLED:
            status = OrderStatus.CANCELLED
        elif code == STATUS_REJECTED:
            status = OrderStatus.REJECTED
        else:
            # Transit, Pending and unknown codes are still working at the exchange
            status = OrderStatus.SUBMITTED

    if status == OrderStatus.SUBMITTED and filled_quantity > 0:
        return OrderStatus.PARTIALLY_FILLED
    return status


class FyersBrokerClient(BrokerClient):
    """
    Fyers v3 REST client.

    One ``httpx.AsyncClient`` with a bounded timeout is shared by every call;
    the caller supplies the user's access token per request.
    """

    name = "fyers"

    def __init__(self, fyers_settings: FyersSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.app_id = fyers_settings.app_id
        self.secret_key = fyers_settings.secret_key
        self.pin = fyers_settings.pin
        self._client = http_client or httpx.AsyncClient(
            base_url=fyers_settings.base_url,
            timeout=httpx.Timeout(fyers_settings.request_timeout_seconds),
        )

    def _headers(self, access_token: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"{self.app_id}:{access_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(
                method, path, headers=self._headers(access_token), json=json, params=params
            )
        except httpx.TimeoutException as e:
            logger.error(f"[Fyers] {method} {path} timed out")
            raise BrokerError(f"Fyers request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            logger.error(f"[Fyers] {method} {path} failed: {e}")
            raise BrokerError(f"Fyers request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise BrokerError(
                f"Fyers returned a non-JSON response (status={response.status_code})"
            ) from e

        if response.status_code >= 400 or body.get("s") != "ok":
            message = body.get("message") or f"Fyers request failed (status={response.status_code})"
            logger.warning(f"[Fyers] {method} {path} rejected: {message}")
            raise BrokerError(message, code=body.get("code"), response=body)

        return body

    @staticmethod
    def validate_order_data(params: OrderParams) -> None:
        """Reject parameter combinations Fyers would refuse."""
        if params.order_type == OrderType.LIMIT and not params.limit_price:
            raise ValidationError("limitPrice is required for LIMIT orders")
        if params.order_type == OrderType.STOP_LOSS and not params.stop_price:
            raise ValidationError("stopPrice is required for STOP_LOSS orders")

    def to_fyers_order(self, params: OrderParams) -> Dict[str, Any]:
        self.validate_order_data(params)

        if params.order_type == OrderType.LIMIT:
            order_type = LIMIT_ORDER
        elif params.order_type == OrderType.STOP_LOSS:
            order_type = STOP_LIMIT_ORDER if params.limit_price else STOP_MARKET_ORDER
        else:
            order_type = MARKET_ORDER

        data = {
            "symbol": format_symbol(params.symbol),
            "qty": params.quantity,
            "type": order_type,
            "side": 1 if params.side == OrderSide.BUY else -1,
            "productType": params.product_type.value,
            "limitPrice": params.limit_price or 0,
            "stopPrice": params.stop_price or 0,
            "validity": params.validity,
            "disclosedQty": params.disclosed_quantity,
            "offlineOrder": False,
            "stopLoss": params.stop_loss or 0,
            "takeProfit": params.take_profit or 0,
        }
        if params.order_tag:
            data["orderTag"] = params.order_tag
        return data

    async def place_order(self, access_token: str, params: OrderParams) -> PlacedOrder:
        data = self.to_fyers_order(params)
        logger.info(f"[Fyers] Placing {params.side.value} {params.quantity} {data['symbol']} type={data['type']}")
        body = await self._request("POST", "/api/v3/orders", access_token, json=data)

        order_id = body.get("id") or (body.get("data") or {}).get("id")
        if not order_id:
            raise BrokerError("Fyers accepted the order but returned no order id", response=body)
        return PlacedOrder(order_id=str(order_id), message=body.get("message"), raw=body)

    async def get_order_book(self, access_token: str) -> List[BrokerOrder]:
        body = await self._request("GET", "/api/v3/orders", access_token)
        entries = body.get("orderBook") or (body.get("data") or {}).get("orderBook") or []

        orders = []
        for o in entries:
            filled = int(o.get("filledQty") or 0)
            orders.append(BrokerOrder(
                order_id=str(o.get("id", "")),
                status=map_order_status(o.get("status"), filled),
                filled_quantity=filled,
                average_price=float(o.get("tradedPrice") or o.get("avgPrice") or 0.0),
                charges=float(o.get("charges") or 0.0),
                message=o.get("message"),
                raw=o,
            ))
        return orders

    async def get_positions(self, access_token: str) -> List[BrokerPosition]:
        body = await self._request("GET", "/api/v3/positions", access_token)

        positions = []
        for p in body.get("netPositions", []):
            positions.append(BrokerPosition(
                symbol=p.get("symbol", ""),
                quantity=p.get("netQty") or p.get("qty") or 0,
                average_price=p.get("netAvg") or p.get("avgPrice") or p.get("buyAvg") or 0.0,
                last_price=p.get("ltp") or 0.0,
                pnl=p.get("pl") or 0.0,
                product_type=p.get("productType"),
            ))
        return positions

    async def get_balance(self, access_token: str) -> Dict[str, Any]:
        body = await self._request("GET", "/api/v3/funds", access_token)
        balance = {}
        for item in body.get("fund_limit", []):
            title = item.get("title")
            if title:
                balance[title] = item.get("equityAmount", 0.0)
        return balance

    async def get_quotes(self, access_token: str, symbols: List[str]) -> Dict[str, Quote]:
        if not symbols:
            return {}
        by_instrument = {format_symbol(s): s for s in symbols}
        body = await self._request(
            "GET", "/data/quotes", access_token, params={"symbols": ",".join(by_instrument)}
        )

        result = {}
        for item in body.get("d", []):
            instrument = item.get("n")
            data = item.get("v", {})
            symbol = by_instrument.get(instrument, instrument)
            timestamp = data.get("tt")
            result[symbol] = Quote(
                symbol=symbol,
                last_price=data.get("lp", 0.0),
                timestamp=datetime.fromtimestamp(int(timestamp)) if timestamp else None,
            )
        return result

    async def cancel_order(self, access_token: str, order_id: str) -> Dict[str, Any]:
        logger.info(f"[Fyers] Cancelling order {order_id}")
        return await self._request("DELETE", "/api/v3/orders", access_token, json={"id": order_id})

    async def refresh_access_token(self, refresh_token: str, pin: Optional[str] = None) -> str:
        """
        Exchange a refresh token for a new access token.

        Uses /api/v3/validate-refresh-token; the refresh token itself stays
        valid for 15 days.
        """
        app_id_hash = hashlib.sha256(f"{self.app_id}:{self.secret_key}".encode()).hexdigest()
        body = await self._request(
            "POST",
            "/api/v3/validate-refresh-token",
            json={
                "grant_type": "refresh_token",
                "appIdHash": app_id_hash,
                "refresh_token": refresh_token,
                "pin": pin or self.pin,
            },
        )
        access_token = body.get("access_token")
        if not access_token:
            raise BrokerError("Fyers refresh returned no access token", response=body)
        logger.success("[Fyers] Access token refreshed")
        return access_token

    async def aclose(self) -> None:
        await self._client.aclose()
