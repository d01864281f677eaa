"""
Tests for the Fyers REST client

Requests are served by ``httpx.MockTransport``; nothing leaves the process.
"""

import hashlib
import json

import httpx
import pytest

from alertbridge.brokers.fyers import FyersBrokerClient, format_symbol, map_order_status
from alertbridge.core.config import FyersSettings
from alertbridge.core.exceptions import BrokerError, ValidationError
from alertbridge.db.models import OrderSide, OrderStatus, OrderType
from alertbridge.schemas.broker import OrderParams


FYERS = FyersSettings(app_id="APP-100", secret_key="s3cret", pin="1234", base_url="https://fyers.test")


def make_client(handler):
    transport = httpx.MockTransport(handler)
    http = httpx.AsyncClient(base_url=FYERS.base_url, transport=transport)
    return FyersBrokerClient(FYERS, http_client=http)


class TestSymbolAndStatus:

    def test_bare_symbol_is_qualified(self):
        assert format_symbol("RELIANCE") == "NSE:RELIANCE-EQ"

    def test_qualified_symbol_passes_through(self):
        assert format_symbol("BSE:SBIN-EQ") == "BSE:SBIN-EQ"

    @pytest.mark.parametrize("code,filled,expected", [
        (1, 0, OrderStatus.CANCELLED),
        (2, 5, OrderStatus.FILLED),
        (4, 0, OrderStatus.SUBMITTED),
        (5, 0, OrderStatus.REJECTED),
        (6, 0, OrderStatus.SUBMITTED),
        (6, 3, OrderStatus.PARTIALLY_FILLED),
        ("FILLED", 1, OrderStatus.FILLED),
    ])
    def test_status_mapping(self, code, filled, expected):
        assert map_order_status(code, filled) == expected


class TestPlaceOrder:

    @pytest.mark.asyncio
    async def test_normalizes_order_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"s": "ok", "code": 1101, "message": "Order submitted", "id": "2401150001"})

        client = make_client(handler)
        params = OrderParams(symbol="RELIANCE", side=OrderSide.SELL, quantity=3, order_type=OrderType.MARKET)

        placed = await client.place_order("tok-1", params)

        assert placed.order_id == "2401150001"
        assert seen["path"] == "/api/v3/orders"
        assert seen["auth"] == "APP-100:tok-1"
        body = seen["body"]
        assert body["symbol"] == "NSE:RELIANCE-EQ"
        assert body["side"] == -1
        assert body["qty"] == 3
        assert body["type"] == 2
        assert body["productType"] == "INTRADAY"
        assert body["validity"] == "DAY"
        assert body["disclosedQty"] == 0

    @pytest.mark.asyncio
    async def test_limit_and_stop_type_codes(self):
        types = []

        def handler(request):
            types.append(json.loads(request.content)["type"])
            return httpx.Response(200, json={"s": "ok", "id": "1"})

        client = make_client(handler)
        await client.place_order("t", OrderParams(
            symbol="TCS", side=OrderSide.BUY, quantity=1, order_type=OrderType.LIMIT, limit_price=3500,
        ))
        await client.place_order("t", OrderParams(
            symbol="TCS", side=OrderSide.BUY, quantity=1, order_type=OrderType.STOP_LOSS, stop_price=3400,
        ))

        assert types == [1, 3]

    @pytest.mark.asyncio
    async def test_limit_without_price_is_refused_locally(self):
        client = make_client(lambda request: pytest.fail("no request expected"))
        with pytest.raises(ValidationError):
            await client.place_order("t", OrderParams(
                symbol="TCS", side=OrderSide.BUY, quantity=1, order_type=OrderType.LIMIT,
            ))

    @pytest.mark.asyncio
    async def test_error_response_raises_broker_error(self):
        client = make_client(lambda request: httpx.Response(
            200, json={"s": "error", "code": -50, "message": "Invalid symbol"}
        ))

        with pytest.raises(BrokerError) as exc_info:
            await client.place_order("t", OrderParams(symbol="XYZ", side=OrderSide.BUY, quantity=1))

        assert exc_info.value.message == "Invalid symbol"
        assert exc_info.value.code == -50

    @pytest.mark.asyncio
    async def test_timeout_raises_broker_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(BrokerError, match="timed out"):
            await client.place_order("t", OrderParams(symbol="TCS", side=OrderSide.BUY, quantity=1))


class TestReads:

    @pytest.mark.asyncio
    async def test_order_book_is_normalized(self):
        client = make_client(lambda request: httpx.Response(200, json={
            "s": "ok",
            "orderBook": [
                {"id": "A1", "status": 2, "filledQty": 1, "tradedPrice": 2505.0},
                {"id": "A2", "status": 6, "filledQty": 0},
            ],
        }))

        book = await client.get_order_book("t")

        assert [o.order_id for o in book] == ["A1", "A2"]
        assert book[0].status == OrderStatus.FILLED
        assert book[0].average_price == 2505.0
        assert book[1].status == OrderStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_quotes_keyed_by_requested_symbol(self):
        seen = {}

        def handler(request):
            seen["symbols"] = request.url.params["symbols"]
            return httpx.Response(200, json={
                "s": "ok",
                "d": [{"n": "NSE:RELIANCE-EQ", "v": {"lp": 2512.5}}],
            })

        quotes = await make_client(handler).get_quotes("t", ["RELIANCE"])

        assert seen["symbols"] == "NSE:RELIANCE-EQ"
        assert quotes["RELIANCE"].last_price == 2512.5


class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_sends_app_hash_and_pin(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"s": "ok", "access_token": "fresh"})

        token = await make_client(handler).refresh_access_token("r-1")

        assert token == "fresh"
        assert seen["path"] == "/api/v3/validate-refresh-token"
        assert seen["body"]["appIdHash"] == hashlib.sha256(b"APP-100:s3cret").hexdigest()
        assert seen["body"]["refresh_token"] == "r-1"
        assert seen["body"]["pin"] == "1234"
        assert seen["body"]["grant_type"] == "refresh_token"
