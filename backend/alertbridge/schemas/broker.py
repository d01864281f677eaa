from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from datetime import datetime
from alertbridge.db.models import OrderSide, OrderStatus, OrderType, ProductType


class OrderParams(BaseModel):
    """Normalized order request built from an alert and a strategy."""
    symbol: str
    side: OrderSide
    quantity: int = Field(gt=0)
    order_type: OrderType = OrderType.MARKET
    product_type: ProductType = ProductType.INTRADAY
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    validity: str = "DAY"  # DAY, IOC
    disclosed_quantity: int = 0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None  # target distance in price points
    order_tag: Optional[str] = None
    # Alert price at build time; never sent to the broker
    reference_price: Optional[float] = None

    @property
    def recorded_price(self) -> Optional[float]:
        """Price written onto the local order row."""
        return self.limit_price if self.limit_price is not None else self.stop_price


class PlacedOrder(BaseModel):
    """Broker acknowledgement of an accepted order."""
    order_id: str
    message: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class BrokerOrder(BaseModel):
    """One normalized order-book entry."""
    order_id: str
    status: OrderStatus
    filled_quantity: int = 0
    average_price: float = 0.0
    charges: float = 0.0
    message: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class BrokerPosition(BaseModel):
    symbol: str
    quantity: int = 0
    average_price: float = 0.0
    last_price: float = 0.0
    pnl: float = 0.0
    product_type: Optional[str] = None


class Quote(BaseModel):
    symbol: str
    last_price: float = 0.0
    timestamp: Optional[datetime] = None


class FyersCredentials(BaseModel):
    """Decrypted Fyers token pair."""
    access_token: str = Field(alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)

    def __repr__(self) -> str:
        return f"FyersCredentials(expires_at={self.expires_at!r})"

    __str__ = __repr__
