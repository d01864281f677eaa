"""
Strategy configuration schema.

Stored strategy documents use camelCase keys; they are parsed once into
``StrategyConfig`` with every default filled in, so the pipeline never
re-validates loose dictionaries.
"""

from datetime import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from alertbridge.core.clock import parse_hhmm
from alertbridge.core.config import settings
from alertbridge.db.models import OrderType, ProductType


class TradingHours(BaseModel):
    """Inclusive trading window in exchange-local time."""
    model_config = ConfigDict(populate_by_name=True)

    start_time: str = Field(default_factory=lambda: settings.trading.market_open_time, alias="startTime")
    end_time: str = Field(default_factory=lambda: settings.trading.market_close_time, alias="endTime")

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        try:
            parsed = parse_hhmm(value)
        except (ValueError, AttributeError):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return parsed.strftime("%H:%M")

    @property
    def start(self) -> time:
        return parse_hhmm(self.start_time)

    @property
    def end(self) -> time:
        return parse_hhmm(self.end_time)


class RiskParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_positions: int = Field(
        default_factory=lambda: settings.trading.default_max_positions, gt=0, alias="maxPositions"
    )
    max_position_size: float = Field(
        default_factory=lambda: settings.trading.default_max_position_size, gt=0, alias="maxPositionSize"
    )
    daily_loss_limit: float = Field(
        default_factory=lambda: settings.trading.default_daily_loss_limit, gt=0, alias="dailyLossLimit"
    )


class StrategyConfig(BaseModel):
    """Typed strategy configuration with defaults applied at load time."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    allowed_symbols: List[str] = Field(default_factory=list, alias="allowedSymbols")
    blocked_symbols: List[str] = Field(default_factory=list, alias="blockedSymbols")
    default_quantity: Optional[int] = Field(default=None, gt=0, alias="defaultQuantity")
    order_type: OrderType = Field(default=OrderType.MARKET, alias="orderType")
    product_type: ProductType = Field(default=ProductType.INTRADAY, alias="productType")
    stop_loss: Optional[float] = Field(default=None, gt=0, lt=100, alias="stopLoss")
    take_profit: Optional[float] = Field(default=None, gt=0, le=100, alias="takeProfit")
    trading_hours: TradingHours = Field(default_factory=TradingHours, alias="tradingHours")
    risk_params: RiskParams = Field(default_factory=RiskParams, alias="riskParams")

    @field_validator("allowed_symbols", "blocked_symbols")
    @classmethod
    def _normalize_symbols(cls, symbols: List[str]) -> List[str]:
        return [s.strip().upper() for s in symbols if s and s.strip()]

    @model_validator(mode="after")
    def _check_window(self) -> "StrategyConfig":
        if self.trading_hours.start > self.trading_hours.end:
            raise ValueError("tradingHours.startTime must not be after endTime")
        return self

    def to_document(self) -> dict:
        """Serialize back to the stored camelCase document."""
        return self.model_dump(mode="json", by_alias=True)
