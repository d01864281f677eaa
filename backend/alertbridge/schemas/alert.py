from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from alertbridge.db.models import AlertAction


class AlertPayload(BaseModel):
    """Inbound screener alert."""
    model_config = ConfigDict(extra="ignore")

    symbol: str = Field(min_length=1)
    action: AlertAction
    price: Optional[float] = Field(default=None, gt=0)
    quantity: Optional[int] = Field(default=None, gt=0)

    # Passed through into the stored raw payload
    timeframe: Optional[str] = None
    indicators: Optional[Dict[str, Any]] = None
    strategy: Optional[str] = None
    timestamp: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("symbol must not be blank")
        return value

    @property
    def is_actionable(self) -> bool:
        return self.action != AlertAction.HOLD
