from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from alertbridge.schemas.alert import AlertPayload
from alertbridge.schemas.strategy import StrategyConfig


# Rejection reasons, recorded verbatim in logs and alert status messages
SYMBOL_BLOCKED = "symbol blocked"
SYMBOL_NOT_ALLOWED = "symbol not allowed"
OUTSIDE_TRADING_HOURS = "outside trading hours"
MAX_POSITIONS = "max positions"
DAILY_LOSS_LIMIT = "daily loss limit"
POSITION_SIZE_LIMIT = "position size exceeds limit"


@dataclass(frozen=True)
class RiskDecision:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "RiskDecision":
        return cls(True)

    @classmethod
    def reject(cls, reason: str) -> "RiskDecision":
        return cls(False, reason)


@dataclass(frozen=True)
class TradingState:
    """Snapshot of the user's book taken just before evaluation."""
    active_positions: int = 0
    today_realized_pnl: float = 0.0


def is_symbol_allowed(symbol: str, config: StrategyConfig) -> Optional[str]:
    """Return a rejection reason, or None. The blocklist wins over the allowlist."""
    if symbol in config.blocked_symbols:
        return SYMBOL_BLOCKED
    if config.allowed_symbols and symbol not in config.allowed_symbols:
        return SYMBOL_NOT_ALLOWED
    return None


def is_within_trading_hours(config: StrategyConfig, moment: datetime) -> bool:
    """Inclusive on both ends, at minute resolution."""
    current = moment.time().replace(second=0, microsecond=0)
    return config.trading_hours.start <= current <= config.trading_hours.end


class RiskEvaluator:
    """
    Decides whether an alert may become an order under one strategy.

    Checks run in a fixed order and stop at the first rejection:
    symbol lists, trading hours, open position count, daily loss, order value.
    Rejections are ordinary results, never exceptions.
    """

    def check_eligibility(self, symbol: str, config: StrategyConfig, moment: datetime) -> RiskDecision:
        """The checks that need no database state."""
        reason = is_symbol_allowed(symbol, config)
        if reason:
            return RiskDecision.reject(reason)
        if not is_within_trading_hours(config, moment):
            return RiskDecision.reject(OUTSIDE_TRADING_HOURS)
        return RiskDecision.allow()

    def evaluate(
        self,
        alert: AlertPayload,
        config: StrategyConfig,
        state: TradingState,
        moment: datetime,
        quantity: Optional[int] = None,
    ) -> RiskDecision:
        decision = self.check_eligibility(alert.symbol, config, moment)
        if not decision.allowed:
            return decision

        limits = config.risk_params
        if state.active_positions >= limits.max_positions:
            return RiskDecision.reject(MAX_POSITIONS)

        if state.today_realized_pnl <= -limits.daily_loss_limit:
            return RiskDecision.reject(DAILY_LOSS_LIMIT)

        quantity = quantity if quantity is not None else alert.quantity
        # Market alerts without a price cannot be sized
        if alert.price is not None and quantity:
            # Compare in Decimal so an order worth exactly the limit passes
            value = Decimal(str(alert.price)) * quantity
            if value > Decimal(str(limits.max_position_size)):
                return RiskDecision.reject(POSITION_SIZE_LIMIT)

        return RiskDecision.allow()
