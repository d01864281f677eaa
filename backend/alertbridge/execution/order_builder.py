from typing import Optional

from loguru import logger

from alertbridge.db.models import AlertAction, OrderSide, OrderType
from alertbridge.schemas.alert import AlertPayload
from alertbridge.schemas.broker import OrderParams
from alertbridge.schemas.strategy import StrategyConfig


def resolve_quantity(alert: AlertPayload, config: StrategyConfig) -> int:
    """Alert quantity, else the strategy default, else one share."""
    if alert.quantity:
        return alert.quantity
    if config.default_quantity:
        return config.default_quantity
    return 1


def build_order_params(alert: AlertPayload, config: StrategyConfig) -> Optional[OrderParams]:
    """
    Translate an eligible alert into broker order parameters.

    Returns None when no order can be formed: a HOLD alert, a LIMIT order
    without an alert price, or a STOP_LOSS order without a stop price.
    """
    if alert.action == AlertAction.HOLD:
        return None

    side = OrderSide.BUY if alert.action == AlertAction.BUY else OrderSide.SELL

    limit_price = None
    if config.order_type == OrderType.LIMIT:
        if alert.price is None:
            logger.warning(f"LIMIT order for {alert.symbol} skipped: alert carries no price")
            return None
        limit_price = alert.price

    # Protective stop only below a long entry
    stop_price = None
    if config.stop_loss and alert.price is not None and side == OrderSide.BUY:
        stop_price = round(alert.price * (1 - config.stop_loss / 100), 2)

    # Target is sent as a distance from entry, not an absolute price
    take_profit = None
    if config.take_profit and alert.price is not None:
        take_profit = round(alert.price * config.take_profit / 100, 2)

    if config.order_type == OrderType.STOP_LOSS and stop_price is None:
        logger.warning(f"STOP_LOSS order for {alert.symbol} skipped: no stop price")
        return None

    return OrderParams(
        symbol=alert.symbol,
        side=side,
        quantity=resolve_quantity(alert, config),
        order_type=config.order_type,
        product_type=config.product_type,
        limit_price=limit_price,
        stop_price=stop_price,
        take_profit=take_profit,
        reference_price=alert.price,
    )
