"""
Broker Integrations
AlertBridge Trade Automation

One ``BrokerClient`` is chosen at startup from ``TRADING_MODE``:

    LIVE  -> FyersBrokerClient (Fyers v3 REST over httpx)
    PAPER -> PaperBrokerClient (in-process simulated fills)
"""

from typing import Optional

from loguru import logger

from alertbridge.brokers.base import BrokerClient
from alertbridge.brokers.fyers import FyersBrokerClient, format_symbol, map_order_status
from alertbridge.brokers.paper import PaperBrokerClient
from alertbridge.core.config import Settings, settings as default_settings


def create_broker_client(app_settings: Optional[Settings] = None) -> BrokerClient:
    """Build the broker client for the configured trading mode."""
    app_settings = app_settings or default_settings
    mode = app_settings.trading.mode

    if mode == "LIVE":
        if not app_settings.fyers.is_configured:
            logger.warning("LIVE mode selected but Fyers app credentials are not configured")
        logger.info("Using Fyers broker client")
        return FyersBrokerClient(app_settings.fyers)

    logger.info("Using paper broker client")
    return PaperBrokerClient()


__all__ = [
    "BrokerClient",
    "FyersBrokerClient",
    "PaperBrokerClient",
    "create_broker_client",
    "format_symbol",
    "map_order_status",
]
