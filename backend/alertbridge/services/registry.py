"""
Service registry.

Holds the long-lived pipeline services for one application instance:

    BrokerClient
        ↓
    ExecutionOrchestrator (alerts -> orders)
    OrderReconciler (broker state -> orders, trades, positions)
        ↓
    ReconciliationScheduler (periodic reconciler jobs)
"""

from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alertbridge.brokers import BrokerClient, create_broker_client
from alertbridge.core.config import Settings, settings as default_settings
from alertbridge.db.session import AsyncSessionLocal
from alertbridge.execution.credentials import CredentialStore
from alertbridge.execution.orchestrator import ExecutionOrchestrator
from alertbridge.execution.reconciler import OrderReconciler
from alertbridge.services.scheduler import ReconciliationScheduler


class ServiceRegistry:
    """Registry for all pipeline services."""

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        broker: Optional[BrokerClient] = None,
        credential_store: Optional[CredentialStore] = None,
    ):
        self.settings = app_settings or default_settings
        self.session_factory = session_factory
        self.broker = broker or create_broker_client(self.settings)
        self.credentials = credential_store or CredentialStore(session_factory)
        self.orchestrator = ExecutionOrchestrator(
            self.broker, session_factory=session_factory, credential_store=self.credentials
        )
        self.reconciler = OrderReconciler(
            self.broker, session_factory=session_factory, credential_store=self.credentials
        )
        self.scheduler = ReconciliationScheduler(self.reconciler, self.settings.trading)

    async def start_all(self) -> None:
        await self.scheduler.start()
        logger.info(f"✓ Pipeline services started (broker={self.broker.name})")

    async def stop_all(self) -> None:
        """Stop services in reverse order."""
        await self.scheduler.stop()
        await self.broker.aclose()
        logger.info("✓ Pipeline services stopped")

    def get_status(self) -> dict:
        return {
            "broker": self.broker.name,
            "mode": self.settings.trading.mode,
            "scheduler_running": self.scheduler.is_running,
        }
