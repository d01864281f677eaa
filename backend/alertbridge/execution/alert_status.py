from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alertbridge.core.clock import now
from alertbridge.db.models import AlertStatus
from alertbridge.db.repositories import AlertRepository
from alertbridge.db.session import AsyncSessionLocal


class AlertStatusUpdater:
    """Writes an alert's terminal status and processed timestamp."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def update_status(self, alert_id: int, status: AlertStatus, message: Optional[str] = None) -> None:
        async with self.session_factory() as session:
            found = await AlertRepository(session).set_status(alert_id, status.value, message, now())
            await session.commit()

        if not found:
            logger.warning(f"Alert {alert_id} not found while marking {status.value}")
        else:
            logger.debug(f"Alert {alert_id} -> {status.value}" + (f" ({message})" if message else ""))
