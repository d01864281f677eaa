"""
Brokerage credential storage.

Credentials are kept per user as a Fernet token of the JSON document
``{"accessToken", "refreshToken", "expiresAt"}`` on the settings row.
Rows written before encryption was introduced hold the bare JSON and are
still readable; they are re-encrypted on the next save.
"""

import json
from datetime import timedelta
from typing import Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alertbridge.brokers.base import BrokerClient
from alertbridge.core.clock import now
from alertbridge.core.exceptions import CredentialsMissingError
from alertbridge.core.security import CredentialCipher
from alertbridge.db.repositories import SettingsRepository
from alertbridge.db.session import AsyncSessionLocal
from alertbridge.schemas.broker import FyersCredentials


# Fyers access tokens expire at the end of the trading day
ACCESS_TOKEN_LIFETIME = timedelta(hours=6)


class CredentialStore:
    """Reads, writes and refreshes a user's Fyers credentials."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        cipher: Optional[CredentialCipher] = None,
    ):
        self.session_factory = session_factory
        self.cipher = cipher or CredentialCipher()

    def _decode(self, user_id: int, stored: str) -> Optional[FyersCredentials]:
        document = self.cipher.decrypt(stored)
        if document is None:
            # Legacy plaintext row
            document = stored
        try:
            return FyersCredentials.model_validate(json.loads(document))
        except (ValueError, PydanticValidationError):
            logger.warning(f"Unreadable Fyers credentials for user {user_id}")
            return None

    async def get_credentials(self, user_id: int) -> Optional[FyersCredentials]:
        async with self.session_factory() as session:
            row = await SettingsRepository(session).get_by_user(user_id)
        if row is None or not row.fyers_credentials:
            return None

        credentials = self._decode(user_id, row.fyers_credentials)
        if credentials is None or not credentials.access_token:
            return None
        return credentials

    async def save_credentials(self, user_id: int, credentials: FyersCredentials) -> None:
        token = self.cipher.encrypt(credentials.model_dump_json(by_alias=True))
        async with self.session_factory() as session:
            repo = SettingsRepository(session)
            row = await repo.get_or_create(user_id)
            await repo.update(row, fyers_credentials=token)
            await session.commit()
        logger.info(f"Saved Fyers credentials for user {user_id}")

    async def clear_credentials(self, user_id: int) -> None:
        async with self.session_factory() as session:
            repo = SettingsRepository(session)
            row = await repo.get_by_user(user_id)
            if row is None:
                return
            await repo.update(row, fyers_credentials=None)
            await session.commit()
        logger.info(f"Cleared Fyers credentials for user {user_id}")

    async def refresh_credentials(
        self,
        user_id: int,
        broker: BrokerClient,
        pin: Optional[str] = None,
    ) -> FyersCredentials:
        """
        Obtain a new access token with the stored refresh token and save it.

        Raises:
            CredentialsMissingError: no stored refresh token
            BrokerError: the broker refused the refresh
        """
        current = await self.get_credentials(user_id)
        if current is None or not current.refresh_token:
            raise CredentialsMissingError("No Fyers refresh token stored")

        access_token = await broker.refresh_access_token(current.refresh_token, pin)
        refreshed = FyersCredentials(
            access_token=access_token,
            refresh_token=current.refresh_token,
            expires_at=now() + ACCESS_TOKEN_LIFETIME,
        )
        await self.save_credentials(user_id, refreshed)
        return refreshed
