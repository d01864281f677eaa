"""
Tests for credential storage and encryption.
"""

import json

import pytest
from sqlalchemy import select

from alertbridge.core.exceptions import BrokerError, CredentialsMissingError
from alertbridge.db.models import UserSettings
from alertbridge.db.repositories import SettingsRepository
from alertbridge.schemas.broker import FyersCredentials


async def stored_value(session_factory, user_id):
    async with session_factory() as session:
        row = (await session.execute(
            select(UserSettings).where(UserSettings.user_id == user_id)
        )).scalar_one()
        return row.fyers_credentials


class TestCredentialStore:

    @pytest.mark.asyncio
    async def test_save_encrypts_and_get_decrypts(self, credential_store, user, session_factory):
        await credential_store.save_credentials(
            user.id, FyersCredentials(access_token="acc", refresh_token="ref")
        )

        raw = await stored_value(session_factory, user.id)
        assert "acc" not in raw

        credentials = await credential_store.get_credentials(user.id)
        assert credentials.access_token == "acc"
        assert credentials.refresh_token == "ref"

    @pytest.mark.asyncio
    async def test_missing_row_returns_none(self, credential_store, user):
        assert await credential_store.get_credentials(user.id) is None

    @pytest.mark.asyncio
    async def test_legacy_plaintext_document_is_readable(self, credential_store, user, session_factory):
        async with session_factory() as session:
            session.add(UserSettings(
                user_id=user.id,
                fyers_credentials=json.dumps({"accessToken": "legacy", "refreshToken": "r"}),
            ))
            await session.commit()

        credentials = await credential_store.get_credentials(user.id)
        assert credentials.access_token == "legacy"

    @pytest.mark.asyncio
    async def test_garbage_is_treated_as_absent(self, credential_store, user, session_factory):
        async with session_factory() as session:
            session.add(UserSettings(user_id=user.id, fyers_credentials="not-a-token"))
            await session.commit()

        assert await credential_store.get_credentials(user.id) is None

    @pytest.mark.asyncio
    async def test_clear(self, credential_store, connected_user):
        await credential_store.clear_credentials(connected_user.id)
        assert await credential_store.get_credentials(connected_user.id) is None

    @pytest.mark.asyncio
    async def test_tokens_hidden_from_repr(self):
        credentials = FyersCredentials(access_token="secret-access", refresh_token="secret-refresh")
        assert "secret" not in repr(credentials)
        assert "secret" not in str(credentials)


class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_stores_new_access_token(self, credential_store, connected_user, mock_broker):
        refreshed = await credential_store.refresh_credentials(connected_user.id, mock_broker, pin="0000")

        mock_broker.refresh_access_token.assert_awaited_once_with("refresh-xyz", "0000")
        assert refreshed.access_token == "access-new"
        assert refreshed.expires_at is not None

        stored = await credential_store.get_credentials(connected_user.id)
        assert stored.access_token == "access-new"
        assert stored.refresh_token == "refresh-xyz"

    @pytest.mark.asyncio
    async def test_refresh_without_refresh_token(self, credential_store, user, mock_broker):
        await credential_store.save_credentials(user.id, FyersCredentials(access_token="only-access"))

        with pytest.raises(CredentialsMissingError):
            await credential_store.refresh_credentials(user.id, mock_broker)
        mock_broker.refresh_access_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broker_refusal_keeps_old_token(self, credential_store, connected_user, mock_broker):
        mock_broker.refresh_access_token.side_effect = BrokerError("Invalid PIN", code=-16)

        with pytest.raises(BrokerError):
            await credential_store.refresh_credentials(connected_user.id, mock_broker)

        stored = await credential_store.get_credentials(connected_user.id)
        assert stored.access_token == "access-abc"


class TestSettingsDefaults:

    @pytest.mark.asyncio
    async def test_new_row_uses_configured_auto_execute_default(self, session_factory, user, monkeypatch):
        monkeypatch.setenv("TRADING_AUTO_EXECUTE_DEFAULT", "true")

        async with session_factory() as session:
            row = await SettingsRepository(session).get_or_create(user.id)
            await session.commit()

        assert row.auto_execute_enabled is True

    @pytest.mark.asyncio
    async def test_auto_execute_off_by_default(self, session_factory, user):
        async with session_factory() as session:
            row = await SettingsRepository(session).get_or_create(user.id)
            await session.commit()

        assert row.auto_execute_enabled is False

    @pytest.mark.asyncio
    async def test_existing_row_is_not_reset(self, session_factory, user, monkeypatch):
        async with session_factory() as session:
            session.add(UserSettings(user_id=user.id, auto_execute_enabled=True))
            await session.commit()
        monkeypatch.setenv("TRADING_AUTO_EXECUTE_DEFAULT", "false")

        async with session_factory() as session:
            row = await SettingsRepository(session).get_or_create(user.id)

        assert row.auto_execute_enabled is True
