"""
Test configuration and shared fixtures for AlertBridge backend tests.
"""

import os

# Settings are read at import time; keep tests off any real database.
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("TRADING_MODE", "PAPER")

import pytest
from datetime import datetime
from unittest.mock import AsyncMock

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from alertbridge.brokers.base import BrokerClient
from alertbridge.core.config import SecuritySettings
from alertbridge.core.security import CredentialCipher
from alertbridge.db.base import Base
from alertbridge.db import models  # noqa: F401
from alertbridge.db.models import Strategy, User
from alertbridge.db.session import create_session_factory
from alertbridge.execution.credentials import CredentialStore
from alertbridge.schemas.broker import FyersCredentials, PlacedOrder


# =============================================================================
# Time Fixtures
# =============================================================================

# A Monday, mid-session, exchange-local
MARKET_MOMENT = datetime(2024, 1, 15, 10, 30)


@pytest.fixture
def market_moment():
    return MARKET_MOMENT


@pytest.fixture
def clock(market_moment):
    """Frozen exchange-local clock."""
    return lambda: market_moment


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def user(session_factory):
    async with session_factory() as session:
        user = User(email="trader@example.com", is_active=True)
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
def make_strategy(session_factory, user):
    """Factory inserting an active strategy for ``user``."""
    async def _make(config=None, name="Breakout", is_active=True, user_id=None):
        async with session_factory() as session:
            strategy = Strategy(
                user_id=user_id or user.id,
                name=name,
                config=config or {},
                is_active=is_active,
            )
            session.add(strategy)
            await session.commit()
            return strategy
    return _make


# =============================================================================
# Credentials
# =============================================================================

@pytest.fixture
def cipher():
    return CredentialCipher(SecuritySettings(master_key="test-master-key", salt="test-salt"))


@pytest.fixture
def credential_store(session_factory, cipher):
    return CredentialStore(session_factory, cipher)


@pytest.fixture
async def connected_user(user, credential_store):
    """User with a stored Fyers access token."""
    await credential_store.save_credentials(
        user.id,
        FyersCredentials(access_token="access-abc", refresh_token="refresh-xyz"),
    )
    return user


# =============================================================================
# Broker Mocks
# =============================================================================

@pytest.fixture
def mock_broker():
    """Create a mock broker for testing."""
    broker = AsyncMock(spec=BrokerClient)
    broker.name = "test_broker"

    broker.place_order = AsyncMock(return_value=PlacedOrder(
        order_id="FY-1001",
        message="Order submitted",
        raw={"s": "ok", "id": "FY-1001"},
    ))
    broker.get_order_book = AsyncMock(return_value=[])
    broker.get_positions = AsyncMock(return_value=[])
    broker.get_quotes = AsyncMock(return_value={})
    broker.get_balance = AsyncMock(return_value={})
    broker.cancel_order = AsyncMock(return_value={"s": "ok"})
    broker.refresh_access_token = AsyncMock(return_value="access-new")
    return broker


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that exercise the database"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
