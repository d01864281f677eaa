"""
Tests for the Reconciliation Scheduler.
"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from alertbridge.core.config import TradingSettings
from alertbridge.services.scheduler import ReconciliationScheduler


@pytest.fixture
def reconciler():
    reconciler = MagicMock()
    reconciler.reconcile_open_orders = AsyncMock()
    reconciler.update_position_prices = AsyncMock(return_value=0)
    reconciler.daily_summary = AsyncMock(return_value=[])
    return reconciler


@pytest.fixture
def fast_settings():
    return TradingSettings(reconcile_interval_seconds=0.01, price_refresh_interval_seconds=0.01)


def make_scheduler(reconciler, trading_settings, moment):
    return ReconciliationScheduler(reconciler, trading_settings, clock=lambda: moment)


class TestScheduler:

    @pytest.mark.asyncio
    async def test_runs_jobs_until_stopped(self, reconciler, fast_settings):
        scheduler = make_scheduler(reconciler, fast_settings, datetime(2024, 1, 15, 10, 0))

        await scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.is_running
        assert reconciler.reconcile_open_orders.await_count >= 2
        assert reconciler.update_position_prices.await_count >= 1

        calls = reconciler.reconcile_open_orders.await_count
        await asyncio.sleep(0.03)
        assert reconciler.reconcile_open_orders.await_count == calls

    @pytest.mark.asyncio
    async def test_job_failure_does_not_kill_loop(self, reconciler, fast_settings):
        reconciler.reconcile_open_orders.side_effect = [RuntimeError("db down"), None, None, None, None, None]
        scheduler = make_scheduler(reconciler, fast_settings, datetime(2024, 1, 15, 10, 0))

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert reconciler.reconcile_open_orders.await_count >= 2

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_tick(self, reconciler, fast_settings):
        finished = asyncio.Event()

        async def slow_pass():
            await asyncio.sleep(0.05)
            finished.set()

        reconciler.reconcile_open_orders.side_effect = slow_pass
        scheduler = make_scheduler(reconciler, fast_settings, datetime(2024, 1, 15, 10, 0))

        await scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()

        assert finished.is_set()

    @pytest.mark.asyncio
    async def test_no_price_refresh_outside_market(self, reconciler):
        scheduler = make_scheduler(reconciler, TradingSettings(), datetime(2024, 1, 15, 17, 0))

        await scheduler.price_tick()

        reconciler.update_position_prices.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_daily_summary_once_after_report_time(self, reconciler):
        scheduler = make_scheduler(reconciler, TradingSettings(), datetime(2024, 1, 15, 18, 5))

        await scheduler.reconcile_tick()
        await scheduler.reconcile_tick()

        reconciler.daily_summary.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_summary_before_report_time(self, reconciler):
        scheduler = make_scheduler(reconciler, TradingSettings(), datetime(2024, 1, 15, 12, 0))

        await scheduler.reconcile_tick()

        reconciler.daily_summary.assert_not_awaited()
