"""
Reconciliation Scheduler

Background loops driving the reconciler:

- order reconciliation every ``reconcile_interval_seconds``
- position price refresh every ``price_refresh_interval_seconds``, only
  inside market hours
- a daily trading summary once per day after ``daily_report_time``

``stop()`` signals the loops and waits for any in-flight tick to finish, so
a reconciliation pass is never cut off between its trade insert and its
position update.
"""

import asyncio
from datetime import date, datetime
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from alertbridge.core.clock import now, parse_hhmm
from alertbridge.core.config import TradingSettings, settings
from alertbridge.execution.reconciler import OrderReconciler


class ReconciliationScheduler:
    """Runs the periodic reconciliation jobs as asyncio tasks."""

    def __init__(
        self,
        reconciler: OrderReconciler,
        trading_settings: Optional[TradingSettings] = None,
        clock: Callable[[], datetime] = now,
        stop_timeout_seconds: float = 30.0,
    ):
        self.reconciler = reconciler
        self.config = trading_settings or settings.trading
        self.clock = clock
        self.stop_timeout_seconds = stop_timeout_seconds

        self._market_open = parse_hhmm(self.config.market_open_time)
        self._market_close = parse_hhmm(self.config.market_close_time)
        self._report_time = parse_hhmm(self.config.daily_report_time)
        self._last_report_date: Optional[date] = None

        self._stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def is_market_open(self, moment: Optional[datetime] = None) -> bool:
        current = (moment or self.clock()).time().replace(second=0, microsecond=0)
        return self._market_open <= current <= self._market_close

    async def start(self) -> None:
        """Start the background loops."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        logger.info(
            f"Starting reconciliation scheduler (orders every {self.config.reconcile_interval_seconds}s, "
            f"prices every {self.config.price_refresh_interval_seconds}s)"
        )
        self._tasks = [
            asyncio.create_task(
                self._run_periodically("reconcile", self.config.reconcile_interval_seconds, self.reconcile_tick)
            ),
            asyncio.create_task(
                self._run_periodically("prices", self.config.price_refresh_interval_seconds, self.price_tick)
            ),
        ]

    async def stop(self) -> None:
        """Stop the loops, letting the current tick complete."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        done, pending = await asyncio.wait(self._tasks, timeout=self.stop_timeout_seconds)
        for task in pending:
            logger.warning(f"Scheduler task {task.get_name()} did not stop in time, cancelling")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Reconciliation scheduler stopped")

    async def _run_periodically(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[None]],
    ) -> None:
        while not self._stop_event.is_set():
            try:
                await tick()
            except Exception as e:
                logger.exception(f"Scheduler job '{name}' failed: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def reconcile_tick(self) -> None:
        await self.reconciler.reconcile_open_orders()
        await self._maybe_report()

    async def price_tick(self) -> None:
        if not self.is_market_open():
            return
        updated = await self.reconciler.update_position_prices()
        if updated:
            logger.debug(f"Refreshed prices for {updated} positions")

    async def _maybe_report(self) -> None:
        moment = self.clock()
        if moment.time() < self._report_time or self._last_report_date == moment.date():
            return
        self._last_report_date = moment.date()
        await self.reconciler.daily_summary(moment)
