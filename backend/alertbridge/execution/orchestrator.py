"""
Execution Orchestrator

Turns one inbound alert into zero or more broker orders:

    alert -> active strategies -> eligibility/risk -> order params
          -> PENDING order row (committed) -> broker -> SUBMITTED

Strategies are processed one after another so that risk counters read by
strategy N+1 reflect everything strategy N committed. A failure in one
strategy is logged and recorded but never stops its siblings. The alert's
terminal status is written once, after every strategy has run:

    ERROR      at least one strategy failed (message of the last failure)
    PROCESSED  otherwise, at least one order was submitted
    IGNORED    HOLD alerts, no active strategies, or no eligible strategy

Usage:
    orchestrator = ExecutionOrchestrator(broker=create_broker_client())
    await orchestrator.process_alert(user_id, alert_id, payload)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alertbridge.brokers.base import BrokerClient
from alertbridge.core.clock import now, start_of_day
from alertbridge.core.exceptions import (
    AlertBridgeError,
    CredentialsMissingError,
    OrderNotFoundError,
    ValidationError,
)
from alertbridge.db.models import AlertStatus, Order, OrderStatus, Strategy
from alertbridge.db.repositories import (
    OrderRepository,
    PositionRepository,
    SettingsRepository,
    StrategyRepository,
    TradeRepository,
)
from alertbridge.db.session import AsyncSessionLocal
from alertbridge.execution.alert_status import AlertStatusUpdater
from alertbridge.execution.credentials import CredentialStore
from alertbridge.execution.order_builder import build_order_params, resolve_quantity
from alertbridge.execution.risk import RiskEvaluator, TradingState
from alertbridge.schemas.alert import AlertPayload
from alertbridge.schemas.broker import FyersCredentials, OrderParams
from alertbridge.schemas.strategy import StrategyConfig


NO_ACTIVE_STRATEGIES = "no active strategies"
NO_ELIGIBLE_STRATEGY = "no eligible strategy"
HOLD_ALERT = "HOLD alert"


class StrategyOutcome(str, Enum):
    SUBMITTED = "submitted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StrategyResult:
    """What happened to one alert under one strategy."""
    strategy_id: Optional[int]
    outcome: StrategyOutcome
    reason: Optional[str] = None
    order_id: Optional[int] = None
    broker_order_id: Optional[str] = None


@dataclass
class AlertResult:
    alert_id: int
    status: AlertStatus
    message: Optional[str] = None
    results: List[StrategyResult] = field(default_factory=list)

    @property
    def order_ids(self) -> List[int]:
        return [r.order_id for r in self.results if r.order_id is not None]


@dataclass
class ExecutionResult:
    """Result of the direct auto-execution path."""
    skipped: bool
    reason: Optional[str] = None
    order_id: Optional[int] = None
    broker_order_id: Optional[str] = None


def _error_message(error: Exception) -> str:
    if isinstance(error, AlertBridgeError):
        return error.message
    return str(error) or error.__class__.__name__


class ExecutionOrchestrator:
    """Runs the alert-to-order pipeline against one broker client."""

    def __init__(
        self,
        broker: BrokerClient,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        credential_store: Optional[CredentialStore] = None,
        evaluator: Optional[RiskEvaluator] = None,
        clock: Callable[[], datetime] = now,
    ):
        self.broker = broker
        self.session_factory = session_factory
        self.credentials = credential_store or CredentialStore(session_factory)
        self.evaluator = evaluator or RiskEvaluator()
        self.alert_status = AlertStatusUpdater(session_factory)
        self.clock = clock

    # =========================================================================
    # Strategy pipeline
    # =========================================================================

    async def process_alert(
        self,
        user_id: int,
        alert_id: int,
        payload: Union[AlertPayload, Dict[str, Any]],
    ) -> AlertResult:
        """Process one stored alert against every active strategy of its owner."""
        log = logger.bind(user_id=user_id, alert_id=alert_id)

        try:
            alert = payload if isinstance(payload, AlertPayload) else AlertPayload.model_validate(payload)
        except PydanticValidationError as e:
            message = f"Invalid alert payload: {e.errors()[0]['msg']}"
            log.warning(message)
            return await self._finish(alert_id, AlertStatus.ERROR, message)

        if not alert.is_actionable:
            log.info(f"{alert.symbol} HOLD alert, nothing to execute")
            return await self._finish(alert_id, AlertStatus.IGNORED, HOLD_ALERT)

        try:
            async with self.session_factory() as session:
                strategies = await StrategyRepository(session).get_active_for_user(user_id)
        except Exception as e:
            log.exception(f"Failed to load strategies: {e}")
            return await self._finish(alert_id, AlertStatus.ERROR, _error_message(e))

        if not strategies:
            log.info("No active strategies")
            return await self._finish(alert_id, AlertStatus.IGNORED, NO_ACTIVE_STRATEGIES)

        results: List[StrategyResult] = []
        for strategy in strategies:
            try:
                result = await self._process_for_strategy(user_id, alert_id, alert, strategy)
            except Exception as e:
                log.exception(f"Strategy {strategy.id} failed for {alert.symbol}: {e}")
                result = StrategyResult(strategy.id, StrategyOutcome.FAILED, _error_message(e))
            results.append(result)

        failures = [r for r in results if r.outcome == StrategyOutcome.FAILED]
        if failures:
            status, message = AlertStatus.ERROR, failures[-1].reason
        elif any(r.outcome == StrategyOutcome.SUBMITTED for r in results):
            status, message = AlertStatus.PROCESSED, None
        else:
            status, message = AlertStatus.IGNORED, NO_ELIGIBLE_STRATEGY

        return await self._finish(alert_id, status, message, results)

    async def _process_for_strategy(
        self,
        user_id: int,
        alert_id: int,
        alert: AlertPayload,
        strategy: Strategy,
    ) -> StrategyResult:
        log = logger.bind(user_id=user_id, alert_id=alert_id, strategy_id=strategy.id)

        try:
            config = StrategyConfig.model_validate(strategy.config or {})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid configuration for strategy {strategy.id}: {e.errors()[0]['msg']}") from e

        moment = self.clock()
        decision = self.evaluator.check_eligibility(alert.symbol, config, moment)
        if decision.allowed:
            state = await self._load_trading_state(user_id, moment)
            decision = self.evaluator.evaluate(
                alert, config, state, moment, quantity=resolve_quantity(alert, config)
            )
        if not decision.allowed:
            log.info(f"{alert.symbol} skipped by '{strategy.name}': {decision.reason}")
            return StrategyResult(strategy.id, StrategyOutcome.SKIPPED, decision.reason)

        params = build_order_params(alert, config)
        if params is None:
            return StrategyResult(strategy.id, StrategyOutcome.SKIPPED, "no order parameters")

        order = await self.execute_order(user_id, params, alert_id=alert_id, strategy_id=strategy.id)
        return StrategyResult(
            strategy.id,
            StrategyOutcome.SUBMITTED,
            order_id=order.id,
            broker_order_id=order.broker_order_id,
        )

    async def _load_trading_state(self, user_id: int, moment: datetime) -> TradingState:
        async with self.session_factory() as session:
            active = await PositionRepository(session).count_active(user_id)
            pnl = await TradeRepository(session).get_realized_pnl_since(user_id, start_of_day(moment))
        return TradingState(active_positions=active, today_realized_pnl=float(pnl))

    # =========================================================================
    # Order submission
    # =========================================================================

    async def execute_order(
        self,
        user_id: int,
        params: OrderParams,
        alert_id: Optional[int] = None,
        strategy_id: Optional[int] = None,
        credentials: Optional[FyersCredentials] = None,
    ) -> Order:
        """
        Record intent, then submit.

        The PENDING row is committed before the broker is called so a crash
        or broker failure leaves a visible trace. On broker failure the row
        stays PENDING with no broker order id and the error propagates.
        """
        log = logger.bind(user_id=user_id, alert_id=alert_id, strategy_id=strategy_id)

        if credentials is None:
            credentials = await self.credentials.get_credentials(user_id)
        if credentials is None:
            raise CredentialsMissingError()

        async with self.session_factory() as session:
            order = await OrderRepository(session).create(
                user_id=user_id,
                strategy_id=strategy_id,
                alert_id=alert_id,
                symbol=params.symbol,
                side=params.side.value,
                quantity=params.quantity,
                order_type=params.order_type.value,
                product_type=params.product_type.value,
                price=params.recorded_price,
                stop_price=params.stop_price,
                status=OrderStatus.PENDING.value,
                created_at=self.clock(),
            )
            await session.commit()
            order_id = order.id

        log.info(f"Order {order_id} PENDING: {params.side.value} {params.quantity} {params.symbol}")

        placed = await self.broker.place_order(credentials.access_token, params)

        async with self.session_factory() as session:
            repo = OrderRepository(session)
            order = await repo.get(order_id)
            if order is None:
                raise OrderNotFoundError(f"Order {order_id} vanished before submission was recorded")
            await repo.update(
                order,
                status=OrderStatus.SUBMITTED.value,
                broker_order_id=placed.order_id,
                broker_response=[placed.raw],
                updated_at=self.clock(),
            )
            await session.commit()

        log.info(f"Order {order_id} SUBMITTED as {placed.order_id}")
        return order

    # =========================================================================
    # Direct auto-execution
    # =========================================================================

    async def auto_execute(
        self,
        user_id: int,
        alert_id: Optional[int],
        payload: Union[AlertPayload, Dict[str, Any]],
    ) -> ExecutionResult:
        """
        Single-order path used for manual and webhook-triggered execution.

        Bypasses strategies and runs with default configuration, but only when
        the user has enabled auto execution and holds an access token.
        """
        log = logger.bind(user_id=user_id, alert_id=alert_id)
        alert = payload if isinstance(payload, AlertPayload) else AlertPayload.model_validate(payload)

        async with self.session_factory() as session:
            user_settings = await SettingsRepository(session).get_by_user(user_id)
        if user_settings is None or not user_settings.auto_execute_enabled:
            log.info("Auto execution disabled")
            return ExecutionResult(skipped=True, reason="auto execution disabled")

        credentials = await self.credentials.get_credentials(user_id)
        if credentials is None:
            log.info("Auto execution skipped: no access token")
            return ExecutionResult(skipped=True, reason="no access token")

        params = build_order_params(alert, StrategyConfig())
        if params is None:
            if alert_id is not None:
                await self.alert_status.update_status(alert_id, AlertStatus.IGNORED, HOLD_ALERT)
            return ExecutionResult(skipped=True, reason=HOLD_ALERT)

        try:
            order = await self.execute_order(user_id, params, alert_id=alert_id, credentials=credentials)
        except Exception as e:
            log.error(f"Auto execution failed for {alert.symbol}: {e}")
            if alert_id is not None:
                await self.alert_status.update_status(alert_id, AlertStatus.ERROR, _error_message(e))
            raise

        if alert_id is not None:
            await self.alert_status.update_status(alert_id, AlertStatus.PROCESSED)
        return ExecutionResult(skipped=False, order_id=order.id, broker_order_id=order.broker_order_id)

    async def _finish(
        self,
        alert_id: int,
        status: AlertStatus,
        message: Optional[str],
        results: Optional[List[StrategyResult]] = None,
    ) -> AlertResult:
        await self.alert_status.update_status(alert_id, status, message)
        logger.bind(alert_id=alert_id).info(
            f"Alert {alert_id} {status.value}" + (f": {message}" if message else "")
        )
        return AlertResult(alert_id, status, message, results or [])
