"""
Tests for the Risk Evaluator

Pure eligibility and risk-limit decisions; no database involved.
"""

import pytest
from datetime import datetime

from alertbridge.execution.risk import (
    DAILY_LOSS_LIMIT,
    MAX_POSITIONS,
    OUTSIDE_TRADING_HOURS,
    POSITION_SIZE_LIMIT,
    SYMBOL_BLOCKED,
    SYMBOL_NOT_ALLOWED,
    RiskEvaluator,
    TradingState,
    is_symbol_allowed,
    is_within_trading_hours,
)
from alertbridge.schemas.alert import AlertPayload
from alertbridge.schemas.strategy import StrategyConfig


@pytest.fixture
def evaluator():
    return RiskEvaluator()


def alert(symbol="RELIANCE", action="BUY", price=2500.0, quantity=1):
    return AlertPayload(symbol=symbol, action=action, price=price, quantity=quantity)


def at(hour, minute, second=0):
    return datetime(2024, 1, 15, hour, minute, second)


class TestSymbolLists:
    """Allow/block list handling."""

    def test_blocked_symbol_rejected_even_if_allowed(self):
        config = StrategyConfig(allowedSymbols=["X"], blockedSymbols=["X"])
        assert is_symbol_allowed("X", config) == SYMBOL_BLOCKED

    def test_symbol_outside_allowlist_rejected(self):
        config = StrategyConfig(allowedSymbols=["TCS"])
        assert is_symbol_allowed("RELIANCE", config) == SYMBOL_NOT_ALLOWED

    def test_empty_allowlist_allows_everything(self):
        assert is_symbol_allowed("ANYTHING", StrategyConfig()) is None

    def test_lists_are_case_insensitive(self):
        config = StrategyConfig(blockedSymbols=["reliance"])
        assert is_symbol_allowed("RELIANCE", config) == SYMBOL_BLOCKED


class TestTradingHours:
    """Inclusive trading window."""

    @pytest.mark.parametrize("moment", [at(9, 15), at(12, 0), at(15, 30), at(15, 30, 45)])
    def test_inside_window(self, moment):
        assert is_within_trading_hours(StrategyConfig(), moment)

    @pytest.mark.parametrize("moment", [at(9, 14, 59), at(15, 31), at(3, 0)])
    def test_outside_window(self, moment):
        assert not is_within_trading_hours(StrategyConfig(), moment)

    def test_custom_window(self):
        config = StrategyConfig(tradingHours={"startTime": "10:00", "endTime": "11:00"})
        assert not is_within_trading_hours(config, at(9, 30))
        assert is_within_trading_hours(config, at(10, 0))


class TestEvaluate:
    """Full evaluation order and limits."""

    def test_allows_within_all_limits(self, evaluator):
        decision = evaluator.evaluate(alert(), StrategyConfig(), TradingState(), at(10, 30))
        assert decision.allowed
        assert decision.reason is None

    def test_symbol_checked_before_hours(self, evaluator):
        config = StrategyConfig(blockedSymbols=["RELIANCE"])
        decision = evaluator.evaluate(alert(), config, TradingState(), at(20, 0))
        assert decision.reason == SYMBOL_BLOCKED

    def test_outside_hours(self, evaluator):
        decision = evaluator.evaluate(alert(), StrategyConfig(), TradingState(), at(16, 0))
        assert not decision.allowed
        assert decision.reason == OUTSIDE_TRADING_HOURS

    def test_max_positions_boundary(self, evaluator):
        config = StrategyConfig(riskParams={"maxPositions": 3})

        full = evaluator.evaluate(alert(), config, TradingState(active_positions=3), at(10, 0))
        assert full.reason == MAX_POSITIONS

        one_left = evaluator.evaluate(alert(), config, TradingState(active_positions=2), at(10, 0))
        assert one_left.allowed

    def test_daily_loss_boundary(self, evaluator):
        config = StrategyConfig(riskParams={"dailyLossLimit": 10000})

        at_limit = evaluator.evaluate(alert(), config, TradingState(today_realized_pnl=-10000), at(10, 0))
        assert at_limit.reason == DAILY_LOSS_LIMIT

        one_cent_above = evaluator.evaluate(
            alert(), config, TradingState(today_realized_pnl=-9999.99), at(10, 0)
        )
        assert one_cent_above.allowed

    def test_position_size_limit(self, evaluator):
        config = StrategyConfig(riskParams={"maxPositionSize": 100000})

        exact = evaluator.evaluate(alert(price=2500, quantity=40), config, TradingState(), at(10, 0))
        assert exact.allowed

        over = evaluator.evaluate(alert(price=2500, quantity=41), config, TradingState(), at(10, 0))
        assert over.reason == POSITION_SIZE_LIMIT

    @pytest.mark.parametrize("price,quantity,limit", [
        (2505.15, 3, 7515.45),
        (0.1, 3, 0.3),
    ])
    def test_position_size_exact_limit_with_inexact_floats(self, evaluator, price, quantity, limit):
        config = StrategyConfig(riskParams={"maxPositionSize": limit})

        decision = evaluator.evaluate(
            alert(price=price, quantity=quantity), config, TradingState(), at(10, 0)
        )
        assert decision.allowed

        over = evaluator.evaluate(
            alert(price=price, quantity=quantity + 1), config, TradingState(), at(10, 0)
        )
        assert over.reason == POSITION_SIZE_LIMIT

    def test_position_size_uses_candidate_quantity(self, evaluator):
        config = StrategyConfig(riskParams={"maxPositionSize": 10000})
        decision = evaluator.evaluate(
            alert(price=2500, quantity=None), config, TradingState(), at(10, 0), quantity=5
        )
        assert decision.reason == POSITION_SIZE_LIMIT

    def test_market_alert_without_price_skips_size_check(self, evaluator):
        config = StrategyConfig(riskParams={"maxPositionSize": 1})
        decision = evaluator.evaluate(alert(price=None, quantity=100), config, TradingState(), at(10, 0))
        assert decision.allowed

    def test_defaults_come_from_settings(self):
        limits = StrategyConfig().risk_params
        assert limits.max_positions == 10
        assert limits.daily_loss_limit == 10000
        assert limits.max_position_size == 100000
