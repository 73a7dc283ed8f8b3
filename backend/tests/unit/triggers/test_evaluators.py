"""触发条件评估器测试"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from automation.common.exceptions import ConditionConfigError
from automation.pipeline.models import EventDefinition
from automation.triggers.base import StateAccessors
from automation.triggers.evaluators import (
    MarketConditionEvaluator,
    PriceChangeEvaluator,
    TimeScheduleEvaluator,
    WalletBalanceEvaluator,
)


class FakeAccessors(StateAccessors):
    """固定返回值的访问器"""

    def __init__(
        self,
        current: float = 100.0,
        previous: float | None = None,
        balance: float = 0.0,
        now: datetime | None = None,
        last_triggered: dict[str, datetime] | None = None,
    ):
        self.current = current
        self.previous = previous
        self.balance = balance
        self._now = now or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._last = last_triggered or {}

    async def get_current_price(self, token: str) -> float:
        return self.current

    async def get_previous_price(self, token: str) -> float | None:
        return self.previous

    async def get_balance(self, token: str) -> float:
        return self.balance

    def now(self) -> datetime:
        return self._now

    def last_triggered(self, event_id: str) -> datetime | None:
        return self._last.get(event_id)


def _event(event_type: str, config: dict) -> EventDefinition:
    return EventDefinition(id="e1", name="测试事件", type=event_type, config=config)


def _price_event(direction: str = "Increase", pct: float = 10) -> EventDefinition:
    return _event("price_change", {"token": "SEI", "direction": direction, "percentage": pct})


def _at(hour: int, minute: int, day: int = 1) -> datetime:
    return datetime(2025, 1, day, hour, minute, tzinfo=timezone.utc)


class TestPriceChangeEvaluator:
    """价格变动"""

    @pytest.mark.asyncio
    async def test_increase_at_threshold(self):
        evaluator = PriceChangeEvaluator()
        assert await evaluator.evaluate(_price_event(), FakeAccessors(110.0, 100.0)) is True

    @pytest.mark.asyncio
    async def test_increase_below_threshold(self):
        evaluator = PriceChangeEvaluator()
        assert await evaluator.evaluate(_price_event(), FakeAccessors(109.0, 100.0)) is False

    @pytest.mark.asyncio
    async def test_decrease(self):
        evaluator = PriceChangeEvaluator()
        event = _price_event("Decrease", 5)

        assert await evaluator.evaluate(event, FakeAccessors(95.0, 100.0)) is True
        assert await evaluator.evaluate(event, FakeAccessors(96.0, 100.0)) is False
        assert await evaluator.evaluate(event, FakeAccessors(120.0, 100.0)) is False

    @pytest.mark.asyncio
    async def test_any_direction(self):
        evaluator = PriceChangeEvaluator()
        event = _price_event("Any", 5)

        assert await evaluator.evaluate(event, FakeAccessors(94.0, 100.0)) is True
        assert await evaluator.evaluate(event, FakeAccessors(106.0, 100.0)) is True
        assert await evaluator.evaluate(event, FakeAccessors(103.0, 100.0)) is False

    @pytest.mark.asyncio
    async def test_no_previous_price(self):
        evaluator = PriceChangeEvaluator()
        assert await evaluator.evaluate(_price_event(), FakeAccessors(500.0, None)) is False

    @pytest.mark.asyncio
    async def test_direction_case_insensitive(self):
        evaluator = PriceChangeEvaluator()
        event = _event("price_change", {"token": "SEI", "changeType": "increase", "percentage": 10})
        assert await evaluator.evaluate(event, FakeAccessors(110.0, 100.0)) is True

    def test_invalid_config(self):
        evaluator = PriceChangeEvaluator()
        event = _event("price_change", {"token": "SEI", "direction": "Sideways", "percentage": 10})
        with pytest.raises(ConditionConfigError) as exc_info:
            evaluator.parse_config(event)
        assert exc_info.value.details["event_id"] == "e1"


class TestWalletBalanceEvaluator:
    """余额阈值"""

    @pytest.mark.asyncio
    async def test_below_is_strict(self):
        evaluator = WalletBalanceEvaluator()
        event = _event("wallet_balance", {"token": "USDC", "threshold_type": "Below", "amount": 50})

        assert await evaluator.evaluate(event, FakeAccessors(balance=49.0)) is True
        assert await evaluator.evaluate(event, FakeAccessors(balance=50.0)) is False

    @pytest.mark.asyncio
    async def test_above_is_strict(self):
        evaluator = WalletBalanceEvaluator()
        event = _event("wallet_balance", {"token": "USDC", "thresholdType": "Above", "amount": 50})

        assert await evaluator.evaluate(event, FakeAccessors(balance=51.0)) is True
        assert await evaluator.evaluate(event, FakeAccessors(balance=50.0)) is False


class TestTimeScheduleEvaluator:
    """每日定时"""

    @pytest.mark.asyncio
    async def test_exact_minute(self):
        evaluator = TimeScheduleEvaluator(window_minutes=1)
        event = _event("time_schedule", {"time": "09:00"})

        assert await evaluator.evaluate(event, FakeAccessors(now=_at(9, 0))) is True
        assert await evaluator.evaluate(event, FakeAccessors(now=_at(9, 1))) is False
        assert await evaluator.evaluate(event, FakeAccessors(now=_at(8, 59))) is False

    @pytest.mark.asyncio
    async def test_window_tolerates_late_tick(self):
        evaluator = TimeScheduleEvaluator(window_minutes=5)
        event = _event("time_schedule", {"time": "09:00"})

        assert await evaluator.evaluate(event, FakeAccessors(now=_at(9, 4))) is True
        assert await evaluator.evaluate(event, FakeAccessors(now=_at(9, 5))) is False

    @pytest.mark.asyncio
    async def test_fires_once_per_day(self):
        evaluator = TimeScheduleEvaluator(window_minutes=5)
        event = _event("time_schedule", {"time": "09:00"})
        accessors = FakeAccessors(now=_at(9, 3), last_triggered={"e1": _at(9, 1)})

        assert await evaluator.evaluate(event, accessors) is False

    @pytest.mark.asyncio
    async def test_fires_again_next_day(self):
        evaluator = TimeScheduleEvaluator(window_minutes=5)
        event = _event("time_schedule", {"time": "09:00"})
        accessors = FakeAccessors(now=_at(9, 1, day=2), last_triggered={"e1": _at(9, 1)})

        assert await evaluator.evaluate(event, accessors) is True

    @pytest.mark.asyncio
    async def test_window_across_midnight(self):
        evaluator = TimeScheduleEvaluator(window_minutes=10)
        event = _event("time_schedule", {"time": "23:55"})

        assert await evaluator.evaluate(event, FakeAccessors(now=_at(0, 3, day=2))) is True
        assert await evaluator.evaluate(event, FakeAccessors(now=_at(0, 6, day=2))) is False

    @pytest.mark.asyncio
    async def test_timezone(self):
        try:
            ZoneInfo("Asia/Shanghai")
        except ZoneInfoNotFoundError:
            pytest.skip("系统缺少 IANA 时区数据")
        evaluator = TimeScheduleEvaluator(window_minutes=1)
        event = _event("time_schedule", {"time": "09:00", "timezone": "Asia/Shanghai"})

        assert await evaluator.evaluate(event, FakeAccessors(now=_at(1, 0))) is True

    def test_invalid_time(self):
        evaluator = TimeScheduleEvaluator()
        for bad in ("9:00", "24:00", "09:60", "nine"):
            with pytest.raises(ConditionConfigError):
                evaluator.parse_config(_event("time_schedule", {"time": bad}))

    def test_invalid_timezone(self):
        evaluator = TimeScheduleEvaluator()
        with pytest.raises(ConditionConfigError):
            evaluator.parse_config(_event("time_schedule", {"time": "09:00", "timezone": "Mars/Base"}))

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            TimeScheduleEvaluator(window_minutes=0)


class TestMarketConditionEvaluator:
    @pytest.mark.asyncio
    async def test_never_fires(self):
        evaluator = MarketConditionEvaluator()
        event = _event("market_condition", {"trend": "bullish"})
        assert await evaluator.evaluate(event, FakeAccessors()) is False
