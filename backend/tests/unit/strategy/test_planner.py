"""策略规划器测试"""

import asyncio

import pytest
from pydantic import ValidationError

from automation.common.enums import StrategyArchetype, Volatility
from automation.common.exceptions import AgentError
from automation.strategy.analysis import MarketSnapshot, analyze_market
from automation.strategy.planner import (
    StrategyConfig,
    StrategyPlanner,
    get_dca_intervals,
    get_grid_levels,
)
from tests.mocks.agent import MockExecutionAgent, MockMarketDataProvider


def _snapshot(change: float, volume: float = 5_000_000, price: float = 1.0) -> MarketSnapshot:
    return MarketSnapshot(token="SEI", current_price=price, price_change_24h=change, volume_24h=volume)


class TestHelpers:
    def test_dca_intervals(self):
        assert get_dca_intervals("1 week") == 7
        assert get_dca_intervals("1 Month") == 30
        assert get_dca_intervals("3 months") == 90
        assert get_dca_intervals("forever") == 30
        assert get_dca_intervals(None) == 30

    def test_grid_levels(self):
        assert get_grid_levels(50) == 4
        assert get_grid_levels(100) == 6
        assert get_grid_levels(500) == 8
        assert get_grid_levels(5000) == 10


class TestStrategyConfig:
    def test_defaults(self):
        config = StrategyConfig(budget="250")

        assert config.token == "SEI"
        assert config.budget == 250.0
        assert config.duration == "1 month"
        assert config.strategy_type == "auto"

    def test_camel_case_type(self):
        assert StrategyConfig(budget=1, strategyType="Grid Trading").strategy_type == "grid trading"

    def test_invalid_budget(self):
        with pytest.raises(ValidationError):
            StrategyConfig(budget=-5)


class TestSelectArchetype:
    """推荐规则"""

    def test_bearish_high_volatility(self):
        conditions = analyze_market(-12.0, 5_000_000)
        assert StrategyPlanner.select_archetype(conditions) == StrategyArchetype.DCA

    def test_bullish_low_volatility(self):
        # 同一涨跌幅不会同时满足看涨与低波动，直接改写分类结果
        conditions = analyze_market(6.0, 5_000_000)
        conditions.volatility = Volatility.LOW
        assert StrategyPlanner.select_archetype(conditions) == StrategyArchetype.MOMENTUM

    def test_high_volatility(self):
        conditions = analyze_market(12.0, 500_000)
        assert StrategyPlanner.select_archetype(conditions) == StrategyArchetype.GRID_TRADING

    def test_neutral(self):
        conditions = analyze_market(0.5, 5_000_000)
        assert StrategyPlanner.select_archetype(conditions) == StrategyArchetype.BALANCED_DCA

    def test_no_data(self):
        assert StrategyPlanner.select_archetype(None) == StrategyArchetype.BALANCED_DCA


class TestPlans:
    """计划参数"""

    def test_dca(self):
        plan = StrategyPlanner().plan(
            StrategyConfig(budget=300, duration="1 month", strategy_type="dca"),
            _snapshot(-3.0),
        )

        assert plan.archetype == StrategyArchetype.DCA
        assert plan.parameters["intervals"] == 30
        assert plan.parameters["amountPerInterval"] == pytest.approx(10.0)
        assert plan.initial_amount == pytest.approx(10.0)

    def test_momentum(self):
        plan = StrategyPlanner().plan(
            StrategyConfig(budget=1000, strategy_type="momentum"),
            _snapshot(3.0, price=2.0),
        )

        assert plan.parameters["immediateInvestment"] == pytest.approx(600.0)
        assert plan.parameters["reserveFunds"] == pytest.approx(400.0)
        assert plan.parameters["stopLoss"] == pytest.approx(1.9)
        assert plan.parameters["takeProfit"] == pytest.approx(2.3)
        assert plan.initial_amount == pytest.approx(600.0)

    def test_grid_high_volatility(self):
        plan = StrategyPlanner().plan(StrategyConfig(budget=300), _snapshot(15.0, price=1.0))

        assert plan.archetype == StrategyArchetype.GRID_TRADING
        assert plan.parameters["gridLevels"] == 6
        assert plan.parameters["gridSpacing"] == 0.03
        buys = plan.parameters["buyOrders"]
        sells = plan.parameters["sellOrders"]
        assert len(buys) == len(sells) == 3
        assert buys[0]["price"] == pytest.approx(0.97)
        assert sells[2]["price"] == pytest.approx(1.09)
        assert buys[0]["amount"] == pytest.approx(50.0)
        assert plan.initial_amount == pytest.approx(150.0)

    def test_grid_explicit_normal_volatility(self):
        plan = StrategyPlanner().plan(
            StrategyConfig(budget=50, strategy_type="grid trading"),
            _snapshot(3.0),
        )

        assert plan.parameters["gridSpacing"] == 0.02
        assert plan.parameters["gridLevels"] == 4

    def test_balanced(self):
        plan = StrategyPlanner().plan(StrategyConfig(budget=400), _snapshot(0.5))

        assert plan.archetype == StrategyArchetype.BALANCED_DCA
        assert plan.parameters["weeklyAmount"] == pytest.approx(100.0)
        assert plan.fallback is False

    def test_explicit_type_without_data_falls_back(self):
        plan = StrategyPlanner().plan(StrategyConfig(budget=400, strategy_type="momentum"), None)

        assert plan.archetype == StrategyArchetype.BALANCED_DCA
        assert plan.fallback is True
        assert plan.to_dict()["marketConditions"] is None

    def test_to_dict(self):
        data = StrategyPlanner().plan(StrategyConfig(budget=400), _snapshot(0.5)).to_dict()

        assert data["strategy"] == "Balanced DCA"
        assert data["marketConditions"]["trend"] == "neutral"
        assert data["marketSnapshot"]["currentPrice"] == 1.0
        assert set(data) >= {"parameters", "rationale", "riskAssessment", "expectedReturn", "timeframe", "steps"}


class TestPlannerIO:
    """行情获取与首笔买入"""

    @pytest.mark.asyncio
    async def test_market_data_unavailable(self):
        market = MockMarketDataProvider(None)
        planner = StrategyPlanner(market)

        plan = await planner.build_plan(StrategyConfig(budget=100, token="ATOM"))

        assert plan.archetype == StrategyArchetype.BALANCED_DCA
        assert plan.fallback is True
        assert market.requests == ["ATOM"]

    @pytest.mark.asyncio
    async def test_market_data_deadline(self):
        market = MockMarketDataProvider(_snapshot(0.5))

        async def stalled(token):
            await asyncio.sleep(1)

        market.get_snapshot = stalled
        planner = StrategyPlanner(market, snapshot_timeout=0.05)

        plan = await planner.build_plan(StrategyConfig(budget=100))

        assert plan.archetype == StrategyArchetype.BALANCED_DCA
        assert plan.fallback is True

    @pytest.mark.asyncio
    async def test_no_provider(self):
        plan = await StrategyPlanner().build_plan(StrategyConfig(budget=100))
        assert plan.fallback is True

    @pytest.mark.asyncio
    async def test_execute_swaps_initial_amount(self):
        agent = MockExecutionAgent()
        planner = StrategyPlanner(MockMarketDataProvider(_snapshot(-12.0)), quote_token="USDT")

        result = await planner.execute(StrategyConfig(budget=70, duration="1 week"), agent)

        assert result["strategy"] == "DCA"
        assert result["execution"]["swapped"] is True
        assert agent.calls_to("swap") == [("swap", "USDT", "SEI", pytest.approx(10.0))]

    @pytest.mark.asyncio
    async def test_execute_quote_override(self):
        agent = MockExecutionAgent()
        planner = StrategyPlanner(MockMarketDataProvider(_snapshot(0.5)))

        await planner.execute(StrategyConfig(budget=40, quoteToken="DAI"), agent)

        assert agent.calls_to("swap")[0][1] == "DAI"

    @pytest.mark.asyncio
    async def test_execute_swap_failure_propagates(self):
        agent = MockExecutionAgent()
        agent.fail_on("swap", "滑点过大")
        planner = StrategyPlanner(MockMarketDataProvider(_snapshot(0.5)))

        with pytest.raises(AgentError):
            await planner.execute(StrategyConfig(budget=40), agent)
