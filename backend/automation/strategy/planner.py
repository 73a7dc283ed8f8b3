"""
管道自动化引擎 — 策略规划器

推荐规则（按顺序，首个命中生效）：
1. 看跌 + 高波动 → DCA
2. 看涨 + 低波动 → Momentum
3. 高波动 → Grid Trading
4. 其余 → Balanced DCA

行情不可用时降级为 Balanced DCA，不报错。
推荐模式只生成计划；动作模式额外通过执行代理完成首笔买入。
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from automation.agent.base import ExecutionAgent
from automation.common.enums import MarketTrend, StrategyArchetype, Volatility
from automation.common.exceptions import MarketDataUnavailableError
from automation.common.logging import get_logger
from automation.common.utils import parse_amount

from .analysis import MarketConditions, MarketSnapshot, analyze_market
from .market_data import MarketDataProvider

logger = get_logger(__name__)

DCA_INTERVALS = {"1 week": 7, "1 month": 30, "3 months": 90}
DEFAULT_DCA_INTERVALS = 30
DCA_DIP_THRESHOLD = 0.05

MOMENTUM_IMMEDIATE_RATIO = 0.6
MOMENTUM_RESERVE_RATIO = 0.4
MOMENTUM_STOP_LOSS = 0.95
MOMENTUM_TAKE_PROFIT = 1.15

GRID_SPACING_HIGH_VOLATILITY = 0.03
GRID_SPACING_DEFAULT = 0.02

BALANCED_WEEKS = 4

# 显式指定的策略类型（小写）
EXPLICIT_TYPES = {
    "dca": StrategyArchetype.DCA,
    "momentum": StrategyArchetype.MOMENTUM,
    "grid trading": StrategyArchetype.GRID_TRADING,
}


def get_dca_intervals(duration: str | None) -> int:
    """1 week → 7，1 month → 30，3 months → 90，其余 30"""
    return DCA_INTERVALS.get((duration or "").strip().lower(), DEFAULT_DCA_INTERVALS)


def get_grid_levels(budget: float) -> int:
    """按预算选择网格层数"""
    if budget < 100:
        return 4
    if budget < 500:
        return 6
    if budget < 1000:
        return 8
    return 10


class StrategyConfig(BaseModel):
    """策略动作 / 推荐请求配置"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    token: str = Field(default="SEI", min_length=1)
    budget: float
    duration: str = Field(default="1 month")
    strategy_type: str = Field(
        default="auto",
        validation_alias=AliasChoices("strategy_type", "strategyType"),
    )
    quote_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("quote_token", "quoteToken"),
    )

    @field_validator("budget", mode="before")
    @classmethod
    def validate_budget(cls, v: Any) -> float:
        return parse_amount(v, "budget")

    @field_validator("strategy_type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return (v or "auto").strip().lower()


@dataclass
class StrategyPlan:
    """策略计划"""
    archetype: StrategyArchetype
    token: str
    budget: float
    parameters: dict[str, Any]
    rationale: str
    risk_assessment: str
    expected_return: str
    timeframe: str
    steps: list[str] = field(default_factory=list)
    initial_amount: float = 0.0
    conditions: MarketConditions | None = None
    snapshot: MarketSnapshot | None = None
    fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.archetype.value,
            "token": self.token,
            "budget": self.budget,
            "parameters": self.parameters,
            "rationale": self.rationale,
            "riskAssessment": self.risk_assessment,
            "expectedReturn": self.expected_return,
            "timeframe": self.timeframe,
            "steps": self.steps,
            "initialAmount": self.initial_amount,
            "marketConditions": self.conditions.to_dict() if self.conditions else None,
            "marketSnapshot": self.snapshot.to_dict() if self.snapshot else None,
            "fallback": self.fallback,
        }


class StrategyPlanner:
    """
    策略规划器

    使用示例:
        planner = StrategyPlanner(market_data, quote_token="USDC")
        plan = await planner.build_plan(StrategyConfig(budget=300))
    """

    def __init__(
        self,
        market_data: MarketDataProvider | None = None,
        quote_token: str = "USDC",
        snapshot_timeout: float | None = 10.0,
    ):
        self.market_data = market_data
        self.quote_token = quote_token
        self.snapshot_timeout = snapshot_timeout

    # ========================================
    # 行情
    # ========================================

    async def fetch_snapshot(self, token: str) -> MarketSnapshot | None:
        """
        获取行情，不可用或超过 snapshot_timeout 时返回 None

        snapshot_timeout 覆盖数据源内部的全部重试，需小于动作超时，
        否则降级之前整个策略动作就已超时。
        """
        if self.market_data is None:
            logger.warning(f"未配置行情数据源，策略降级: {token}")
            return None
        try:
            if self.snapshot_timeout is None:
                return await self.market_data.get_snapshot(token)
            return await asyncio.wait_for(
                self.market_data.get_snapshot(token), timeout=self.snapshot_timeout
            )
        except MarketDataUnavailableError as e:
            logger.warning(f"行情不可用，策略降级为 Balanced DCA: {e.message}")
            return None
        except asyncio.TimeoutError:
            logger.warning(
                f"行情获取超时 ({self.snapshot_timeout}s)，策略降级为 Balanced DCA: {token}"
            )
            return None

    # ========================================
    # 规划
    # ========================================

    @staticmethod
    def select_archetype(conditions: MarketConditions | None) -> StrategyArchetype:
        """按规则选择策略"""
        if conditions is None:
            return StrategyArchetype.BALANCED_DCA
        if conditions.trend == MarketTrend.BEARISH and conditions.volatility == Volatility.HIGH:
            return StrategyArchetype.DCA
        if conditions.trend == MarketTrend.BULLISH and conditions.volatility == Volatility.LOW:
            return StrategyArchetype.MOMENTUM
        if conditions.volatility == Volatility.HIGH:
            return StrategyArchetype.GRID_TRADING
        return StrategyArchetype.BALANCED_DCA

    def recommend(
        self,
        config: StrategyConfig,
        snapshot: MarketSnapshot | None,
    ) -> StrategyPlan:
        """根据市场状态推荐策略"""
        conditions = self._analyze(snapshot)
        return self._build(self.select_archetype(conditions), config, conditions, snapshot)

    def plan(
        self,
        config: StrategyConfig,
        snapshot: MarketSnapshot | None,
    ) -> StrategyPlan:
        """
        生成计划

        显式的 dca / momentum / grid trading 优先，其余（auto 等）按推荐；
        没有行情时一律降级为 Balanced DCA。
        """
        conditions = self._analyze(snapshot)
        explicit = EXPLICIT_TYPES.get(config.strategy_type)
        if conditions is None or explicit is None:
            return self.recommend(config, snapshot)
        return self._build(explicit, config, conditions, snapshot)

    async def build_plan(self, config: StrategyConfig) -> StrategyPlan:
        """获取行情并生成计划（推荐模式，不调用执行代理）"""
        snapshot = await self.fetch_snapshot(config.token)
        plan = self.plan(config, snapshot)
        logger.info(
            f"策略计划: {plan.archetype.value} token={plan.token} budget={plan.budget}",
            extra={"strategy": plan.archetype.value, "fallback": plan.fallback},
        )
        return plan

    # ========================================
    # 执行
    # ========================================

    async def execute(self, config: StrategyConfig, agent: ExecutionAgent) -> dict[str, Any]:
        """
        动作模式：生成计划并完成首笔买入

        Returns:
            {strategy, status, plan, execution}

        Raises:
            AgentError: 首笔兑换失败
        """
        plan = await self.build_plan(config)
        execution = await self.execute_initial(plan, agent, config.quote_token)
        return {
            "strategy": plan.archetype.value,
            "status": "executed",
            "plan": plan.to_dict(),
            "execution": execution,
        }

    async def execute_initial(
        self,
        plan: StrategyPlan,
        agent: ExecutionAgent,
        quote_token: str | None = None,
    ) -> dict[str, Any]:
        """用计价代币买入首笔仓位"""
        quote = quote_token or self.quote_token
        if plan.initial_amount <= 0:
            return {"swapped": False, "amount": 0.0}

        tx = await agent.swap(quote, plan.token, plan.initial_amount)
        logger.info(
            f"策略首笔买入: {plan.initial_amount} {quote} -> {plan.token} ({plan.archetype.value})"
        )
        return {
            "swapped": True,
            "fromToken": quote,
            "toToken": plan.token,
            "amount": plan.initial_amount,
            "tx": tx.to_dict(),
        }

    # ========================================
    # 内部
    # ========================================

    @staticmethod
    def _analyze(snapshot: MarketSnapshot | None) -> MarketConditions | None:
        if snapshot is None:
            return None
        return analyze_market(snapshot.price_change_24h, snapshot.volume_24h)

    def _build(
        self,
        archetype: StrategyArchetype,
        config: StrategyConfig,
        conditions: MarketConditions | None,
        snapshot: MarketSnapshot | None,
    ) -> StrategyPlan:
        builders = {
            StrategyArchetype.DCA: self._dca,
            StrategyArchetype.MOMENTUM: self._momentum,
            StrategyArchetype.GRID_TRADING: self._grid,
            StrategyArchetype.BALANCED_DCA: self._balanced,
        }
        plan = builders[archetype](config, conditions, snapshot)
        plan.conditions = conditions
        plan.snapshot = snapshot
        plan.fallback = conditions is None
        return plan

    def _dca(
        self,
        config: StrategyConfig,
        conditions: MarketConditions | None,
        snapshot: MarketSnapshot | None,
    ) -> StrategyPlan:
        budget = config.budget
        intervals = get_dca_intervals(config.duration)
        amount_per_interval = budget / intervals
        return StrategyPlan(
            archetype=StrategyArchetype.DCA,
            token=config.token,
            budget=budget,
            parameters={
                "intervals": intervals,
                "amountPerInterval": amount_per_interval,
                "dipThreshold": DCA_DIP_THRESHOLD,
                "entryPrice": snapshot.current_price if snapshot else None,
                "remainingPurchases": intervals - 1,
            },
            rationale="看跌且高波动，定投分摊择时风险",
            risk_assessment="Medium - DCA helps mitigate timing risk",
            expected_return="5-15% over duration",
            timeframe=config.duration,
            steps=[
                f"将 {budget} 平分为 {intervals} 份",
                "按固定间隔买入，不看价格",
                f"跌幅超过 {DCA_DIP_THRESHOLD:.0%} 时加大买入",
            ],
            initial_amount=amount_per_interval,
        )

    def _momentum(
        self,
        config: StrategyConfig,
        conditions: MarketConditions | None,
        snapshot: MarketSnapshot | None,
    ) -> StrategyPlan:
        budget = config.budget
        entry = snapshot.current_price if snapshot else 0.0
        immediate = budget * MOMENTUM_IMMEDIATE_RATIO
        return StrategyPlan(
            archetype=StrategyArchetype.MOMENTUM,
            token=config.token,
            budget=budget,
            parameters={
                "immediateInvestment": immediate,
                "reserveFunds": budget * MOMENTUM_RESERVE_RATIO,
                "entryPrice": entry,
                "stopLoss": entry * MOMENTUM_STOP_LOSS,
                "takeProfit": entry * MOMENTUM_TAKE_PROFIT,
                "riskRewardRatio": "1:3",
            },
            rationale="上涨趋势稳定且波动低，顺势建仓",
            risk_assessment="Medium-Low - Following established trend",
            expected_return="10-25% over duration",
            timeframe=config.duration,
            steps=[
                f"立即投入 {budget} 的 60%",
                "保留 40% 用于回调买入",
                "止损设在入场价 -5%，止盈 +15%",
            ],
            initial_amount=immediate,
        )

    def _grid(
        self,
        config: StrategyConfig,
        conditions: MarketConditions | None,
        snapshot: MarketSnapshot | None,
    ) -> StrategyPlan:
        budget = config.budget
        levels = get_grid_levels(budget)
        spacing = (
            GRID_SPACING_HIGH_VOLATILITY
            if conditions is not None and conditions.volatility == Volatility.HIGH
            else GRID_SPACING_DEFAULT
        )
        current = snapshot.current_price if snapshot else 0.0
        level_amount = budget / levels

        buy_orders = []
        sell_orders = []
        for i in range(1, levels // 2 + 1):
            buy_orders.append({"price": current * (1 - spacing * i), "amount": level_amount})
            sell_orders.append({"price": current * (1 + spacing * i), "amount": level_amount})

        return StrategyPlan(
            archetype=StrategyArchetype.GRID_TRADING,
            token=config.token,
            budget=budget,
            parameters={
                "gridLevels": levels,
                "gridSpacing": spacing,
                "currentPrice": current,
                "buyOrders": buy_orders,
                "sellOrders": sell_orders,
            },
            rationale="高波动适合网格交易",
            risk_assessment="Medium-High - Requires active management",
            expected_return="15-30% over duration",
            timeframe=config.duration,
            steps=[
                f"设置 {levels} 层网格，间距 {spacing:.0%}",
                f"在当前价下方挂 {len(buy_orders)} 档买单",
                f"买入底仓支撑上方 {len(sell_orders)} 档卖单",
            ],
            initial_amount=level_amount * len(sell_orders),
        )

    def _balanced(
        self,
        config: StrategyConfig,
        conditions: MarketConditions | None,
        snapshot: MarketSnapshot | None,
    ) -> StrategyPlan:
        budget = config.budget
        weekly = budget / BALANCED_WEEKS
        rationale = (
            "市场中性，稳定积累"
            if conditions is not None
            else "行情不可用，采用默认的均衡定投"
        )
        return StrategyPlan(
            archetype=StrategyArchetype.BALANCED_DCA,
            token=config.token,
            budget=budget,
            parameters={
                "weeklyAmount": weekly,
                "weeks": BALANCED_WEEKS,
                "reviewInterval": "monthly",
            },
            rationale=rationale,
            risk_assessment="Low-Medium - Conservative approach",
            expected_return="5-10% over duration",
            timeframe=config.duration,
            steps=[
                f"每周投入 {weekly}",
                "保持固定节奏",
                "每月复盘并调整",
            ],
            initial_amount=weekly,
        )
