"""
管道自动化引擎 — 基于执行代理的状态访问器

单次运行内同一代币只查询一次价格，并写入当前管道的历史价格。
"""

from collections.abc import Callable
from datetime import datetime

from automation.agent.base import ExecutionAgent
from automation.common.utils import utc_now
from automation.pipeline.price_history import PriceHistoryStore

from .base import StateAccessors


class AgentStateAccessors(StateAccessors):
    """
    运行期状态访问器

    上一次价格取本管道在运行开始之前的最新采样，本次运行写入的采样
    和其他管道的采样都不参与比较。
    """

    def __init__(
        self,
        agent: ExecutionAgent,
        price_history: PriceHistoryStore,
        run_started_at: datetime,
        last_triggered: dict[str, datetime] | None = None,
        clock: Callable[[], datetime] = utc_now,
        scope: str | None = None,
    ):
        self.agent = agent
        self.scope = scope
        self.price_history = price_history
        self.run_started_at = run_started_at
        self._last_triggered = dict(last_triggered or {})
        self._clock = clock
        self._prices: dict[str, float] = {}

    async def get_current_price(self, token: str) -> float:
        key = token.upper()
        if key not in self._prices:
            price = await self.agent.get_token_price(token)
            self._prices[key] = price
            self.price_history.record(token, price, self._clock(), scope=self.scope)
        return self._prices[key]

    async def get_previous_price(self, token: str) -> float | None:
        return self.price_history.previous(
            token, before=self.run_started_at, scope=self.scope
        )

    async def get_balance(self, token: str) -> float:
        return await self.agent.get_balance(token)

    def now(self) -> datetime:
        return self._clock()

    def last_triggered(self, event_id: str) -> datetime | None:
        return self._last_triggered.get(event_id)
