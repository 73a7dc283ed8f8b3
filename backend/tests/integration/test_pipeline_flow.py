"""
管道端到端流程测试

创建 → 调度登记 → 手动 / 周期触发 → 历史记录，组件全部为真实实现，
只替换执行代理与时钟。
"""

from datetime import datetime, timezone

import pytest

from automation.actions.handlers import default_handlers
from automation.actions.registry import ActionExecutor
from automation.agent.base import StaticAgentProvider
from automation.common.enums import PipelineStatus, RunStatus
from automation.engine.runner import PipelineRunner
from automation.engine.scheduler import PipelineScheduler
from automation.pipeline.service import PipelineService
from automation.pipeline.storage import InMemoryPipelineStore
from automation.strategy.analysis import MarketSnapshot
from automation.strategy.planner import StrategyPlanner
from automation.triggers.evaluators import default_evaluators
from automation.triggers.registry import EvaluatorRegistry
from tests.mocks.agent import MockExecutionAgent, MockMarketDataProvider
from tests.mocks.clock import FakeClock, Ticker, settle
from tests.mocks.factory import connect, notify_action, price_event, swap_action, time_event

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


async def _wait_for_count(store, pipeline_id, count, rounds=50):
    """等待调度触发的运行落库"""
    for _ in range(rounds):
        pipeline = await store.get(pipeline_id)
        if pipeline.execution_count >= count:
            return pipeline
        await settle()
    return await store.get(pipeline_id)


@pytest.fixture
def agent():
    agent = MockExecutionAgent()
    agent.set_price("SEI", 100.0)
    agent.set_balance("USDC", 1000.0)
    return agent


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def ticker():
    return Ticker()


@pytest.fixture
def store():
    return InMemoryPipelineStore()


@pytest.fixture
async def service(store, agent, clock, ticker):
    planner = StrategyPlanner(
        MockMarketDataProvider(
            MarketSnapshot(token="SEI", current_price=100.0, price_change_24h=0.5, volume_24h=5_000_000)
        )
    )
    runner = PipelineRunner(
        store,
        StaticAgentProvider(agent),
        evaluators=EvaluatorRegistry(default_evaluators(time_window_minutes=1)),
        executor=ActionExecutor(default_handlers(planner)),
        clock=clock,
    )
    scheduler = PipelineScheduler(runner, interval=60, clock=clock, sleep=ticker.sleep)
    service = PipelineService(store, scheduler)
    await scheduler.start()
    yield service
    await scheduler.stop()


class TestPipelineFlow:
    """管道端到端流程"""

    @pytest.mark.asyncio
    async def test_daily_time_trigger(self, service, store, agent, clock):
        pipeline = await service.create(
            "alice",
            "每日定投",
            events=[time_event("e3", "09:00")],
            actions=[swap_action("a2", 25), notify_action("a3", "定投完成")],
            connections=connect(("e3", "a2"), ("e3", "a3")),
        )

        at_nine = await service.run_now("alice", pipeline.id)
        clock.advance(minutes=1)
        at_nine_one = await service.run_now("alice", pipeline.id)

        assert list(at_nine.triggered) == ["e3"]
        assert at_nine_one.triggered == {}
        assert agent.calls_to("swap") == [("swap", "USDC", "SEI", 25.0)]

        stored = await store.get(pipeline.id)
        assert stored.execution_count == 2
        assert [len(e.result) for e in stored.metadata.execution_history] == [2, 0]

    @pytest.mark.asyncio
    async def test_same_window_fires_once(self, store, agent, clock):
        runner = PipelineRunner(
            store,
            StaticAgentProvider(agent),
            evaluators=EvaluatorRegistry(default_evaluators(time_window_minutes=5)),
            clock=clock,
        )
        scheduler = PipelineScheduler(runner, interval=60, clock=clock)
        service = PipelineService(store, scheduler)
        pipeline = await service.create(
            "alice",
            "窗口去重",
            events=[time_event("e3", "09:00")],
            actions=[notify_action("a3")],
            connections=connect(("e3", "a3")),
        )

        first = await service.run_now("alice", pipeline.id)
        clock.advance(minutes=2)
        second = await service.run_now("alice", pipeline.id)

        assert list(first.triggered) == ["e3"]
        assert second.triggered == {}
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_price_change_on_schedule(self, service, store, agent, clock, ticker):
        pipeline = await service.create(
            "alice",
            "突破提醒",
            events=[price_event("e1", "SEI", "Increase", 10)],
            actions=[notify_action("a3", "SEI 上涨 10%")],
            connections=connect(("e1", "a3")),
        )
        await settle()

        # 第一次触发只记录基准价格
        clock.advance(minutes=1)
        await ticker.tick()
        await _wait_for_count(store, pipeline.id, 1)
        # 第二次触发价格上涨 12%
        clock.advance(minutes=1)
        agent.set_price("SEI", 112.0)
        await ticker.tick()

        stored = await _wait_for_count(store, pipeline.id, 2)
        history = stored.metadata.execution_history
        assert stored.execution_count == 2
        assert history[0].result == []
        assert history[1].result[0]["actionId"] == "a3"
        assert history[1].result[0]["status"] == RunStatus.SUCCESS.value
        assert stored.metadata.next_execution is not None

    @pytest.mark.asyncio
    async def test_strategy_action(self, service, store, agent):
        pipeline = await service.create(
            "alice",
            "自动策略",
            events=[time_event("e3", "09:00")],
            actions=[
                {
                    "id": "s1",
                    "name": "策略",
                    "type": "strategy",
                    "config": {"token": "SEI", "budget": 400},
                }
            ],
            connections=connect(("e3", "s1")),
        )

        report = await service.run_now("alice", pipeline.id)

        result = report.results[0]
        assert result.status == RunStatus.SUCCESS
        assert result.result["strategy"] == "Balanced DCA"
        assert agent.calls_to("swap") == [("swap", "USDC", "SEI", 100.0)]

    @pytest.mark.asyncio
    async def test_paused_pipeline_skips_firings(self, service, store, clock, ticker):
        pipeline = await service.create(
            "alice",
            "暂停测试",
            events=[price_event()],
            actions=[notify_action("a3")],
            connections=connect(("e1", "a3")),
        )
        await settle()

        await service.update_status("alice", pipeline.id, PipelineStatus.PAUSED)
        await ticker.tick()

        stored = await store.get(pipeline.id)
        assert stored.execution_count == 0

        await service.update_status("alice", pipeline.id, PipelineStatus.ACTIVE)
        await settle()
        await ticker.tick()

        stored = await _wait_for_count(store, pipeline.id, 1)
        assert stored.execution_count == 1

    @pytest.mark.asyncio
    async def test_action_failure_keeps_pipeline_active(self, service, store, agent):
        pipeline = await service.create(
            "alice",
            "余额转账",
            events=[time_event("e3", "09:00")],
            actions=[swap_action("a2")],
            connections=connect(("e3", "a2")),
        )
        agent.fail_on("swap", "链上拥堵")

        report = await service.run_now("alice", pipeline.id)

        # 动作失败按动作记录，运行本身成功
        assert report.status == RunStatus.SUCCESS
        assert report.results[0].error == "链上拥堵"
        stored = await store.get(pipeline.id)
        assert stored.status == PipelineStatus.ACTIVE
        assert stored.execution_count == 1
