"""管道运行器测试"""

from datetime import datetime, timezone

import pytest

from automation.agent.base import AgentProvider, StaticAgentProvider
from automation.common.enums import ExecutionMode, PipelineStatus, RunPhase, RunStatus
from automation.common.exceptions import AgentUnavailableError
from automation.engine.lease import LeaseManager
from automation.engine.runner import PipelineRunner
from automation.pipeline.storage import InMemoryPipelineStore
from tests.mocks.agent import MockExecutionAgent
from tests.mocks.clock import FakeClock
from tests.mocks.factory import (
    balance_event,
    connect,
    make_pipeline,
    notify_action,
    swap_action,
    transfer_action,
)

T0 = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


class _BrokenProvider(AgentProvider):
    async def get_agent(self, owner_id: str):
        raise AgentUnavailableError(f"用户没有钱包: {owner_id}")


class _PausingProvider(AgentProvider):
    """运行中途被用户暂停，随后失败"""

    def __init__(self, store, pipeline_id: str):
        self.store = store
        self.pipeline_id = pipeline_id

    async def get_agent(self, owner_id: str):
        await self.store.set_status(self.pipeline_id, PipelineStatus.PAUSED)
        raise AgentUnavailableError("钱包服务不可用")


@pytest.fixture
def store():
    return InMemoryPipelineStore()


@pytest.fixture
def agent():
    agent = MockExecutionAgent()
    agent.set_price("SEI", 100.0)
    agent.set_balance("USDC", 10.0)
    return agent


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def runner(store, agent, clock):
    return PipelineRunner(store, StaticAgentProvider(agent), clock=clock)


class TestRunSkips:
    """不运行的情况"""

    @pytest.mark.asyncio
    async def test_lease_held(self, store, agent, clock):
        leases = LeaseManager()
        runner = PipelineRunner(store, StaticAgentProvider(agent), leases=leases, clock=clock)
        pipeline = make_pipeline()
        await store.save(pipeline)
        leases.acquire(pipeline.id)

        assert await runner.run(pipeline.id) is None
        assert (await store.get(pipeline.id)).execution_count == 0
        assert agent.calls == []

    @pytest.mark.asyncio
    async def test_lease_released_after_run(self, store, runner):
        pipeline = make_pipeline()
        await store.save(pipeline)

        await runner.run(pipeline.id)

        assert not runner.leases.is_held(pipeline.id)

    @pytest.mark.asyncio
    async def test_paused(self, store, runner, agent):
        pipeline = make_pipeline(status=PipelineStatus.PAUSED)
        await store.save(pipeline)

        assert await runner.run(pipeline.id) is None
        assert (await store.get(pipeline.id)).metadata.execution_history == []
        assert agent.calls == []

    @pytest.mark.asyncio
    async def test_missing(self, runner):
        assert await runner.run("PIPE_missing") is None


class TestRunOutcome:
    """运行结果与历史"""

    @pytest.mark.asyncio
    async def test_nothing_triggered_still_counts(self, store, runner):
        pipeline = make_pipeline()
        await store.save(pipeline)

        report = await runner.run(pipeline.id)

        assert report.status == RunStatus.SUCCESS
        assert report.triggered == {}
        assert report.phases == [RunPhase.IDLE, RunPhase.EVALUATING, RunPhase.RECORDED]
        stored = await store.get(pipeline.id)
        assert stored.execution_count == 1
        assert stored.metadata.execution_history[-1].result == []

    @pytest.mark.asyncio
    async def test_price_change_across_runs(self, store, runner, agent, clock):
        pipeline = make_pipeline()
        await store.save(pipeline)

        first = await runner.run(pipeline.id)
        assert first.triggered == {}

        clock.advance(minutes=5)
        agent.set_price("SEI", 110.0)
        second = await runner.run(pipeline.id)

        assert list(second.triggered) == ["e1"]
        assert [r.action_id for r in second.results] == ["a1", "a3"]
        assert second.phases == [
            RunPhase.IDLE,
            RunPhase.EVALUATING,
            RunPhase.EXECUTING,
            RunPhase.RECORDED,
        ]
        assert len(agent.calls_to("transfer")) == 1
        stored = await store.get(pipeline.id)
        assert stored.execution_count == 2
        assert stored.metadata.last_triggered["e1"] == clock.now

    @pytest.mark.asyncio
    async def test_price_baseline_is_per_pipeline(self, store, runner, agent, clock):
        first = make_pipeline(name="A")
        second = make_pipeline(name="B")
        await store.save(first)
        await store.save(second)

        await runner.run(first.id)
        clock.advance(seconds=1)
        await runner.run(second.id)

        agent.set_price("SEI", 120.0)
        clock.advance(minutes=5)
        report_a = await runner.run(first.id)
        clock.advance(seconds=1)
        report_b = await runner.run(second.id)

        # B 与自己上一次看到的 100 比较，而不是 A 一秒前的 120
        assert list(report_a.triggered) == ["e1"]
        assert list(report_b.triggered) == ["e1"]

    @pytest.mark.asyncio
    async def test_action_failure_is_still_success_run(self, store, runner, agent):
        agent.fail_on("transfer", "余额不足")
        pipeline = make_pipeline(
            events=[balance_event("e2", "USDC", "Below", 50)],
            actions=[transfer_action("a1"), notify_action("a3")],
        )
        await store.save(pipeline)

        report = await runner.run(pipeline.id)

        assert report.status == RunStatus.SUCCESS
        assert [r.status for r in report.results] == [RunStatus.ERROR, RunStatus.SUCCESS]
        assert report.failed_actions == 1
        stored = await store.get(pipeline.id)
        assert stored.execution_count == 1
        assert stored.status == PipelineStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_multiple_events_in_declared_order(self, store, runner, agent):
        pipeline = make_pipeline(
            events=[balance_event("e2", "USDC", "Below", 50), balance_event("e4", "USDC", "Above", 5)],
            actions=[swap_action("a2"), notify_action("a3")],
            connections=connect(("e4", "a3"), ("e2", "a2")),
        )
        await store.save(pipeline)

        report = await runner.run(pipeline.id)

        assert [(r.event_id, r.action_id) for r in report.results] == [("e2", "a2"), ("e4", "a3")]

    @pytest.mark.asyncio
    async def test_parallel_mode(self, store, runner, agent):
        pipeline = make_pipeline(events=[balance_event("e2", "USDC", "Below", 50)])
        pipeline.metadata.execution_mode = ExecutionMode.PARALLEL
        await store.save(pipeline)

        report = await runner.run(pipeline.id)

        assert [r.action_id for r in report.results] == ["a1", "a3"]

    @pytest.mark.asyncio
    async def test_unexpected_error_marks_pipeline(self, store, clock):
        runner = PipelineRunner(store, _BrokenProvider(), clock=clock)
        pipeline = make_pipeline()
        await store.save(pipeline)

        report = await runner.run(pipeline.id)

        assert report.status == RunStatus.ERROR
        assert "没有钱包" in report.error
        stored = await store.get(pipeline.id)
        assert stored.status == PipelineStatus.ERROR
        assert stored.execution_count == 0
        assert stored.metadata.execution_history[-1].status == RunStatus.ERROR

    @pytest.mark.asyncio
    async def test_pause_during_failed_run_is_kept(self, store, clock):
        pipeline = make_pipeline()
        await store.save(pipeline)
        runner = PipelineRunner(store, _PausingProvider(store, pipeline.id), clock=clock)

        report = await runner.run(pipeline.id)

        assert report.status == RunStatus.ERROR
        stored = await store.get(pipeline.id)
        assert stored.status == PipelineStatus.PAUSED
        assert stored.metadata.execution_history[-1].error == "钱包服务不可用"

    @pytest.mark.asyncio
    async def test_success_clears_error(self, store, runner):
        pipeline = make_pipeline(status=PipelineStatus.ERROR)
        await store.save(pipeline)

        await runner.run(pipeline.id)

        assert (await store.get(pipeline.id)).status == PipelineStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_deleted_pipeline_not_run(self, store, runner, agent):
        pipeline = make_pipeline()
        await store.save(pipeline)
        await store.delete(pipeline.id)

        assert await runner.run(pipeline.id) is None
        assert agent.calls == []

    @pytest.mark.asyncio
    async def test_deleted_pipeline_drops_price_samples(self, store, runner):
        pipeline = make_pipeline()
        await store.save(pipeline)
        await runner.run(pipeline.id)
        assert runner.price_history.sample_count("SEI", scope=pipeline.id) == 1

        await store.delete(pipeline.id)
        await runner.run(pipeline.id)

        assert runner.price_history.sample_count("SEI", scope=pipeline.id) == 0
