"""
管道自动化引擎 — 管道运行器

单次运行的状态流转：idle → evaluating → executing → recorded

- 事件按声明顺序逐个评估，评估失败视为未满足
- 满足的事件执行其连接的全部动作，动作失败按动作记录
- 以上边界之外的异常（如加载失败）记为运行失败，管道状态置为 error，
  调度任务保持不变，下次触发即为隐式重试
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from automation.actions.base import ActionResult
from automation.actions.registry import ActionExecutor
from automation.agent.base import AgentProvider
from automation.common.enums import PipelineStatus, RunPhase, RunStatus
from automation.common.logging import get_logger, pipeline_logger
from automation.common.utils import utc_now
from automation.pipeline.history import HistoryRecorder
from automation.pipeline.models import Pipeline
from automation.pipeline.price_history import PriceHistoryStore
from automation.pipeline.storage import PipelineStore
from automation.triggers.accessors import AgentStateAccessors
from automation.triggers.registry import EvaluatorRegistry

from .lease import LeaseManager

logger = get_logger(__name__)


@dataclass
class RunReport:
    """单次运行报告"""
    pipeline_id: str
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None
    phase: RunPhase = RunPhase.IDLE
    phases: list[RunPhase] = field(default_factory=lambda: [RunPhase.IDLE])
    status: RunStatus = RunStatus.SUCCESS
    triggered: dict[str, datetime] = field(default_factory=dict)
    results: list[ActionResult] = field(default_factory=list)
    error: str | None = None

    def advance(self, phase: RunPhase) -> None:
        if phase != self.phase:
            self.phase = phase
            self.phases.append(phase)

    @property
    def failed_actions(self) -> int:
        return sum(1 for r in self.results if not r.succeeded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipelineId": self.pipeline_id,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "phase": self.phase.value,
            "status": self.status.value,
            "triggeredEvents": list(self.triggered),
            "results": [r.to_dict() for r in self.results],
            "error": self.error,
        }


class PipelineRunner:
    """
    管道运行器

    每次运行都从存储重新读取管道定义，暂停期间的修改在恢复后生效。
    """

    def __init__(
        self,
        store: PipelineStore,
        agents: AgentProvider,
        evaluators: EvaluatorRegistry | None = None,
        executor: ActionExecutor | None = None,
        price_history: PriceHistoryStore | None = None,
        leases: LeaseManager | None = None,
        recorder: HistoryRecorder | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.agents = agents
        self.evaluators = evaluators or EvaluatorRegistry()
        self.executor = executor or ActionExecutor()
        self.price_history = price_history or PriceHistoryStore()
        self.leases = leases or LeaseManager()
        self.recorder = recorder or HistoryRecorder(store)
        self._clock = clock

    async def run(
        self,
        pipeline_id: str,
        next_execution: datetime | None = None,
    ) -> RunReport | None:
        """
        运行管道一次

        Args:
            pipeline_id: 管道 ID
            next_execution: 下次预计执行时间，写入元数据

        Returns:
            RunReport，未运行（租约被占用、管道不存在或已暂停）时返回 None

        Raises:
            Exception: 记录运行失败本身失败时向调度器传播
        """
        lease = self.leases.acquire(pipeline_id)
        if lease is None:
            logger.info(
                f"上一次运行尚未结束，跳过本次触发: {pipeline_id}",
                extra={"pipeline_id": pipeline_id},
            )
            return None

        try:
            return await self._run(pipeline_id, next_execution)
        finally:
            self.leases.release(lease)

    async def _run(
        self,
        pipeline_id: str,
        next_execution: datetime | None,
    ) -> RunReport | None:
        log = pipeline_logger(logger, pipeline_id)
        report = RunReport(pipeline_id=pipeline_id, started_at=self._clock())

        try:
            pipeline = await self.store.get(pipeline_id)
            if pipeline is None:
                log.warning(f"管道不存在，跳过运行: {pipeline_id}")
                self.price_history.discard(pipeline_id)
                return None
            if pipeline.status == PipelineStatus.PAUSED:
                log.info(f"管道已暂停，跳过运行: {pipeline.name}")
                return None

            log.info(f"开始运行管道: {pipeline.name}")
            await self._evaluate_and_execute(pipeline, report)
            await self.recorder.record_success(
                pipeline_id, report.results, report.triggered, next_execution
            )
        except Exception as e:
            log.error(f"管道运行失败: {pipeline_id}: {e}", exc_info=True)
            report.status = RunStatus.ERROR
            report.error = str(e) or type(e).__name__
            await self.recorder.record_failure(pipeline_id, report.error, next_execution)

        report.advance(RunPhase.RECORDED)
        report.finished_at = self._clock()
        log.info(
            f"管道运行结束: status={report.status.value}, "
            f"事件={len(report.triggered)}, 动作={len(report.results)}, 失败={report.failed_actions}"
        )
        return report

    async def _evaluate_and_execute(self, pipeline: Pipeline, report: RunReport) -> None:
        agent = await self.agents.get_agent(pipeline.owner_id)
        accessors = AgentStateAccessors(
            agent,
            self.price_history,
            run_started_at=report.started_at,
            last_triggered=pipeline.metadata.last_triggered,
            clock=self._clock,
            scope=pipeline.id,
        )
        mode = pipeline.metadata.execution_mode

        for event in pipeline.events:
            report.advance(RunPhase.EVALUATING)
            if not await self.evaluators.evaluate(event, accessors):
                continue

            report.triggered[event.id] = self._clock()
            actions = pipeline.connected_actions(event.id)
            if not actions:
                continue

            report.advance(RunPhase.EXECUTING)
            results = await self.executor.execute_all(event.id, actions, agent, mode)
            report.results.extend(results)
