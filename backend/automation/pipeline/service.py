"""
管道自动化引擎 — 管道管理服务

创建、查询、暂停/恢复、删除、手动运行。调度失败同步抛给调用方：
创建时调度失败会删除刚保存的记录，不留下未调度的活跃管道。
"""

from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from automation.actions.registry import ActionExecutor
from automation.common.enums import ExecutionMode, PipelineStatus
from automation.common.exceptions import (
    EvaluationError,
    ExecutionError,
    PipelineAccessError,
    PipelineNotFoundError,
    PipelineValidationError,
)
from automation.common.logging import get_logger
from automation.common.utils import summarize_validation_error
from automation.engine.runner import RunReport
from automation.engine.scheduler import PipelineScheduler
from automation.triggers.registry import EvaluatorRegistry

from .models import ExecutionHistoryEntry, Pipeline, PipelineMetadata
from .storage import PipelineStore

logger = get_logger(__name__)


class PipelineService:
    """管道管理服务"""

    def __init__(
        self,
        store: PipelineStore,
        scheduler: PipelineScheduler,
        evaluators: EvaluatorRegistry | None = None,
        executor: ActionExecutor | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.evaluators = evaluators or scheduler.runner.evaluators
        self.executor = executor or scheduler.runner.executor

    # ========================================
    # 创建
    # ========================================

    def build(
        self,
        owner_id: str,
        name: str,
        events: Sequence[Any],
        actions: Sequence[Any],
        connections: Sequence[Any],
        status: PipelineStatus = PipelineStatus.ACTIVE,
        execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> Pipeline:
        """
        构造并校验管道（不保存）

        Raises:
            PipelineValidationError: 结构或类型配置无效
        """
        if status == PipelineStatus.ERROR:
            raise PipelineValidationError("新建管道的状态只能是 active 或 paused")

        try:
            pipeline = Pipeline(
                name=name,
                owner_id=owner_id,
                status=status,
                events=list(events),
                actions=list(actions),
                connections=list(connections),
                metadata=PipelineMetadata(execution_mode=execution_mode),
            )
        except ValidationError as e:
            raise PipelineValidationError(
                "管道定义无效",
                {"errors": summarize_validation_error(e)},
            ) from e

        try:
            for event in pipeline.events:
                self.evaluators.validate(event)
            for action in pipeline.actions:
                self.executor.validate(action)
        except (EvaluationError, ExecutionError) as e:
            raise PipelineValidationError(e.message, e.details) from e

        return pipeline

    async def create(
        self,
        owner_id: str,
        name: str,
        events: Sequence[Any],
        actions: Sequence[Any],
        connections: Sequence[Any],
        status: PipelineStatus = PipelineStatus.ACTIVE,
        execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> Pipeline:
        """
        创建管道并登记调度

        Raises:
            PipelineValidationError: 定义无效
            SchedulingError: 调度失败（记录已回滚）
        """
        pipeline = self.build(
            owner_id, name, events, actions, connections, status, execution_mode
        )
        await self.store.save(pipeline)

        if pipeline.is_schedulable:
            try:
                pipeline = await self._schedule(pipeline)
            except Exception:
                await self.store.delete(pipeline.id)
                logger.error(f"管道调度失败，已回滚创建: {pipeline.id}", exc_info=True)
                raise

        logger.info(
            f"管道已创建: {pipeline.name} ({pipeline.id})",
            extra={"pipeline_id": pipeline.id, "owner_id": owner_id, "status": pipeline.status.value},
        )
        return pipeline

    # ========================================
    # 查询
    # ========================================

    async def get(self, owner_id: str, pipeline_id: str) -> Pipeline:
        """
        获取用户的管道

        Raises:
            PipelineNotFoundError: 不存在
            PipelineAccessError: 不属于该用户
        """
        pipeline = await self.store.get(pipeline_id)
        if pipeline is None:
            raise PipelineNotFoundError(f"管道不存在: {pipeline_id}", {"pipeline_id": pipeline_id})
        if pipeline.owner_id != owner_id:
            raise PipelineAccessError(f"无权访问管道: {pipeline_id}", {"pipeline_id": pipeline_id})
        return pipeline

    async def list_pipelines(
        self, owner_id: str, status: PipelineStatus | None = None
    ) -> list[Pipeline]:
        return await self.store.list_pipelines(owner_id=owner_id, status=status)

    async def history(
        self, owner_id: str, pipeline_id: str, limit: int | None = None
    ) -> list[ExecutionHistoryEntry]:
        """执行历史（按运行顺序，limit 取最近 N 条）"""
        pipeline = await self.get(owner_id, pipeline_id)
        entries = pipeline.metadata.execution_history
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return list(entries)

    # ========================================
    # 状态与删除
    # ========================================

    async def update_status(
        self, owner_id: str, pipeline_id: str, status: PipelineStatus
    ) -> Pipeline:
        """
        暂停 / 恢复

        Raises:
            PipelineValidationError: 目标状态为 error
            SchedulingError: 调度操作失败
        """
        pipeline = await self.get(owner_id, pipeline_id)
        job_id = pipeline.metadata.job_id

        if status == PipelineStatus.ERROR:
            raise PipelineValidationError("不能手动将管道置为 error")

        if status == PipelineStatus.PAUSED:
            if self.scheduler.has_job(job_id):
                await self.scheduler.pause(job_id)  # type: ignore[arg-type]
            await self.store.update_schedule(pipeline_id, job_id, None)
        elif self.scheduler.has_job(job_id):
            job = await self.scheduler.resume(job_id)  # type: ignore[arg-type]
            await self.store.update_schedule(pipeline_id, job.job_id, job.next_run_at)
        else:
            # 重启后调度表为空，重新登记
            await self._schedule(pipeline)

        updated = await self.store.set_status(pipeline_id, status)
        logger.info(
            f"管道状态已更新: {pipeline_id} {pipeline.status.value} -> {status.value}",
            extra={"pipeline_id": pipeline_id},
        )
        return updated

    async def delete(self, owner_id: str, pipeline_id: str) -> None:
        """取消调度并删除"""
        pipeline = await self.get(owner_id, pipeline_id)
        job = self.scheduler.find_job(pipeline_id)
        if job is not None:
            await self.scheduler.cancel(job.job_id)
        await self.store.delete(pipeline.id)
        logger.info(f"管道已删除: {pipeline_id}", extra={"pipeline_id": pipeline_id})

    # ========================================
    # 运行
    # ========================================

    async def run_now(self, owner_id: str, pipeline_id: str) -> RunReport | None:
        """手动运行一次"""
        await self.get(owner_id, pipeline_id)
        job = self.scheduler.find_job(pipeline_id)
        if job is not None:
            return await self.scheduler.trigger(job.job_id)
        return await self.scheduler.runner.run(pipeline_id)

    async def restore_schedules(self) -> int:
        """
        启动时恢复调度（active 与 error 状态的管道）

        Returns:
            恢复的任务数
        """
        restored = 0
        for pipeline in await self.store.list_pipelines():
            if not pipeline.is_schedulable:
                continue
            await self._schedule(pipeline)
            restored += 1

        logger.info(f"已恢复 {restored} 个管道调度")
        return restored

    async def _schedule(self, pipeline: Pipeline) -> Pipeline:
        job_id = await self.scheduler.schedule(pipeline.id, pipeline)
        job = self.scheduler.get_job(job_id)
        return await self.store.update_schedule(pipeline.id, job_id, job.next_run_at)
