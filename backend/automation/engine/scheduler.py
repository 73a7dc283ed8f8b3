"""
管道自动化引擎 — 调度器

每个管道一个周期任务，互相独立，间隔固定（默认 5 分钟）。
每次触发在独立的 Task 中运行，暂停或取消只阻止后续触发，
不会中断正在进行的运行。
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from automation.common.enums import JobState, RunStatus
from automation.common.exceptions import JobNotFoundError, SchedulerClosedError
from automation.common.logging import get_logger
from automation.common.utils import generate_id, utc_now
from automation.pipeline.models import Pipeline

from .runner import PipelineRunner, RunReport

logger = get_logger(__name__)


@dataclass
class ScheduledJob:
    """调度任务"""
    job_id: str
    pipeline_id: str
    interval: float
    state: JobState = JobState.SCHEDULED
    pipeline_name: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    run_count: int = 0
    failure_count: int = 0
    last_error: str | None = None
    task: asyncio.Task[None] | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "pipelineId": self.pipeline_id,
            "pipelineName": self.pipeline_name,
            "interval": self.interval,
            "state": self.state.value,
            "nextRunAt": self.next_run_at.isoformat() if self.next_run_at else None,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
            "runCount": self.run_count,
            "failureCount": self.failure_count,
            "lastError": self.last_error,
        }


class PipelineScheduler:
    """
    管道调度器

    使用示例:
        scheduler = PipelineScheduler(runner, interval=300)
        await scheduler.start()
        job_id = await scheduler.schedule(pipeline.id, pipeline)
        await scheduler.pause(job_id)
        await scheduler.resume(job_id)
        await scheduler.cancel(job_id)
        await scheduler.stop()

    start() 之前登记的任务在 start() 时开始计时。
    """

    def __init__(
        self,
        runner: PipelineRunner,
        interval: float = 300.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        run_on_schedule: bool = False,
    ):
        if interval <= 0:
            raise ValueError("interval 必须大于 0")
        self.runner = runner
        self.interval = interval
        self.run_on_schedule = run_on_schedule
        self._clock = clock
        self._sleep = sleep

        self._jobs: dict[str, ScheduledJob] = {}
        self._by_pipeline: dict[str, str] = {}
        self._inflight: set[asyncio.Task[Any]] = set()
        self._running = False
        self._closed = False

    # ========================================
    # 生命周期
    # ========================================

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """启动调度器"""
        if self._closed:
            raise SchedulerClosedError("调度器已关闭")
        if self._running:
            logger.warning("调度器已在运行")
            return

        self._running = True
        for job in self._jobs.values():
            if job.state == JobState.SCHEDULED:
                self._start_loop(job)
        logger.info(f"调度器已启动，任务数: {len(self._jobs)}，间隔: {self.interval}s")

    async def stop(self) -> None:
        """停止调度器，等待进行中的运行结束"""
        self._closed = True
        self._running = False
        for job in self._jobs.values():
            await self._stop_loop(job)

        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        logger.info("调度器已停止")

    # ========================================
    # 任务管理
    # ========================================

    async def schedule(self, pipeline_id: str, definition: Pipeline | None = None) -> str:
        """
        登记管道的周期任务

        同一管道重复登记时替换原任务（原任务停止并移除）。

        Returns:
            job_id

        Raises:
            SchedulerClosedError: 调度器已关闭
        """
        if self._closed:
            raise SchedulerClosedError("调度器已关闭，无法登记任务", {"pipeline_id": pipeline_id})

        previous = self._by_pipeline.get(pipeline_id)
        if previous is not None:
            logger.info(f"替换已有任务: {previous} (pipeline={pipeline_id})")
            await self._remove(self._jobs[previous])

        job = ScheduledJob(
            job_id=generate_id("JOB"),
            pipeline_id=pipeline_id,
            interval=self.interval,
            pipeline_name=definition.name if definition is not None else None,
            created_at=self._clock(),
            next_run_at=self._next_run(),
        )
        self._jobs[job.job_id] = job
        self._by_pipeline[pipeline_id] = job.job_id

        if self._running:
            self._start_loop(job)

        logger.info(
            f"任务已登记: {job.job_id} (pipeline={pipeline_id})",
            extra={"job_id": job.job_id, "pipeline_id": pipeline_id},
        )
        return job.job_id

    async def pause(self, job_id: str) -> ScheduledJob:
        """
        暂停任务（保留登记）

        Raises:
            JobNotFoundError: 任务不存在
        """
        job = self.get_job(job_id)
        if job.state == JobState.PAUSED:
            return job

        await self._stop_loop(job)
        job.state = JobState.PAUSED
        job.next_run_at = None
        logger.info(f"任务已暂停: {job_id}", extra={"job_id": job_id})
        return job

    async def resume(self, job_id: str) -> ScheduledJob:
        """
        恢复任务

        重新为该任务的管道创建周期任务。运行器每次都从存储读取最新定义，
        暂停期间的修改在恢复后生效。

        Raises:
            JobNotFoundError: 任务不存在
            SchedulerClosedError: 调度器已关闭
        """
        if self._closed:
            raise SchedulerClosedError("调度器已关闭，无法恢复任务", {"job_id": job_id})

        job = self.get_job(job_id)
        if job.state == JobState.SCHEDULED:
            return job

        job.state = JobState.SCHEDULED
        job.next_run_at = self._next_run()
        if self._running:
            self._start_loop(job)
        logger.info(f"任务已恢复: {job_id}", extra={"job_id": job_id})
        return job

    async def cancel(self, job_id: str) -> None:
        """
        取消并移除任务

        Raises:
            JobNotFoundError: 任务不存在
        """
        job = self.get_job(job_id)
        await self._remove(job)
        logger.info(f"任务已取消: {job_id}", extra={"job_id": job_id})

    async def trigger(self, job_id: str) -> RunReport | None:
        """
        立即触发一次（手动运行）

        Raises:
            JobNotFoundError: 任务不存在
            SchedulerClosedError: 调度器已关闭
        """
        if self._closed:
            raise SchedulerClosedError("调度器已关闭", {"job_id": job_id})
        job = self.get_job(job_id)
        return await self._track(self._execute(job))

    # ========================================
    # 查询
    # ========================================

    def get_job(self, job_id: str) -> ScheduledJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"任务不存在: {job_id}", {"job_id": job_id})
        return job

    def has_job(self, job_id: str | None) -> bool:
        return job_id is not None and job_id in self._jobs

    def find_job(self, pipeline_id: str) -> ScheduledJob | None:
        job_id = self._by_pipeline.get(pipeline_id)
        return self._jobs.get(job_id) if job_id else None

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def get_stats(self) -> dict[str, Any]:
        """调度统计"""
        return {
            "is_running": self._running,
            "interval": self.interval,
            "jobs": len(self._jobs),
            "scheduled": sum(1 for j in self._jobs.values() if j.state == JobState.SCHEDULED),
            "paused": sum(1 for j in self._jobs.values() if j.state == JobState.PAUSED),
            "inflight": len(self._inflight),
        }

    # ========================================
    # 内部
    # ========================================

    def _next_run(self) -> datetime:
        return self._clock() + timedelta(seconds=self.interval)

    def _start_loop(self, job: ScheduledJob) -> None:
        if job.task is None or job.task.done():
            job.task = asyncio.create_task(self._loop(job))

    async def _stop_loop(self, job: ScheduledJob) -> None:
        task, job.task = job.task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _remove(self, job: ScheduledJob) -> None:
        await self._stop_loop(job)
        job.state = JobState.CANCELLED
        job.next_run_at = None
        self._jobs.pop(job.job_id, None)
        if self._by_pipeline.get(job.pipeline_id) == job.job_id:
            del self._by_pipeline[job.pipeline_id]

    async def _loop(self, job: ScheduledJob) -> None:
        """周期循环：只负责计时与派发，运行在独立 Task 中"""
        if self.run_on_schedule:
            self._fire(job)

        while job.state == JobState.SCHEDULED:
            await self._sleep(job.interval)
            if job.state != JobState.SCHEDULED:
                break
            job.next_run_at = self._next_run()
            self._fire(job)

    def _fire(self, job: ScheduledJob) -> None:
        task = asyncio.create_task(self._execute(job))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _track(self, coro: Awaitable[RunReport | None]) -> RunReport | None:
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await task

    async def _execute(self, job: ScheduledJob) -> RunReport | None:
        """运行一次，失败只计数，不影响任务继续触发"""
        job.last_run_at = self._clock()
        job.run_count += 1
        try:
            report = await self.runner.run(job.pipeline_id, next_execution=job.next_run_at)
        except Exception as e:
            job.failure_count += 1
            job.last_error = str(e)
            logger.error(
                f"任务触发失败: {job.job_id} (pipeline={job.pipeline_id}): {e}",
                exc_info=True,
                extra={"job_id": job.job_id, "pipeline_id": job.pipeline_id},
            )
            return None

        if report is not None and report.status == RunStatus.ERROR:
            job.failure_count += 1
            job.last_error = report.error
        return report
