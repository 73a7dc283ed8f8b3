"""
管道自动化引擎 — 执行历史记录

每次运行结束后向管道记录追加一条不可变历史，并更新计数与状态。
"""

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from automation.common.enums import PipelineStatus, RunStatus
from automation.common.logging import get_logger
from automation.common.utils import utc_now

from .models import ExecutionHistoryEntry, Pipeline
from .storage import PipelineStore

if TYPE_CHECKING:
    from automation.actions.base import ActionResult

logger = get_logger(__name__)


class HistoryRecorder:
    """
    执行历史记录器

    - 成功运行：executionCount 恰好 +1（无论动作成败），error 状态恢复为 active
    - 运行异常：追加 error 条目，状态置为 error，计数不变
    """

    def __init__(self, store: PipelineStore):
        self.store = store

    async def record_success(
        self,
        pipeline_id: str,
        results: Sequence["ActionResult"],
        triggered: dict[str, datetime] | None = None,
        next_execution: datetime | None = None,
    ) -> Pipeline:
        """
        记录成功运行

        Args:
            pipeline_id: 管道 ID
            results: 本次运行的全部动作结果
            triggered: 本次满足的事件 ID → 满足时间
            next_execution: 下次预计执行时间

        Returns:
            更新后的管道
        """
        now = utc_now()
        entry = ExecutionHistoryEntry(
            timestamp=now,
            status=RunStatus.SUCCESS,
            result=[r.to_dict() for r in results],
        )

        pipeline = await self.store.append_history(
            pipeline_id,
            entry,
            increment_count=True,
            last_executed=now,
            last_triggered=triggered,
            next_execution=next_execution,
            clear_error=True,
        )

        failed = sum(1 for r in results if r.status == RunStatus.ERROR)
        logger.info(
            f"管道运行已记录: {pipeline_id}, 动作={len(results)}, 失败={failed}",
            extra={"pipeline_id": pipeline_id, "actions": len(results), "failed": failed},
        )
        return pipeline

    async def record_failure(
        self,
        pipeline_id: str,
        error: str,
        next_execution: datetime | None = None,
    ) -> Pipeline:
        """
        记录运行异常

        Args:
            pipeline_id: 管道 ID
            error: 错误信息
            next_execution: 下次预计执行时间

        Returns:
            更新后的管道
        """
        entry = ExecutionHistoryEntry(
            timestamp=utc_now(),
            status=RunStatus.ERROR,
            error=error,
        )

        pipeline = await self.store.append_history(
            pipeline_id,
            entry,
            status=PipelineStatus.ERROR,
            next_execution=next_execution,
        )

        logger.warning(
            f"管道运行失败已记录: {pipeline_id}: {error}",
            extra={"pipeline_id": pipeline_id},
        )
        return pipeline
