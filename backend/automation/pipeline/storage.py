"""
管道自动化引擎 — 管道存储

按管道 ID 存取文档记录。记录以序列化字典保存，读取时重新构造模型，
调用方拿到的对象修改后不会影响存储。
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from automation.common.config import Settings
from automation.common.enums import PipelineStatus
from automation.common.exceptions import PipelineNotFoundError
from automation.common.logging import get_logger
from automation.common.utils import utc_now

from .models import ExecutionHistoryEntry, Pipeline

logger = get_logger(__name__)


class PipelineStore(ABC):
    """
    管道存储抽象基类

    管道记录只由运行器（历史追加）和所属用户的管理操作修改。
    """

    @abstractmethod
    async def save(self, pipeline: Pipeline) -> None:
        """保存（新增或覆盖）管道"""
        pass

    @abstractmethod
    async def get(self, pipeline_id: str) -> Pipeline | None:
        """获取管道"""
        pass

    @abstractmethod
    async def delete(self, pipeline_id: str) -> bool:
        """删除管道，返回是否存在"""
        pass

    @abstractmethod
    async def list_pipelines(
        self,
        owner_id: str | None = None,
        status: PipelineStatus | None = None,
    ) -> list[Pipeline]:
        """列出管道（按创建时间倒序）"""
        pass

    @abstractmethod
    async def _update(self, pipeline_id: str, mutate: Any) -> Pipeline:
        """在存储锁内读取-修改-写回单条记录"""
        pass

    async def set_status(self, pipeline_id: str, status: PipelineStatus) -> Pipeline:
        """更新管道状态"""
        def mutate(p: Pipeline) -> None:
            p.status = status

        return await self._update(pipeline_id, mutate)

    async def update_schedule(
        self,
        pipeline_id: str,
        job_id: str | None,
        next_execution: datetime | None,
    ) -> Pipeline:
        """更新调度元数据"""
        def mutate(p: Pipeline) -> None:
            p.metadata.job_id = job_id
            p.metadata.next_execution = next_execution

        return await self._update(pipeline_id, mutate)

    async def append_history(
        self,
        pipeline_id: str,
        entry: ExecutionHistoryEntry,
        *,
        increment_count: bool = False,
        last_executed: datetime | None = None,
        status: PipelineStatus | None = None,
        last_triggered: dict[str, datetime] | None = None,
        next_execution: datetime | None = None,
        clear_error: bool = False,
    ) -> Pipeline:
        """
        追加执行历史并更新计数

        Args:
            pipeline_id: 管道 ID
            entry: 历史条目
            increment_count: executionCount 是否 +1
            last_executed: 最近执行时间
            status: 新状态（None 表示不变；paused 不被运行结果覆盖）
            last_triggered: 本次满足的事件及时间
            next_execution: 下次预计执行时间
            clear_error: error 状态是否恢复为 active

        Returns:
            更新后的管道
        """
        def mutate(p: Pipeline) -> None:
            p.metadata.execution_history.append(entry)
            if increment_count:
                p.execution_count += 1
            if last_executed is not None:
                p.last_executed = last_executed
            # 运行期间被暂停的管道保持暂停
            if status is not None and p.status != PipelineStatus.PAUSED:
                p.status = status
            if last_triggered:
                p.metadata.last_triggered.update(last_triggered)
            if next_execution is not None:
                p.metadata.next_execution = next_execution
            if clear_error and p.status == PipelineStatus.ERROR:
                p.status = PipelineStatus.ACTIVE

        return await self._update(pipeline_id, mutate)


class InMemoryPipelineStore(PipelineStore):
    """内存存储（测试与单进程部署）"""

    def __init__(self):
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def save(self, pipeline: Pipeline) -> None:
        async with self._lock:
            self._records[pipeline.id] = pipeline.to_record()

    async def get(self, pipeline_id: str) -> Pipeline | None:
        record = self._records.get(pipeline_id)
        if record is None:
            return None
        return Pipeline.from_record(record)

    async def delete(self, pipeline_id: str) -> bool:
        async with self._lock:
            return self._records.pop(pipeline_id, None) is not None

    async def list_pipelines(
        self,
        owner_id: str | None = None,
        status: PipelineStatus | None = None,
    ) -> list[Pipeline]:
        return _filter_sorted(
            [Pipeline.from_record(r) for r in self._records.values()],
            owner_id,
            status,
        )

    async def _update(self, pipeline_id: str, mutate: Any) -> Pipeline:
        async with self._lock:
            record = self._records.get(pipeline_id)
            if record is None:
                raise PipelineNotFoundError(f"管道不存在: {pipeline_id}")
            pipeline = Pipeline.from_record(record)
            mutate(pipeline)
            pipeline.updated_at = utc_now()
            self._records[pipeline_id] = pipeline.to_record()
            return pipeline


class JsonFilePipelineStore(PipelineStore):
    """
    JSON 文件存储

    当前实现：单个 JSON 文件
    生产环境：应替换为文档数据库
    """

    def __init__(self, data_dir: str = "data/pipelines"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._file = self.data_dir / "pipelines.json"
        self._lock = asyncio.Lock()
        self._records: dict[str, dict[str, Any]] = self._load()

    def _load(self) -> dict[str, dict[str, Any]]:
        """加载所有记录"""
        if not self._file.exists():
            return {}

        try:
            with open(self._file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"加载管道数据失败: {e}")
            return {}

        return {item["id"]: item for item in data}

    def _flush(self, records: dict[str, dict[str, Any]]) -> None:
        """
        写回文件（先写临时文件再替换），成功后才替换内存中的记录

        Raises:
            OSError: 写入失败，内存记录保持不变
        """
        tmp = self._file.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(list(records.values()), f, ensure_ascii=False, indent=2)
        tmp.replace(self._file)
        self._records = records

    async def save(self, pipeline: Pipeline) -> None:
        async with self._lock:
            self._flush({**self._records, pipeline.id: pipeline.to_record()})

    async def get(self, pipeline_id: str) -> Pipeline | None:
        record = self._records.get(pipeline_id)
        if record is None:
            return None
        return Pipeline.from_record(record)

    async def delete(self, pipeline_id: str) -> bool:
        async with self._lock:
            if pipeline_id not in self._records:
                return False
            self._flush({k: v for k, v in self._records.items() if k != pipeline_id})
            return True

    async def list_pipelines(
        self,
        owner_id: str | None = None,
        status: PipelineStatus | None = None,
    ) -> list[Pipeline]:
        return _filter_sorted(
            [Pipeline.from_record(r) for r in self._records.values()],
            owner_id,
            status,
        )

    async def _update(self, pipeline_id: str, mutate: Any) -> Pipeline:
        async with self._lock:
            record = self._records.get(pipeline_id)
            if record is None:
                raise PipelineNotFoundError(f"管道不存在: {pipeline_id}")
            pipeline = Pipeline.from_record(record)
            mutate(pipeline)
            pipeline.updated_at = utc_now()
            self._flush({**self._records, pipeline_id: pipeline.to_record()})
            return pipeline


def _filter_sorted(
    pipelines: list[Pipeline],
    owner_id: str | None,
    status: PipelineStatus | None,
) -> list[Pipeline]:
    if owner_id is not None:
        pipelines = [p for p in pipelines if p.owner_id == owner_id]
    if status is not None:
        pipelines = [p for p in pipelines if p.status == status]
    return sorted(pipelines, key=lambda p: p.created_at, reverse=True)


def create_store(settings: Settings) -> PipelineStore:
    """按配置创建存储"""
    if settings.storage.backend == "json":
        logger.info(f"使用 JSON 文件存储: {settings.storage.data_dir}")
        return JsonFilePipelineStore(settings.storage.data_dir)
    return InMemoryPipelineStore()
