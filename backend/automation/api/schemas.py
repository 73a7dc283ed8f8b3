"""
管道自动化引擎 — API 请求与响应模型
"""

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, BaseModel, Field

from automation.common.enums import ExecutionMode, PipelineStatus
from automation.common.utils import utc_now
from automation.pipeline.models import ActionDefinition, Connection, EventDefinition

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""
    success: bool = True
    data: T | None = None
    error: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class ErrorDetail(BaseModel):
    """错误详情"""
    code: str
    message: str
    details: dict[str, Any] | None = None


# ========================================
# 管道
# ========================================

class CreatePipelineRequest(BaseModel):
    """创建管道"""
    name: str
    events: list[EventDefinition] = Field(default_factory=list)
    actions: list[ActionDefinition] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    status: PipelineStatus = PipelineStatus.ACTIVE
    execution_mode: ExecutionMode = Field(
        default=ExecutionMode.SEQUENTIAL,
        validation_alias=AliasChoices("execution_mode", "executionMode"),
    )


class UpdateStatusRequest(BaseModel):
    """暂停 / 恢复"""
    status: PipelineStatus


class PipelineListResponse(BaseModel):
    """管道列表"""
    items: list[dict[str, Any]]
    total: int


class HistoryResponse(BaseModel):
    """执行历史"""
    pipeline_id: str
    items: list[dict[str, Any]]
    total: int
    execution_count: int


class RunResponse(BaseModel):
    """手动运行结果"""
    pipeline_id: str
    skipped: bool
    report: dict[str, Any] | None = None


class DeleteResponse(BaseModel):
    id: str
    deleted: bool = True
