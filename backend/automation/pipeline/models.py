"""
管道自动化引擎 — 管道数据模型

使用 Pydantic v2。持久化记录采用 camelCase 键（ownerId、executionCount、
metadata.executionHistory ...），与文档库中的管道记录一致。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from automation.common.enums import (
    ActionType,
    EventType,
    ExecutionMode,
    PipelineStatus,
    RunStatus,
)
from automation.common.utils import generate_id, utc_now


class RecordModel(BaseModel):
    """持久化记录基类（camelCase 别名，允许按字段名构造）"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventDefinition(RecordModel):
    """触发事件定义"""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: EventType
    description: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class Position(RecordModel):
    """编辑器画布坐标"""

    x: float | None = None
    y: float | None = None


class ActionDefinition(RecordModel):
    """动作定义"""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: ActionType
    description: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    # 仅供管道编辑器布局使用，不参与执行
    position: Position | None = None


class Connection(RecordModel):
    """事件 → 动作的有向边"""

    from_: str = Field(alias="from", min_length=1)
    to: str = Field(min_length=1)
    type: str = "default"


class ExecutionHistoryEntry(RecordModel):
    """执行历史条目（只追加，不修改）"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    status: RunStatus
    result: Any = None
    error: str | None = None


class PipelineMetadata(RecordModel):
    """管道调度元数据"""

    job_id: str | None = None
    next_execution: datetime | None = None
    execution_history: list[ExecutionHistoryEntry] = Field(default_factory=list)
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    # 事件最近一次满足的时间（time_schedule 去重）
    last_triggered: dict[str, datetime] = Field(default_factory=dict)


class Pipeline(RecordModel):
    """
    用户管道

    事件、动作、连接的集合。连接必须引用同一管道内已存在的事件与动作，
    悬空引用在创建时即被拒绝。
    """

    id: str = Field(default_factory=lambda: generate_id("PIPE"))
    name: str
    owner_id: str = Field(min_length=1)
    status: PipelineStatus = PipelineStatus.ACTIVE
    events: list[EventDefinition] = Field(default_factory=list)
    actions: list[ActionDefinition] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    execution_count: int = Field(default=0, ge=0)
    last_executed: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    metadata: PipelineMetadata = Field(default_factory=PipelineMetadata)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("管道名称不能为空")
        return v

    @model_validator(mode="after")
    def validate_graph(self) -> "Pipeline":
        event_ids = [e.id for e in self.events]
        action_ids = [a.id for a in self.actions]

        if len(set(event_ids)) != len(event_ids):
            raise ValueError("事件 ID 重复")
        if len(set(action_ids)) != len(action_ids):
            raise ValueError("动作 ID 重复")

        known_events = set(event_ids)
        known_actions = set(action_ids)
        seen: set[tuple[str, str]] = set()

        for conn in self.connections:
            if conn.from_ not in known_events:
                raise ValueError(f"连接引用了不存在的事件: {conn.from_}")
            if conn.to not in known_actions:
                raise ValueError(f"连接引用了不存在的动作: {conn.to}")
            edge = (conn.from_, conn.to)
            if edge in seen:
                raise ValueError(f"重复连接: {conn.from_} -> {conn.to}")
            seen.add(edge)

        return self

    @property
    def is_schedulable(self) -> bool:
        """是否应持有调度任务（暂停的管道不调度）"""
        return self.status != PipelineStatus.PAUSED

    def connected_actions(self, event_id: str) -> list[ActionDefinition]:
        """
        获取事件连接的动作

        按管道声明的动作顺序返回，而不是连接顺序。
        """
        targets = {c.to for c in self.connections if c.from_ == event_id}
        return [a for a in self.actions if a.id in targets]

    def to_record(self) -> dict[str, Any]:
        """序列化为持久化记录"""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Pipeline":
        """从持久化记录恢复"""
        return cls.model_validate(record)
