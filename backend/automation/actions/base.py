"""
管道自动化引擎 — 动作处理器基类
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from automation.agent.base import ExecutionAgent
from automation.common.enums import ActionType, RunStatus
from automation.common.exceptions import ActionConfigError
from automation.common.utils import summarize_validation_error, utc_now
from automation.pipeline.models import ActionDefinition

ConfigT = TypeVar("ConfigT", bound=BaseModel)


@dataclass
class ActionResult:
    """单个动作的执行结果"""
    event_id: str
    action_id: str
    action_type: str
    status: RunStatus
    result: Any = None
    error: str | None = None
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime = field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCESS

    @property
    def duration_ms(self) -> float:
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "eventId": self.event_id,
            "actionId": self.action_id,
            "actionType": self.action_type,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat(),
        }
        if self.status == RunStatus.SUCCESS:
            data["result"] = self.result
        else:
            data["error"] = self.error
        return data


class ActionHandler(ABC, Generic[ConfigT]):
    """
    动作处理器基类

    子类声明 action_type 与 config_model，实现 handle()。
    handle() 的返回值需可 JSON 序列化，直接写入执行历史。
    """

    action_type: ClassVar[ActionType]
    config_model: ClassVar[type[BaseModel]]

    def parse_config(self, action: ActionDefinition) -> ConfigT:
        """
        解析动作配置

        Raises:
            ActionConfigError: 配置无效
        """
        try:
            return self.config_model.model_validate(action.config)  # type: ignore[return-value]
        except ValidationError as e:
            raise ActionConfigError(
                f"动作配置无效: {action.name} ({action.type.value})",
                {"action_id": action.id, "errors": summarize_validation_error(e)},
            ) from e

    @abstractmethod
    async def handle(
        self,
        action: ActionDefinition,
        config: ConfigT,
        agent: ExecutionAgent,
    ) -> Any:
        """
        执行动作

        Args:
            action: 动作定义
            config: 已解析的配置
            agent: 执行代理

        Returns:
            动作结果（JSON 兼容）
        """
        pass

    async def execute(self, action: ActionDefinition, agent: ExecutionAgent) -> Any:
        """解析配置并执行"""
        config = self.parse_config(action)
        return await self.handle(action, config, agent)
