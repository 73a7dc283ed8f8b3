"""
管道自动化引擎 — 触发条件基类

每种事件类型对应一个评估器，评估器只读取外部状态，不产生副作用。
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from automation.common.enums import EventType
from automation.common.exceptions import ConditionConfigError
from automation.common.utils import summarize_validation_error
from automation.pipeline.models import EventDefinition

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class StateAccessors(ABC):
    """
    外部状态访问器

    价格、余额查询可能阻塞在网络 I/O 上，超时由注册表统一控制。
    """

    @abstractmethod
    async def get_current_price(self, token: str) -> float:
        """当前价格"""
        pass

    @abstractmethod
    async def get_previous_price(self, token: str) -> float | None:
        """上一次观察到的价格，没有时返回 None"""
        pass

    @abstractmethod
    async def get_balance(self, token: str) -> float:
        """钱包余额"""
        pass

    @abstractmethod
    def now(self) -> datetime:
        """当前时间（带时区）"""
        pass

    def last_triggered(self, event_id: str) -> datetime | None:
        """事件最近一次满足的时间"""
        return None


class ConditionEvaluator(ABC, Generic[ConfigT]):
    """
    触发条件评估器基类

    子类声明 event_type 与 config_model，实现 check()。
    """

    event_type: ClassVar[EventType]
    config_model: ClassVar[type[BaseModel]]

    def parse_config(self, event: EventDefinition) -> ConfigT:
        """
        解析事件配置

        Raises:
            ConditionConfigError: 配置无效
        """
        try:
            return self.config_model.model_validate(event.config)  # type: ignore[return-value]
        except ValidationError as e:
            raise ConditionConfigError(
                f"事件配置无效: {event.name} ({event.type.value})",
                {"event_id": event.id, "errors": summarize_validation_error(e)},
            ) from e

    @abstractmethod
    async def check(
        self,
        event: EventDefinition,
        config: ConfigT,
        accessors: StateAccessors,
    ) -> bool:
        """
        检查条件是否满足

        Args:
            event: 事件定义
            config: 已解析的配置
            accessors: 外部状态访问器

        Returns:
            是否满足
        """
        pass

    async def evaluate(self, event: EventDefinition, accessors: StateAccessors) -> bool:
        """解析配置并检查"""
        config = self.parse_config(event)
        return await self.check(event, config, accessors)

