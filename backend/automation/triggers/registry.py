"""
管道自动化引擎 — 评估器注册表

按事件类型查找评估器。新增触发类型只需注册新的评估器，调度代码不变。
"""

import asyncio
from typing import Any

from automation.common.enums import EventType
from automation.common.exceptions import UnknownEventTypeError
from automation.common.logging import get_logger
from automation.pipeline.models import EventDefinition

from .base import ConditionEvaluator, StateAccessors
from .evaluators import default_evaluators

logger = get_logger(__name__)


class EvaluatorRegistry:
    """
    评估器注册表

    evaluate() 从不抛出异常：访问器失败、超时、配置错误一律记录日志并
    视为"未满足"，不影响同一次运行中的其他事件。
    """

    def __init__(
        self,
        evaluators: list[ConditionEvaluator[Any]] | None = None,
        timeout: float | None = 30.0,
    ):
        self.timeout = timeout
        self._evaluators: dict[EventType, ConditionEvaluator[Any]] = {}
        for evaluator in evaluators if evaluators is not None else default_evaluators():
            self.register(evaluator)

    def register(self, evaluator: ConditionEvaluator[Any]) -> None:
        """注册评估器（同类型覆盖）"""
        if evaluator.event_type in self._evaluators:
            logger.warning(f"评估器已存在，将被覆盖: {evaluator.event_type.value}")
        self._evaluators[evaluator.event_type] = evaluator

    def get(self, event_type: EventType) -> ConditionEvaluator[Any]:
        """
        获取评估器

        Raises:
            UnknownEventTypeError: 类型未注册
        """
        evaluator = self._evaluators.get(event_type)
        if evaluator is None:
            raise UnknownEventTypeError(f"未注册的事件类型: {event_type}")
        return evaluator

    @property
    def event_types(self) -> list[EventType]:
        return list(self._evaluators)

    def validate(self, event: EventDefinition) -> None:
        """
        创建时校验事件配置

        Raises:
            UnknownEventTypeError: 类型未注册
            ConditionConfigError: 配置无效
        """
        self.get(event.type).parse_config(event)

    async def evaluate(self, event: EventDefinition, accessors: StateAccessors) -> bool:
        """
        评估单个事件

        Args:
            event: 事件定义
            accessors: 外部状态访问器

        Returns:
            是否满足（任何异常都返回 False）
        """
        try:
            evaluator = self.get(event.type)
            if self.timeout is None:
                met = await evaluator.evaluate(event, accessors)
            else:
                met = await asyncio.wait_for(
                    evaluator.evaluate(event, accessors), timeout=self.timeout
                )
        except asyncio.TimeoutError:
            logger.warning(
                f"事件评估超时 ({self.timeout}s)，视为未满足: {event.name}",
                extra={"event_id": event.id},
            )
            return False
        except Exception as e:
            logger.warning(
                f"事件评估失败，视为未满足: {event.name}: {e}",
                extra={"event_id": event.id, "event_type": event.type.value},
            )
            return False

        if met:
            logger.info(f"事件条件满足: {event.name}", extra={"event_id": event.id})
        return bool(met)
