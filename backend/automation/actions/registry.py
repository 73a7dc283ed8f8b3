"""
管道自动化引擎 — 动作执行器

按动作类型分发到处理器。每个动作的成功或失败独立记录，
一个动作失败不影响同一事件下其余动作的执行。
"""

import asyncio
from collections.abc import Sequence
from typing import Any

from automation.agent.base import ExecutionAgent
from automation.common.enums import ActionType, ExecutionMode, RunStatus
from automation.common.exceptions import ActionTimeoutError, UnknownActionTypeError
from automation.common.logging import get_logger
from automation.common.utils import utc_now
from automation.pipeline.models import ActionDefinition

from .base import ActionHandler, ActionResult
from .handlers import default_handlers

logger = get_logger(__name__)


class ActionExecutor:
    """
    动作执行器

    使用示例:
        executor = ActionExecutor(timeout=30, max_parallel=4)
        results = await executor.execute_all(event.id, actions, agent)
    """

    def __init__(
        self,
        handlers: list[ActionHandler[Any]] | None = None,
        timeout: float | None = 30.0,
        max_parallel: int = 4,
    ):
        if max_parallel < 1:
            raise ValueError("max_parallel 必须 >= 1")
        self.timeout = timeout
        self.max_parallel = max_parallel
        self._handlers: dict[ActionType, ActionHandler[Any]] = {}
        for handler in handlers if handlers is not None else default_handlers():
            self.register(handler)

    def register(self, handler: ActionHandler[Any]) -> None:
        """注册处理器（同类型覆盖）"""
        if handler.action_type in self._handlers:
            logger.warning(f"动作处理器已存在，将被覆盖: {handler.action_type.value}")
        self._handlers[handler.action_type] = handler

    def get(self, action_type: ActionType) -> ActionHandler[Any]:
        """
        获取处理器

        Raises:
            UnknownActionTypeError: 类型未注册
        """
        handler = self._handlers.get(action_type)
        if handler is None:
            raise UnknownActionTypeError(f"未注册的动作类型: {action_type}")
        return handler

    @property
    def action_types(self) -> list[ActionType]:
        return list(self._handlers)

    def validate(self, action: ActionDefinition) -> None:
        """
        创建时校验动作配置

        Raises:
            UnknownActionTypeError: 类型未注册
            ActionConfigError: 配置无效
        """
        self.get(action.type).parse_config(action)

    async def execute(
        self,
        action: ActionDefinition,
        agent: ExecutionAgent,
        event_id: str = "",
    ) -> ActionResult:
        """
        执行单个动作（从不抛出异常）

        Args:
            action: 动作定义
            agent: 执行代理
            event_id: 触发该动作的事件 ID

        Returns:
            ActionResult（success 或 error）
        """
        started_at = utc_now()
        try:
            handler = self.get(action.type)
            if self.timeout is None:
                output = await handler.execute(action, agent)
            else:
                try:
                    output = await asyncio.wait_for(
                        handler.execute(action, agent), timeout=self.timeout
                    )
                except asyncio.TimeoutError as e:
                    raise ActionTimeoutError(
                        f"动作执行超时 ({self.timeout}s): {action.name}",
                        {"action_id": action.id},
                    ) from e
        except Exception as e:
            logger.warning(
                f"动作执行失败: {action.name}: {e}",
                extra={"event_id": event_id, "action_id": action.id, "action_type": action.type.value},
            )
            return ActionResult(
                event_id=event_id,
                action_id=action.id,
                action_type=action.type.value,
                status=RunStatus.ERROR,
                error=str(e),
                started_at=started_at,
                finished_at=utc_now(),
            )

        logger.info(
            f"动作已执行: {action.name}",
            extra={"event_id": event_id, "action_id": action.id, "action_type": action.type.value},
        )
        return ActionResult(
            event_id=event_id,
            action_id=action.id,
            action_type=action.type.value,
            status=RunStatus.SUCCESS,
            result=output,
            started_at=started_at,
            finished_at=utc_now(),
        )

    async def execute_all(
        self,
        event_id: str,
        actions: Sequence[ActionDefinition],
        agent: ExecutionAgent,
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> list[ActionResult]:
        """
        执行事件连接的全部动作

        sequential 按声明顺序逐个执行；parallel 并发执行（上限 max_parallel）。
        两种模式都按声明顺序返回，每个动作恰好一条结果。
        """
        if mode == ExecutionMode.PARALLEL and len(actions) > 1:
            semaphore = asyncio.Semaphore(self.max_parallel)

            async def bounded(action: ActionDefinition) -> ActionResult:
                async with semaphore:
                    return await self.execute(action, agent, event_id)

            return list(await asyncio.gather(*(bounded(a) for a in actions)))

        results = []
        for action in actions:
            results.append(await self.execute(action, agent, event_id))
        return results
