"""
管道自动化引擎 — 动作处理器

- transfer / swap / stake: 调用执行代理
- notification: 本地发送通知，不经过执行代理
- strategy: 策略规划 + 首笔买入
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from automation.agent.base import ExecutionAgent
from automation.common.enums import ActionType
from automation.common.logging import get_logger
from automation.common.utils import parse_amount
from automation.pipeline.models import ActionDefinition
from automation.strategy.planner import StrategyConfig, StrategyPlanner

from .base import ActionHandler

logger = get_logger(__name__)


class _AmountConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: float

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> float:
        return parse_amount(v)


class TransferConfig(_AmountConfig):
    token: str = Field(min_length=1)
    recipient: str = Field(min_length=1, validation_alias=AliasChoices("recipient", "to"))


class SwapConfig(_AmountConfig):
    from_token: str = Field(min_length=1, validation_alias=AliasChoices("from_token", "fromToken"))
    to_token: str = Field(min_length=1, validation_alias=AliasChoices("to_token", "toToken"))


class StakeConfig(_AmountConfig):
    token: str = Field(min_length=1)
    validator: str = Field(min_length=1)


class NotificationConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    channel: str = Field(
        default="log",
        validation_alias=AliasChoices("type", "channel", "notification_type"),
    )
    message: str = Field(min_length=1)
    recipient: str | None = None


class TransferHandler(ActionHandler[TransferConfig]):
    action_type = ActionType.TRANSFER
    config_model = TransferConfig

    async def handle(
        self, action: ActionDefinition, config: TransferConfig, agent: ExecutionAgent
    ) -> Any:
        tx = await agent.transfer(config.token, config.amount, config.recipient)
        return tx.to_dict()


class SwapHandler(ActionHandler[SwapConfig]):
    action_type = ActionType.SWAP
    config_model = SwapConfig

    async def handle(
        self, action: ActionDefinition, config: SwapConfig, agent: ExecutionAgent
    ) -> Any:
        tx = await agent.swap(config.from_token, config.to_token, config.amount)
        return tx.to_dict()


class StakeHandler(ActionHandler[StakeConfig]):
    action_type = ActionType.STAKE
    config_model = StakeConfig

    async def handle(
        self, action: ActionDefinition, config: StakeConfig, agent: ExecutionAgent
    ) -> Any:
        tx = await agent.stake(config.token, config.amount, config.validator)
        return tx.to_dict()


# ============================================================
# 通知
# ============================================================

class Notifier(ABC):
    """通知发送器"""

    @abstractmethod
    async def send(self, channel: str, message: str, recipient: str | None = None) -> None:
        pass


class LogNotifier(Notifier):
    """写入日志（默认）"""

    async def send(self, channel: str, message: str, recipient: str | None = None) -> None:
        logger.info(
            f"发送 {channel} 通知: {message}",
            extra={"channel": channel, "recipient": recipient},
        )


class NotificationHandler(ActionHandler[NotificationConfig]):
    action_type = ActionType.NOTIFICATION
    config_model = NotificationConfig

    def __init__(self, notifier: Notifier | None = None):
        self.notifier = notifier or LogNotifier()

    async def handle(
        self, action: ActionDefinition, config: NotificationConfig, agent: ExecutionAgent
    ) -> Any:
        await self.notifier.send(config.channel, config.message, config.recipient)
        return {"sent": True, "type": config.channel, "message": config.message}


# ============================================================
# 策略
# ============================================================

class StrategyActionHandler(ActionHandler[StrategyConfig]):
    """策略动作：生成计划并通过执行代理完成首笔买入"""

    action_type = ActionType.STRATEGY
    config_model = StrategyConfig

    def __init__(self, planner: StrategyPlanner | None = None):
        self.planner = planner or StrategyPlanner()

    async def handle(
        self, action: ActionDefinition, config: StrategyConfig, agent: ExecutionAgent
    ) -> Any:
        return await self.planner.execute(config, agent)


def default_handlers(
    planner: StrategyPlanner | None = None,
    notifier: Notifier | None = None,
) -> list[ActionHandler[Any]]:
    """默认处理器集合"""
    return [
        TransferHandler(),
        SwapHandler(),
        StakeHandler(),
        NotificationHandler(notifier),
        StrategyActionHandler(planner),
    ]
