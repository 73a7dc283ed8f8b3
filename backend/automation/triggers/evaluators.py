"""
管道自动化引擎 — 触发条件评估器

- price_change: 价格变动百分比
- wallet_balance: 钱包余额阈值
- time_schedule: 每日定时（容忍窗口 + 当日去重）
- market_condition: 预留，始终不满足
"""

import re
from datetime import timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from automation.common.enums import EventType, PriceDirection, ThresholdType
from automation.common.logging import get_logger
from automation.common.utils import to_utc
from automation.pipeline.models import EventDefinition

from .base import ConditionEvaluator, StateAccessors

logger = get_logger(__name__)


def _normalize_choice(value: Any) -> Any:
    """increase / INCREASE → Increase"""
    if isinstance(value, str):
        return value.strip().capitalize()
    return value


# ============================================================
# 配置模型
# ============================================================

class PriceChangeConfig(BaseModel):
    """价格变动配置"""
    model_config = ConfigDict(extra="ignore")

    token: str = Field(min_length=1)
    direction: PriceDirection = Field(
        validation_alias=AliasChoices("direction", "change_type", "changeType"),
    )
    percentage: float = Field(gt=0)

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        return _normalize_choice(v)


class WalletBalanceConfig(BaseModel):
    """余额阈值配置"""
    model_config = ConfigDict(extra="ignore")

    token: str = Field(min_length=1)
    threshold_type: ThresholdType = Field(
        validation_alias=AliasChoices("threshold_type", "thresholdType"),
    )
    amount: float = Field(ge=0)

    @field_validator("threshold_type", mode="before")
    @classmethod
    def normalize_threshold(cls, v: Any) -> Any:
        return _normalize_choice(v)


_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _zone(name: str) -> tzinfo:
    """UTC 直接使用内置时区，其余查 IANA 时区库"""
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class TimeScheduleConfig(BaseModel):
    """定时配置"""
    model_config = ConfigDict(extra="ignore")

    time: str
    timezone: str = "UTC"

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        v = v.strip()
        if not _TIME_PATTERN.match(v):
            raise ValueError(f"时间格式必须为 HH:MM: {v}")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            _zone(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"未知时区: {v}")
        return v

    @property
    def hour(self) -> int:
        return int(self.time[:2])

    @property
    def minute(self) -> int:
        return int(self.time[3:])


class MarketConditionConfig(BaseModel):
    """市场条件配置（预留）"""
    model_config = ConfigDict(extra="allow")


# ============================================================
# 评估器
# ============================================================

class PriceChangeEvaluator(ConditionEvaluator[PriceChangeConfig]):
    """
    价格变动

    changePercent = (current - previous) / previous * 100
    没有上一次价格时无法评估，视为不满足。
    """

    event_type = EventType.PRICE_CHANGE
    config_model = PriceChangeConfig

    async def check(
        self,
        event: EventDefinition,
        config: PriceChangeConfig,
        accessors: StateAccessors,
    ) -> bool:
        current = await accessors.get_current_price(config.token)
        previous = await accessors.get_previous_price(config.token)

        if not previous:
            logger.debug(f"无历史价格，跳过: {event.name} ({config.token})")
            return False

        change_percent = (current - previous) / previous * 100

        if config.direction == PriceDirection.INCREASE:
            return change_percent >= config.percentage
        if config.direction == PriceDirection.DECREASE:
            return change_percent <= -config.percentage
        return abs(change_percent) >= config.percentage


class WalletBalanceEvaluator(ConditionEvaluator[WalletBalanceConfig]):
    """余额阈值：Above → balance > amount，Below → balance < amount"""

    event_type = EventType.WALLET_BALANCE
    config_model = WalletBalanceConfig

    async def check(
        self,
        event: EventDefinition,
        config: WalletBalanceConfig,
        accessors: StateAccessors,
    ) -> bool:
        balance = await accessors.get_balance(config.token)

        if config.threshold_type == ThresholdType.ABOVE:
            return balance > config.amount
        return balance < config.amount


class TimeScheduleEvaluator(ConditionEvaluator[TimeScheduleConfig]):
    """
    每日定时

    当前时间落在 [目标时刻, 目标时刻 + window) 内且今天尚未触发时满足。
    window_minutes=1 等价于分钟级精确匹配。
    """

    event_type = EventType.TIME_SCHEDULE
    config_model = TimeScheduleConfig

    def __init__(self, window_minutes: int = 5):
        if window_minutes < 1:
            raise ValueError("window_minutes 必须 >= 1")
        self.window = timedelta(minutes=window_minutes)

    async def check(
        self,
        event: EventDefinition,
        config: TimeScheduleConfig,
        accessors: StateAccessors,
    ) -> bool:
        now = accessors.now().astimezone(_zone(config.timezone))
        today_target = now.replace(
            hour=config.hour, minute=config.minute, second=0, microsecond=0
        )
        last = accessors.last_triggered(event.id)

        # 窗口可能跨越午夜，同时检查昨天的目标时刻
        for target in (today_target, today_target - timedelta(days=1)):
            if target <= now < target + self.window:
                if last is not None and to_utc(last) >= to_utc(target):
                    return False
                return True

        return False


class MarketConditionEvaluator(ConditionEvaluator[MarketConditionConfig]):
    """市场条件（预留给外部市场状态触发），始终不满足"""

    event_type = EventType.MARKET_CONDITION
    config_model = MarketConditionConfig

    async def check(
        self,
        event: EventDefinition,
        config: MarketConditionConfig,
        accessors: StateAccessors,
    ) -> bool:
        logger.debug(f"market_condition 尚未接入市场状态源: {event.name}")
        return False


def default_evaluators(time_window_minutes: int = 5) -> list[ConditionEvaluator[Any]]:
    """默认评估器集合"""
    return [
        PriceChangeEvaluator(),
        WalletBalanceEvaluator(),
        TimeScheduleEvaluator(window_minutes=time_window_minutes),
        MarketConditionEvaluator(),
    ]

