"""
管道自动化引擎 — 枚举定义

持久化记录中的取值与前端约定一致，修改需同步迁移数据。
"""

from enum import Enum


class PipelineStatus(str, Enum):
    """管道状态"""
    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"


class EventType(str, Enum):
    """触发事件类型"""
    PRICE_CHANGE = "price_change"
    WALLET_BALANCE = "wallet_balance"
    TIME_SCHEDULE = "time_schedule"
    MARKET_CONDITION = "market_condition"


class ActionType(str, Enum):
    """动作类型"""
    TRANSFER = "transfer"
    SWAP = "swap"
    STAKE = "stake"
    NOTIFICATION = "notification"
    STRATEGY = "strategy"


class PriceDirection(str, Enum):
    """价格变动方向"""
    INCREASE = "Increase"
    DECREASE = "Decrease"
    ANY = "Any"


class ThresholdType(str, Enum):
    """余额阈值类型"""
    ABOVE = "Above"
    BELOW = "Below"


class ExecutionMode(str, Enum):
    """同一事件下动作的执行方式"""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class RunStatus(str, Enum):
    """运行/动作结果状态"""
    SUCCESS = "success"
    ERROR = "error"


class RunPhase(str, Enum):
    """单次运行阶段"""
    IDLE = "idle"
    EVALUATING = "evaluating"
    EXECUTING = "executing"
    RECORDED = "recorded"


class JobState(str, Enum):
    """调度任务状态"""
    SCHEDULED = "scheduled"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class MarketTrend(str, Enum):
    """市场趋势"""
    BULLISH = "bullish"
    SLIGHTLY_BULLISH = "slightly_bullish"
    NEUTRAL = "neutral"
    SLIGHTLY_BEARISH = "slightly_bearish"
    BEARISH = "bearish"


class Volatility(str, Enum):
    """波动率等级"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class VolumeStrength(str, Enum):
    """成交量强度"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class RiskLevel(str, Enum):
    """风险等级"""
    LOW = "low"
    MEDIUM = "medium"
    MEDIUM_HIGH = "medium-high"
    HIGH = "high"


class StrategyArchetype(str, Enum):
    """策略原型"""
    DCA = "DCA"
    MOMENTUM = "Momentum"
    GRID_TRADING = "Grid Trading"
    BALANCED_DCA = "Balanced DCA"
