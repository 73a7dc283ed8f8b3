"""公共模块"""

from .config import Settings, get_settings, load_settings, load_yaml_config
from .enums import (
    ActionType,
    EventType,
    ExecutionMode,
    JobState,
    MarketTrend,
    PipelineStatus,
    PriceDirection,
    RiskLevel,
    RunPhase,
    RunStatus,
    StrategyArchetype,
    ThresholdType,
    Volatility,
    VolumeStrength,
)
from .exceptions import (
    ActionConfigError,
    ActionTimeoutError,
    AgentError,
    AgentUnavailableError,
    AutomationError,
    ConditionConfigError,
    EvaluationError,
    ExecutionError,
    JobNotFoundError,
    MarketDataUnavailableError,
    PipelineAccessError,
    PipelineError,
    PipelineNotFoundError,
    PipelineValidationError,
    SchedulerClosedError,
    SchedulingError,
    StrategyError,
    UnknownActionTypeError,
    UnknownEventTypeError,
)
from .logging import JSONFormatter, LoggerAdapter, get_logger, pipeline_logger
from .retry import retry_with_backoff
from .utils import generate_id, to_utc, utc_now

__all__ = [
    # config
    "Settings",
    "get_settings",
    "load_settings",
    "load_yaml_config",
    # enums
    "ActionType",
    "EventType",
    "ExecutionMode",
    "JobState",
    "MarketTrend",
    "PipelineStatus",
    "PriceDirection",
    "RiskLevel",
    "RunPhase",
    "RunStatus",
    "StrategyArchetype",
    "ThresholdType",
    "Volatility",
    "VolumeStrength",
    # exceptions
    "ActionConfigError",
    "ActionTimeoutError",
    "AgentError",
    "AgentUnavailableError",
    "AutomationError",
    "ConditionConfigError",
    "EvaluationError",
    "ExecutionError",
    "JobNotFoundError",
    "MarketDataUnavailableError",
    "PipelineAccessError",
    "PipelineError",
    "PipelineNotFoundError",
    "PipelineValidationError",
    "SchedulerClosedError",
    "SchedulingError",
    "StrategyError",
    "UnknownActionTypeError",
    "UnknownEventTypeError",
    # logging
    "JSONFormatter",
    "LoggerAdapter",
    "get_logger",
    "pipeline_logger",
    # retry / utils
    "retry_with_backoff",
    "generate_id",
    "to_utc",
    "utc_now",
]
