"""触发条件评估"""

from .accessors import AgentStateAccessors
from .base import ConditionEvaluator, StateAccessors
from .evaluators import (
    MarketConditionEvaluator,
    PriceChangeConfig,
    PriceChangeEvaluator,
    TimeScheduleConfig,
    TimeScheduleEvaluator,
    WalletBalanceConfig,
    WalletBalanceEvaluator,
    default_evaluators,
)
from .registry import EvaluatorRegistry

__all__ = [
    "AgentStateAccessors",
    "ConditionEvaluator",
    "EvaluatorRegistry",
    "MarketConditionEvaluator",
    "PriceChangeConfig",
    "PriceChangeEvaluator",
    "StateAccessors",
    "TimeScheduleConfig",
    "TimeScheduleEvaluator",
    "WalletBalanceConfig",
    "WalletBalanceEvaluator",
    "default_evaluators",
]
