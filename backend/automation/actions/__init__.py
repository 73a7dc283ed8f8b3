"""动作执行"""

from .base import ActionHandler, ActionResult
from .handlers import (
    LogNotifier,
    NotificationHandler,
    Notifier,
    StakeHandler,
    StrategyActionHandler,
    SwapHandler,
    TransferHandler,
    default_handlers,
)
from .registry import ActionExecutor

__all__ = [
    "ActionExecutor",
    "ActionHandler",
    "ActionResult",
    "LogNotifier",
    "NotificationHandler",
    "Notifier",
    "StakeHandler",
    "StrategyActionHandler",
    "SwapHandler",
    "TransferHandler",
    "default_handlers",
]
