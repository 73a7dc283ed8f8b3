"""
管道自动化引擎 — 自定义异常

异常层级：
- AutomationError: 基础异常
  - PipelineError: 管道定义/管理异常
  - EvaluationError: 触发条件评估异常（运行时降级为"未满足"）
  - ExecutionError: 动作执行异常（运行时按动作隔离记录）
  - SchedulingError: 调度异常（同步抛给调用方）
  - StrategyError: 策略规划异常
"""

from typing import Any


class AutomationError(Exception):
    """自动化引擎基础异常"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================
# 管道异常
# ============================================================

class PipelineError(AutomationError):
    """管道异常"""
    pass


class PipelineValidationError(PipelineError):
    """管道定义校验失败（创建时拒绝）"""
    pass


class PipelineNotFoundError(PipelineError):
    """管道不存在"""
    pass


class PipelineAccessError(PipelineError):
    """管道不属于当前用户"""
    pass


# ============================================================
# 触发条件异常
# ============================================================

class EvaluationError(AutomationError):
    """触发条件评估异常"""
    pass


class UnknownEventTypeError(EvaluationError):
    """未注册的事件类型"""
    pass


class ConditionConfigError(EvaluationError):
    """事件配置无效"""
    pass


# ============================================================
# 执行异常
# ============================================================

class ExecutionError(AutomationError):
    """动作执行异常"""
    pass


class UnknownActionTypeError(ExecutionError):
    """未注册的动作类型"""
    pass


class ActionConfigError(ExecutionError):
    """动作配置无效"""
    pass


class ActionTimeoutError(ExecutionError):
    """外部调用超时"""
    pass


class AgentError(ExecutionError):
    """执行代理返回错误（传输或校验）"""
    pass


class AgentUnavailableError(AgentError):
    """无法为用户构建执行代理"""
    pass


# ============================================================
# 调度异常
# ============================================================

class SchedulingError(AutomationError):
    """调度异常"""
    pass


class JobNotFoundError(SchedulingError):
    """任务不存在"""
    pass


class SchedulerClosedError(SchedulingError):
    """调度器已关闭"""
    pass


# ============================================================
# 策略异常
# ============================================================

class StrategyError(AutomationError):
    """策略规划异常"""
    pass


class MarketDataUnavailableError(StrategyError):
    """市场数据不可用"""
    pass
