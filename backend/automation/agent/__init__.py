"""执行代理"""

from .base import AgentProvider, ExecutionAgent, StaticAgentProvider, TxResult
from .http import HttpAgentProvider, HttpExecutionAgent

__all__ = [
    "AgentProvider",
    "ExecutionAgent",
    "HttpAgentProvider",
    "HttpExecutionAgent",
    "StaticAgentProvider",
    "TxResult",
]
