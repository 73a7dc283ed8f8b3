"""
管道自动化引擎 — 执行代理基类

执行代理负责真实的链上操作（转账、兑换、质押）以及价格、余额查询。
密钥管理与交易签名由代理服务完成，本系统只持有接口。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from automation.common.utils import utc_now


@dataclass
class TxResult:
    """链上交易结果"""
    tx_hash: str | None
    status: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "status": self.status,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ExecutionAgent(ABC):
    """
    执行代理抽象基类

    所有方法都可能因传输或校验失败抛出 AgentError。
    """

    @abstractmethod
    async def transfer(self, token: str, amount: float, recipient: str) -> TxResult:
        """
        转账

        Args:
            token: 代币符号
            amount: 数量
            recipient: 收款地址

        Returns:
            交易结果
        """
        pass

    @abstractmethod
    async def swap(self, from_token: str, to_token: str, amount: float) -> TxResult:
        """
        兑换

        Args:
            from_token: 卖出代币
            to_token: 买入代币
            amount: 卖出数量

        Returns:
            交易结果
        """
        pass

    @abstractmethod
    async def stake(self, token: str, amount: float, validator: str) -> TxResult:
        """
        质押

        Args:
            token: 代币符号
            amount: 数量
            validator: 验证人地址

        Returns:
            交易结果
        """
        pass

    @abstractmethod
    async def get_token_price(self, token: str) -> float:
        """获取代币当前价格（USD）"""
        pass

    @abstractmethod
    async def get_balance(self, token: str) -> float:
        """获取钱包代币余额"""
        pass

    async def close(self) -> None:
        """释放连接（默认无操作）"""
        return None


class AgentProvider(ABC):
    """按用户提供执行代理"""

    @abstractmethod
    async def get_agent(self, owner_id: str) -> ExecutionAgent:
        """
        获取用户的执行代理

        Raises:
            AgentUnavailableError: 用户没有可用钱包
        """
        pass

    async def close(self) -> None:
        return None


class StaticAgentProvider(AgentProvider):
    """所有用户共用同一个代理（测试与单钱包部署）"""

    def __init__(self, agent: ExecutionAgent):
        self.agent = agent

    async def get_agent(self, owner_id: str) -> ExecutionAgent:
        return self.agent
