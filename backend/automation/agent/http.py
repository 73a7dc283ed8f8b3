"""
管道自动化引擎 — HTTP 执行代理

对接钱包执行服务的 REST 接口。每个用户的请求带上 X-Owner-Id，
由代理服务选择对应钱包签名。
"""

from typing import Any

import httpx

from automation.common.config import AgentConfig
from automation.common.exceptions import AgentError, AgentUnavailableError
from automation.common.logging import get_logger
from automation.common.retry import retry_with_backoff

from .base import AgentProvider, ExecutionAgent, TxResult

logger = get_logger(__name__)


class HttpExecutionAgent(ExecutionAgent):
    """
    HTTP 执行代理

    - 只读查询（价格、余额）失败时指数退避重试
    - 转账、兑换、质押只提交一次
    """

    def __init__(
        self,
        owner_id: str,
        config: AgentConfig,
        client: httpx.AsyncClient | None = None,
    ):
        self.owner_id = owner_id
        self.config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
        )
        self._owns_client = client is None

    def _headers(self) -> dict[str, str]:
        headers = {"X-Owner-Id": self.owner_id}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """发送请求，统一转换为 AgentError"""
        try:
            response = await self._client.request(
                method,
                endpoint,
                json=payload,
                params=params,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise AgentError(f"执行代理请求失败: {endpoint}: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"message": response.text}
            if not isinstance(body, dict):
                body = {"message": str(body)}
            message = body.get("message") or body.get("error") or response.reason_phrase
            raise AgentError(
                f"执行代理返回错误 {response.status_code}: {message}",
                {"status_code": response.status_code, "endpoint": endpoint},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AgentError(f"执行代理响应不是 JSON: {endpoint}") from e
        if not isinstance(data, dict):
            raise AgentError(f"执行代理响应格式错误: {endpoint}")
        return data

    def _tx(self, data: dict[str, Any]) -> TxResult:
        return TxResult(
            tx_hash=data.get("txHash") or data.get("tx_hash"),
            status=str(data.get("status", "submitted")),
            details=data,
        )

    async def transfer(self, token: str, amount: float, recipient: str) -> TxResult:
        data = await self._request(
            "POST",
            "/transfer",
            {"token": token, "amount": amount, "recipient": recipient},
        )
        logger.info(f"转账已提交: {amount} {token} -> {recipient}")
        return self._tx(data)

    async def swap(self, from_token: str, to_token: str, amount: float) -> TxResult:
        data = await self._request(
            "POST",
            "/swap",
            {"fromToken": from_token, "toToken": to_token, "amount": amount},
        )
        logger.info(f"兑换已提交: {amount} {from_token} -> {to_token}")
        return self._tx(data)

    async def stake(self, token: str, amount: float, validator: str) -> TxResult:
        data = await self._request(
            "POST",
            "/stake",
            {"token": token, "amount": amount, "validator": validator},
        )
        logger.info(f"质押已提交: {amount} {token} @ {validator}")
        return self._tx(data)

    @retry_with_backoff(max_retries=2, base_delay=0.5, exceptions=(AgentError,))
    async def get_token_price(self, token: str) -> float:
        data = await self._request("GET", f"/tokens/{token}/price")
        try:
            return float(data["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise AgentError(f"价格响应无效: {token}") from e

    @retry_with_backoff(max_retries=2, base_delay=0.5, exceptions=(AgentError,))
    async def get_balance(self, token: str) -> float:
        data = await self._request("GET", f"/tokens/{token}/balance")
        try:
            return float(data["balance"])
        except (KeyError, TypeError, ValueError) as e:
            raise AgentError(f"余额响应无效: {token}") from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class HttpAgentProvider(AgentProvider):
    """按用户创建 HTTP 执行代理（共享连接池）"""

    def __init__(self, config: AgentConfig):
        self.config = config
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._client

    async def get_agent(self, owner_id: str) -> ExecutionAgent:
        if not owner_id:
            raise AgentUnavailableError("缺少用户 ID，无法创建执行代理")
        return HttpExecutionAgent(owner_id, self.config, client=self._get_client())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
