"""
管道自动化引擎 — 行情数据源
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx

from automation.common.config import MarketDataConfig
from automation.common.exceptions import MarketDataUnavailableError
from automation.common.logging import get_logger
from automation.common.retry import retry_with_backoff

from .analysis import MarketSnapshot

logger = get_logger(__name__)


class MarketDataProvider(ABC):
    """行情数据源抽象基类"""

    @abstractmethod
    async def get_snapshot(self, token: str) -> MarketSnapshot:
        """
        获取代币 24h 行情快照

        Raises:
            MarketDataUnavailableError: 行情不可用
        """
        pass

    async def close(self) -> None:
        return None


def _nested(data: dict[str, Any], *keys: str, default: float = 0.0) -> float:
    """依次尝试多个键，支持 a.b 形式的嵌套路径"""
    for key in keys:
        value: Any = data
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                value = None
                break
            value = value[part]
        if value is not None:
            try:
                return float(value)
            except (TypeError, ValueError):
                continue
    return default


class HttpMarketDataProvider(MarketDataProvider):
    """
    HTTP 行情数据源

    GET {base_url}/tokens/{token}/market
    """

    def __init__(
        self,
        config: MarketDataConfig,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
        )
        self._owns_client = client is None

    @retry_with_backoff(max_retries=2, base_delay=0.5, exceptions=(MarketDataUnavailableError,))
    async def get_snapshot(self, token: str) -> MarketSnapshot:
        try:
            response = await self._client.get(f"/tokens/{token}/market")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise MarketDataUnavailableError(f"行情获取失败: {token}: {e}") from e

        if not isinstance(data, dict):
            raise MarketDataUnavailableError(f"行情响应格式错误: {token}")

        price = _nested(data, "priceUSD", "currentPrice", "price")
        if price <= 0:
            raise MarketDataUnavailableError(f"行情缺少有效价格: {token}")

        snapshot = MarketSnapshot(
            token=token,
            current_price=price,
            price_change_24h=_nested(data, "priceChange.h24", "priceChange24h"),
            volume_24h=_nested(data, "volume.h24", "volume24h"),
            market_cap=_nested(data, "marketCap"),
        )
        logger.debug(
            f"行情快照: {token} price={snapshot.current_price} "
            f"change={snapshot.price_change_24h}%"
        )
        return snapshot

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
