"""
管道自动化引擎 — 历史价格存储

price_change 触发需要"上一次观察到的价格"。运行器每次查询当前价格都会
写入一条采样，超过保留期的采样被淘汰。采样按 (scope, 代币) 分组，
scope 为管道 ID，每个管道只与自己上一次触发时看到的价格比较。
"""

import bisect
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta

from automation.common.logging import get_logger
from automation.common.utils import to_utc, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class PriceSample:
    """价格采样"""
    token: str
    price: float
    observed_at: datetime


class PriceHistoryStore:
    """
    按 (scope, 代币) 保存价格采样（TTL 淘汰）

    采样按时间有序存放，查询"某时刻之前的最新价格"为二分查找。
    """

    def __init__(self, retention_seconds: float = 86400.0):
        self.retention = timedelta(seconds=retention_seconds)
        self._samples: dict[tuple[str, str], list[PriceSample]] = defaultdict(list)

    @staticmethod
    def _key(token: str, scope: str | None = None) -> tuple[str, str]:
        return scope or "", token.strip().upper()

    def record(
        self,
        token: str,
        price: float,
        observed_at: datetime | None = None,
        scope: str | None = None,
    ) -> None:
        """
        记录价格采样

        Args:
            token: 代币符号
            price: 价格
            observed_at: 观察时间（默认当前时间）
            scope: 采样归属（管道 ID），None 为全局
        """
        if price <= 0:
            logger.debug(f"忽略非正价格采样: {token}={price}")
            return

        at = to_utc(observed_at) if observed_at else utc_now()
        key = self._key(token, scope)
        samples = self._samples[key]
        sample = PriceSample(token=key[1], price=price, observed_at=at)

        if samples and samples[-1].observed_at <= at:
            samples.append(sample)
        else:
            index = bisect.bisect_right([s.observed_at for s in samples], at)
            samples.insert(index, sample)

        self._evict(samples, at)

    def previous(
        self, token: str, before: datetime, scope: str | None = None
    ) -> float | None:
        """
        获取指定时刻之前的最新价格

        Args:
            token: 代币符号
            before: 截止时间（不含）
            scope: 采样归属（管道 ID）

        Returns:
            价格，没有采样时返回 None
        """
        samples = self._samples.get(self._key(token, scope))
        if not samples:
            return None

        cutoff = to_utc(before)
        index = bisect.bisect_left([s.observed_at for s in samples], cutoff)
        if index == 0:
            return None

        sample = samples[index - 1]
        if cutoff - sample.observed_at > self.retention:
            return None
        return sample.price

    def latest(self, token: str, scope: str | None = None) -> PriceSample | None:
        """最新采样"""
        samples = self._samples.get(self._key(token, scope))
        return samples[-1] if samples else None

    def sample_count(self, token: str, scope: str | None = None) -> int:
        return len(self._samples.get(self._key(token, scope), []))

    def discard(self, scope: str) -> None:
        """丢弃某个管道的全部采样"""
        for key in [k for k in self._samples if k[0] == scope]:
            del self._samples[key]

    def _evict(self, samples: list[PriceSample], now: datetime) -> None:
        """淘汰超过保留期的采样"""
        cutoff = now - self.retention
        stale = 0
        while stale < len(samples) and samples[stale].observed_at < cutoff:
            stale += 1
        if stale:
            del samples[:stale]
