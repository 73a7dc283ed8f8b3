"""
管道自动化引擎 — 市场分析

根据 24h 涨跌幅与成交量对市场状态分类：
- 趋势：>5 看涨，>2 偏涨，<-5 看跌，<-2 偏跌，其余中性
- 波动：|涨跌幅| >10 高，<2 低，其余正常
- 量能：>10,000,000 高，<1,000,000 低，其余正常
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from automation.common.enums import MarketTrend, RiskLevel, Volatility, VolumeStrength
from automation.common.utils import utc_now

BULLISH_THRESHOLD = 5.0
SLIGHTLY_BULLISH_THRESHOLD = 2.0
HIGH_VOLATILITY_THRESHOLD = 10.0
LOW_VOLATILITY_THRESHOLD = 2.0
HIGH_VOLUME_THRESHOLD = 10_000_000
LOW_VOLUME_THRESHOLD = 1_000_000


@dataclass
class MarketSnapshot:
    """行情快照"""
    token: str
    current_price: float
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    market_cap: float = 0.0
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "currentPrice": self.current_price,
            "priceChange24h": self.price_change_24h,
            "volume24h": self.volume_24h,
            "marketCap": self.market_cap,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class MarketConditions:
    """市场状态分类结果"""
    trend: MarketTrend
    volatility: Volatility
    volume_strength: VolumeStrength
    risk_level: RiskLevel
    price_change: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "trend": self.trend.value,
            "volatility": self.volatility.value,
            "volumeStrength": self.volume_strength.value,
            "riskLevel": self.risk_level.value,
            "priceChange": self.price_change,
            "volume": self.volume,
        }


def classify_trend(price_change: float) -> MarketTrend:
    if price_change > BULLISH_THRESHOLD:
        return MarketTrend.BULLISH
    if price_change > SLIGHTLY_BULLISH_THRESHOLD:
        return MarketTrend.SLIGHTLY_BULLISH
    if price_change < -BULLISH_THRESHOLD:
        return MarketTrend.BEARISH
    if price_change < -SLIGHTLY_BULLISH_THRESHOLD:
        return MarketTrend.SLIGHTLY_BEARISH
    return MarketTrend.NEUTRAL


def classify_volatility(price_change: float) -> Volatility:
    magnitude = abs(price_change)
    if magnitude > HIGH_VOLATILITY_THRESHOLD:
        return Volatility.HIGH
    if magnitude < LOW_VOLATILITY_THRESHOLD:
        return Volatility.LOW
    return Volatility.NORMAL


def classify_volume(volume: float) -> VolumeStrength:
    if volume > HIGH_VOLUME_THRESHOLD:
        return VolumeStrength.HIGH
    if volume < LOW_VOLUME_THRESHOLD:
        return VolumeStrength.LOW
    return VolumeStrength.NORMAL


def calculate_risk_level(trend: MarketTrend, volatility: Volatility) -> RiskLevel:
    """
    风险等级

    高波动一律为高风险；看跌且波动正常为中高；看涨且低波动为低；其余为中。
    """
    if volatility == Volatility.HIGH:
        return RiskLevel.HIGH
    if trend == MarketTrend.BEARISH and volatility == Volatility.NORMAL:
        return RiskLevel.MEDIUM_HIGH
    if trend == MarketTrend.BULLISH and volatility == Volatility.LOW:
        return RiskLevel.LOW
    return RiskLevel.MEDIUM


def analyze_market(price_change: float, volume: float) -> MarketConditions:
    """
    分析市场状态

    Args:
        price_change: 24h 涨跌幅（百分比）
        volume: 24h 成交量

    Returns:
        MarketConditions
    """
    trend = classify_trend(price_change)
    volatility = classify_volatility(price_change)
    return MarketConditions(
        trend=trend,
        volatility=volatility,
        volume_strength=classify_volume(volume),
        risk_level=calculate_risk_level(trend, volatility),
        price_change=price_change,
        volume=volume,
    )
