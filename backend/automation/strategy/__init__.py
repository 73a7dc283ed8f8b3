"""策略规划"""

from .analysis import MarketConditions, MarketSnapshot, analyze_market, calculate_risk_level
from .market_data import HttpMarketDataProvider, MarketDataProvider
from .planner import (
    StrategyConfig,
    StrategyPlan,
    StrategyPlanner,
    get_dca_intervals,
    get_grid_levels,
)

__all__ = [
    "HttpMarketDataProvider",
    "MarketConditions",
    "MarketDataProvider",
    "MarketSnapshot",
    "StrategyConfig",
    "StrategyPlan",
    "StrategyPlanner",
    "analyze_market",
    "calculate_risk_level",
    "get_dca_intervals",
    "get_grid_levels",
]
