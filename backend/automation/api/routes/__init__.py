"""
管道自动化引擎 — API 路由模块
"""

from .pipelines import router as pipelines_router
from .strategies import router as strategies_router

__all__ = [
    "pipelines_router",
    "strategies_router",
]
