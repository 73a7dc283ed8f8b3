"""
管道自动化引擎 — API 依赖注入
"""

from typing import Annotated, Any

from fastapi import Depends

from automation.common.config import AuthConfig, Settings, get_settings
from automation.common.logging import get_logger
from automation.engine.scheduler import PipelineScheduler
from automation.pipeline.service import PipelineService
from automation.strategy.planner import StrategyPlanner

logger = get_logger(__name__)


# ========================================
# 单例实例
# ========================================

_settings: Settings | None = None
_pipeline_service: PipelineService | None = None
_strategy_planner: StrategyPlanner | None = None
# 关闭时需要释放连接的组件（执行代理、行情源）
_closeables: list[Any] = []


def init_services(
    pipeline_service: PipelineService | None = None,
    strategy_planner: StrategyPlanner | None = None,
    settings: Settings | None = None,
    closeables: list[Any] | None = None,
) -> None:
    """
    初始化服务实例

    在应用启动时调用，测试中可直接注入。
    """
    global _settings, _pipeline_service, _strategy_planner, _closeables

    _settings = settings
    _pipeline_service = pipeline_service
    _strategy_planner = strategy_planner
    _closeables = list(closeables or [])

    logger.info("API 服务依赖已初始化")


def reset_services() -> None:
    """清空服务实例"""
    init_services()


def is_initialized() -> bool:
    return _pipeline_service is not None


def get_app_settings() -> Settings:
    return _settings or get_settings()


def get_auth_config() -> AuthConfig:
    return get_app_settings().auth


def get_closeables() -> list[Any]:
    return list(_closeables)


# ========================================
# 依赖函数
# ========================================

async def get_pipeline_service() -> PipelineService:
    """获取管道管理服务"""
    if _pipeline_service is None:
        raise RuntimeError("PipelineService 未初始化")
    return _pipeline_service


async def get_scheduler() -> PipelineScheduler:
    service = await get_pipeline_service()
    return service.scheduler


async def get_strategy_planner() -> StrategyPlanner:
    """获取策略规划器（未初始化时使用无行情源的规划器）"""
    if _strategy_planner is None:
        return StrategyPlanner()
    return _strategy_planner


# ========================================
# 类型别名
# ========================================

PipelineServiceDep = Annotated[PipelineService, Depends(get_pipeline_service)]
SchedulerDep = Annotated[PipelineScheduler, Depends(get_scheduler)]
StrategyPlannerDep = Annotated[StrategyPlanner, Depends(get_strategy_planner)]
