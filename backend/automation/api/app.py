"""
管道自动化引擎 — FastAPI 应用

启动时组装服务、启动调度器并恢复已持久化管道的调度，关闭时停止调度器。
"""

from contextlib import asynccontextmanager
from typing import Any

# 加载环境变量（必须在其他导入之前）
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from automation import __version__
from automation.actions.handlers import default_handlers
from automation.actions.registry import ActionExecutor
from automation.agent.http import HttpAgentProvider
from automation.common.config import Settings, get_settings
from automation.common.exceptions import (
    AutomationError,
    EvaluationError,
    JobNotFoundError,
    PipelineAccessError,
    PipelineNotFoundError,
    PipelineValidationError,
    SchedulingError,
)
from automation.common.logging import get_logger
from automation.common.utils import utc_now
from automation.engine.lease import LeaseManager
from automation.engine.runner import PipelineRunner
from automation.engine.scheduler import PipelineScheduler
from automation.pipeline.price_history import PriceHistoryStore
from automation.pipeline.service import PipelineService
from automation.pipeline.storage import create_store
from automation.strategy.market_data import HttpMarketDataProvider
from automation.strategy.planner import StrategyPlanner
from automation.triggers.evaluators import default_evaluators
from automation.triggers.registry import EvaluatorRegistry

from . import dependencies
from .routes import pipelines_router, strategies_router

logger = get_logger(__name__)


def build_services(settings: Settings) -> None:
    """按配置组装服务并注入依赖"""
    store = create_store(settings)
    agents = HttpAgentProvider(settings.agent)
    market_data = HttpMarketDataProvider(settings.market_data)
    planner = StrategyPlanner(
        market_data,
        quote_token=settings.market_data.quote_token,
        snapshot_timeout=min(settings.market_data.deadline, settings.execution.call_timeout / 2),
    )

    evaluators = EvaluatorRegistry(
        default_evaluators(settings.trigger.time_window_minutes),
        timeout=settings.execution.call_timeout,
    )
    executor = ActionExecutor(
        default_handlers(planner),
        timeout=settings.execution.call_timeout,
        max_parallel=settings.execution.max_parallel_actions,
    )
    runner = PipelineRunner(
        store,
        agents,
        evaluators=evaluators,
        executor=executor,
        price_history=PriceHistoryStore(settings.trigger.price_history_retention),
        leases=LeaseManager(settings.execution.lease_ttl),
    )
    scheduler = PipelineScheduler(
        runner,
        interval=settings.scheduler.interval_seconds,
        run_on_schedule=settings.scheduler.run_on_schedule,
    )

    dependencies.init_services(
        pipeline_service=PipelineService(store, scheduler),
        strategy_planner=planner,
        settings=settings,
        closeables=[agents, market_data],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("API 服务启动")

    if not dependencies.is_initialized():
        build_services(get_settings())

    service = await dependencies.get_pipeline_service()
    await service.scheduler.start()
    await service.restore_schedules()
    yield
    await service.scheduler.stop()
    for closeable in dependencies.get_closeables():
        await closeable.close()
    logger.info("API 服务关闭")


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用

    Returns:
        配置好的 FastAPI 实例
    """
    app = FastAPI(
        title="管道自动化引擎 API",
        description="事件 → 动作管道的创建、调度与执行历史",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    register_routes(app)

    return app


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": {"code": code, "message": message, "details": details or None},
            "timestamp": utc_now().isoformat(),
        },
    )


# 业务异常 → (HTTP 状态码, 错误码)，按顺序匹配
_ERROR_MAPPING: list[tuple[type[AutomationError], int, str]] = [
    (PipelineNotFoundError, status.HTTP_404_NOT_FOUND, "PIPELINE_NOT_FOUND"),
    (JobNotFoundError, status.HTTP_404_NOT_FOUND, "JOB_NOT_FOUND"),
    (PipelineAccessError, status.HTTP_403_FORBIDDEN, "FORBIDDEN"),
    (PipelineValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR"),
    (EvaluationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR"),
    (SchedulingError, status.HTTP_503_SERVICE_UNAVAILABLE, "SCHEDULING_ERROR"),
]


def register_exception_handlers(app: FastAPI) -> None:
    """注册异常处理器"""

    @app.exception_handler(AutomationError)
    async def automation_exception_handler(request: Request, exc: AutomationError) -> JSONResponse:
        for exc_type, status_code, code in _ERROR_MAPPING:
            if isinstance(exc, exc_type):
                return _error_response(status_code, code, exc.message, exc.details)

        logger.error(f"业务异常: {exc.message}", exc_info=True)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "AUTOMATION_ERROR",
            exc.message,
            exc.details,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
            for e in exc.errors()
        ]
        return _error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION_ERROR",
            "请求参数无效",
            {"errors": errors},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """HTTP 异常处理"""
        if isinstance(exc.detail, dict):
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "success": False,
                    "data": None,
                    "error": exc.detail,
                    "timestamp": utc_now().isoformat(),
                },
                headers=exc.headers,
            )
        return _error_response(exc.status_code, "HTTP_ERROR", str(exc.detail))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """通用异常处理"""
        logger.error(f"未处理的异常: {exc}", exc_info=True)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "服务器内部错误",
        )


def register_routes(app: FastAPI) -> None:
    """注册路由"""
    api_prefix = "/api/v1"

    app.include_router(pipelines_router, prefix=api_prefix)
    app.include_router(strategies_router, prefix=api_prefix)

    @app.get("/health", tags=["系统"])
    async def health_check() -> dict[str, Any]:
        """健康检查"""
        scheduler = None
        if dependencies.is_initialized():
            scheduler = (await dependencies.get_scheduler()).get_stats()
        return {
            "status": "healthy",
            "timestamp": utc_now().isoformat(),
            "version": __version__,
            "scheduler": scheduler,
        }


# 创建应用实例
app = create_app()
