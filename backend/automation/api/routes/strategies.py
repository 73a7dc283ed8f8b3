"""
管道自动化引擎 — 策略推荐路由
"""

from fastapi import APIRouter

from automation.api.auth import CurrentOwner
from automation.api.dependencies import StrategyPlannerDep
from automation.api.schemas import ApiResponse
from automation.strategy.planner import StrategyConfig

router = APIRouter(prefix="/strategies", tags=["策略"])


@router.post("/recommend", response_model=ApiResponse[dict])
async def recommend_strategy(
    config: StrategyConfig,
    owner_id: CurrentOwner,
    planner: StrategyPlannerDep,
) -> ApiResponse[dict]:
    """
    策略推荐

    只生成计划，不执行任何交易。行情不可用时返回 Balanced DCA。
    """
    plan = await planner.build_plan(config)
    return ApiResponse(data=plan.to_dict())
