"""
管道自动化引擎 — 管道路由
"""

from fastapi import APIRouter, Query, status

from automation.api.auth import CurrentOwner
from automation.api.dependencies import PipelineServiceDep
from automation.api.schemas import (
    ApiResponse,
    CreatePipelineRequest,
    DeleteResponse,
    HistoryResponse,
    PipelineListResponse,
    RunResponse,
    UpdateStatusRequest,
)
from automation.common.enums import PipelineStatus

router = APIRouter(prefix="/pipelines", tags=["管道"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ApiResponse[dict])
async def create_pipeline(
    request: CreatePipelineRequest,
    owner_id: CurrentOwner,
    service: PipelineServiceDep,
) -> ApiResponse[dict]:
    """
    创建管道

    校验定义后保存并登记调度；调度失败时创建整体失败。
    """
    pipeline = await service.create(
        owner_id=owner_id,
        name=request.name,
        events=request.events,
        actions=request.actions,
        connections=request.connections,
        status=request.status,
        execution_mode=request.execution_mode,
    )
    return ApiResponse(data=pipeline.to_record())


@router.get("", response_model=ApiResponse[PipelineListResponse])
async def list_pipelines(
    owner_id: CurrentOwner,
    service: PipelineServiceDep,
    status_filter: PipelineStatus | None = Query(default=None, alias="status"),
) -> ApiResponse[PipelineListResponse]:
    """当前用户的管道（按创建时间倒序）"""
    pipelines = await service.list_pipelines(owner_id, status_filter)
    return ApiResponse(
        data=PipelineListResponse(
            items=[p.to_record() for p in pipelines],
            total=len(pipelines),
        )
    )


@router.get("/{pipeline_id}", response_model=ApiResponse[dict])
async def get_pipeline(
    pipeline_id: str,
    owner_id: CurrentOwner,
    service: PipelineServiceDep,
) -> ApiResponse[dict]:
    pipeline = await service.get(owner_id, pipeline_id)
    return ApiResponse(data=pipeline.to_record())


@router.patch("/{pipeline_id}/status", response_model=ApiResponse[dict])
async def update_pipeline_status(
    pipeline_id: str,
    request: UpdateStatusRequest,
    owner_id: CurrentOwner,
    service: PipelineServiceDep,
) -> ApiResponse[dict]:
    """暂停（paused）或恢复（active）"""
    pipeline = await service.update_status(owner_id, pipeline_id, request.status)
    return ApiResponse(data=pipeline.to_record())


@router.delete("/{pipeline_id}", response_model=ApiResponse[DeleteResponse])
async def delete_pipeline(
    pipeline_id: str,
    owner_id: CurrentOwner,
    service: PipelineServiceDep,
) -> ApiResponse[DeleteResponse]:
    await service.delete(owner_id, pipeline_id)
    return ApiResponse(data=DeleteResponse(id=pipeline_id))


@router.post("/{pipeline_id}/run", response_model=ApiResponse[RunResponse])
async def run_pipeline(
    pipeline_id: str,
    owner_id: CurrentOwner,
    service: PipelineServiceDep,
) -> ApiResponse[RunResponse]:
    """
    立即运行一次

    上一次运行未结束或管道已暂停时 skipped=true。
    """
    report = await service.run_now(owner_id, pipeline_id)
    return ApiResponse(
        data=RunResponse(
            pipeline_id=pipeline_id,
            skipped=report is None,
            report=report.to_dict() if report else None,
        )
    )


@router.get("/{pipeline_id}/history", response_model=ApiResponse[HistoryResponse])
async def get_pipeline_history(
    pipeline_id: str,
    owner_id: CurrentOwner,
    service: PipelineServiceDep,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> ApiResponse[HistoryResponse]:
    pipeline = await service.get(owner_id, pipeline_id)
    entries = await service.history(owner_id, pipeline_id, limit)
    return ApiResponse(
        data=HistoryResponse(
            pipeline_id=pipeline_id,
            items=[e.model_dump(mode="json", by_alias=True) for e in entries],
            total=len(pipeline.metadata.execution_history),
            execution_count=pipeline.execution_count,
        )
    )
