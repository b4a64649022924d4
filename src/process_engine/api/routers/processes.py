"""
流程定义与启动 API 路由
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ..models import (
    ProcessDeployRequest, ProcessResponse, ProcessDetailResponse,
    RequestResponse, PaginatedResponse
)
from ..dependencies import get_engine, get_definition_store, require_permission


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/process/{definition_id}/event/{event_name}",
    response_model=RequestResponse,
    status_code=status.HTTP_201_CREATED
)
async def start_process(
    definition_id: str,
    event_name: str,
    data: Optional[Dict[str, Any]] = Body(None),
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.create"))
) -> RequestResponse:
    """通过开始事件启动流程请求"""
    request = await engine.start(definition_id, event_name, data or {})
    return RequestResponse.from_request(request)


@router.post("/processes", response_model=ProcessDetailResponse, status_code=status.HTTP_201_CREATED)
async def deploy_process(
    payload: ProcessDeployRequest,
    store=Depends(get_definition_store),
    current_user=Depends(require_permission("processes.create"))
) -> ProcessDetailResponse:
    """部署流程定义"""
    definition = await store.deploy(payload.source, definition_id=payload.id, name=payload.name)
    return ProcessDetailResponse.from_definition(definition)


@router.put("/processes/{definition_id}", response_model=ProcessDetailResponse)
async def deploy_process_version(
    definition_id: str,
    payload: ProcessDeployRequest,
    store=Depends(get_definition_store),
    current_user=Depends(require_permission("processes.edit"))
) -> ProcessDetailResponse:
    """部署流程定义的新版本，正在运行的请求不受影响"""
    # 流程定义必须已存在
    await store.get(definition_id)
    definition = await store.deploy(payload.source, definition_id=definition_id, name=payload.name)
    return ProcessDetailResponse.from_definition(definition)


@router.get("/processes", response_model=PaginatedResponse)
async def list_processes(
    offset: int = Query(0, ge=0, description="偏移量"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    store=Depends(get_definition_store),
    current_user=Depends(require_permission("processes.show"))
) -> PaginatedResponse:
    """列出流程定义（最新版本）"""
    definitions = await store.list(offset=offset, limit=limit)
    return PaginatedResponse(
        offset=offset,
        limit=limit,
        items=[ProcessResponse.from_definition(d).model_dump(mode="json") for d in definitions]
    )


@router.get("/processes/{definition_id}", response_model=ProcessDetailResponse)
async def get_process(
    definition_id: str,
    version: Optional[int] = Query(None, ge=1, description="版本号，缺省为最新版本"),
    store=Depends(get_definition_store),
    current_user=Depends(require_permission("processes.show"))
) -> ProcessDetailResponse:
    """获取流程定义"""
    definition = await store.get(definition_id, version)
    return ProcessDetailResponse.from_definition(definition)
