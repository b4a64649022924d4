"""
流程请求 API 路由
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from ..models import RequestResponse, RequestUpdateRequest, TokenResponse, PaginatedResponse
from ..dependencies import get_engine, require_permission
from ...models.request import RequestStatus


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/requests", response_model=PaginatedResponse)
async def list_requests(
    process_id: Optional[str] = Query(None, description="流程ID"),
    status: Optional[RequestStatus] = Query(None, description="请求状态"),
    offset: int = Query(0, ge=0, description="偏移量"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.show"))
) -> PaginatedResponse:
    """列出流程请求"""
    requests = await engine.list_requests(
        definition_id=process_id,
        status=status,
        offset=offset,
        limit=limit
    )
    return PaginatedResponse(
        offset=offset,
        limit=limit,
        items=[RequestResponse.from_request(r).model_dump(mode="json") for r in requests]
    )


@router.get("/requests/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: str,
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.show"))
) -> RequestResponse:
    """获取流程请求"""
    request = await engine.get_request(request_id)
    return RequestResponse.from_request(request)


@router.put("/requests/{request_id}", response_model=RequestResponse)
async def update_request(
    request_id: str,
    payload: RequestUpdateRequest,
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.edit"))
) -> RequestResponse:
    """取消流程请求"""
    # 目前只支持取消（RequestUpdateRequest 只接受 CANCELED）
    request = await engine.cancel_request(request_id)
    return RequestResponse.from_request(request)


@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_request(
    request_id: str,
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.destroy"))
):
    """删除流程请求"""
    await engine.delete_request(request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/requests/{request_id}/tokens/{token_id}/trigger", response_model=TokenResponse)
async def trigger_catch_event(
    request_id: str,
    token_id: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.edit"))
) -> TokenResponse:
    """触发令牌上的中间捕获事件"""
    token = await engine.trigger_catch_event(request_id, token_id, payload or {})
    return TokenResponse.from_token(token)


@router.post("/requests/{request_id}/events/{event_name}", response_model=List[TokenResponse])
async def trigger_event(
    request_id: str,
    event_name: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.edit"))
) -> List[TokenResponse]:
    """按事件名触发等待中的捕获事件"""
    # 没有等待该事件的令牌时返回空列表
    tokens = await engine.trigger_event(request_id, event_name, payload or {})
    return [TokenResponse.from_token(token) for token in tokens]
