"""
任务 API 路由
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..models import TaskUpdateRequest, TokenResponse, PaginatedResponse
from ..dependencies import get_engine, require_permission
from ...models.request import TokenStatus


logger = logging.getLogger(__name__)
router = APIRouter()


@router.put("/task/{token_id}", response_model=TokenResponse)
async def update_task(
    token_id: str,
    payload: TaskUpdateRequest,
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.edit"))
) -> TokenResponse:
    """完成任务"""
    token = await engine.complete_task(token_id, payload.data)
    return TokenResponse.from_token(token)


@router.get("/task/{token_id}", response_model=TokenResponse)
async def get_task(
    token_id: str,
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.show"))
) -> TokenResponse:
    """获取任务令牌"""
    token = await engine.get_token(token_id)
    return TokenResponse.from_token(token)


@router.get("/tasks", response_model=PaginatedResponse)
async def list_tasks(
    request_id: Optional[str] = Query(None, description="流程请求ID"),
    status: Optional[TokenStatus] = Query(None, description="令牌状态"),
    user_id: Optional[str] = Query(None, description="分配的用户"),
    offset: int = Query(0, ge=0, description="偏移量"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    engine=Depends(get_engine),
    current_user=Depends(require_permission("requests.show"))
) -> PaginatedResponse:
    """列出令牌"""
    tokens = await engine.list_tokens(
        request_id=request_id,
        status=status,
        assignee=user_id,
        offset=offset,
        limit=limit
    )
    return PaginatedResponse(
        offset=offset,
        limit=limit,
        items=[TokenResponse.from_token(token).model_dump(mode="json") for token in tokens]
    )
