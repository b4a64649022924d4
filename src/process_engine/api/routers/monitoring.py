"""
监控 API 路由
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..models import HealthCheckResponse
from ..dependencies import get_services, get_current_user
from ... import __version__


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(services=Depends(get_services)) -> HealthCheckResponse:
    """健康检查"""
    checks = {
        "engine": services.engine is not None,
        "scheduler": services.scheduler.running,
        "database": services.db_manager is None or services.db_manager.engine is not None,
    }
    healthy = checks["engine"] and checks["database"]
    return HealthCheckResponse(
        status="healthy" if healthy else "unhealthy",
        version=__version__,
        checks=checks
    )


@router.get("/metrics")
async def get_metrics(
    services=Depends(get_services),
    current_user=Depends(get_current_user)
) -> Dict[str, Any]:
    """获取计数器指标"""
    return {"counters": services.metrics.snapshot()}
