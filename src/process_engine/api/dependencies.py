"""
FastAPI 依赖注入
"""
import logging
from typing import Any, Dict

from fastapi import Depends, HTTPException, Request, status

from ..core import ProcessEngine, DefinitionStore, TimerScheduler
from ..services import ProcessServices


logger = logging.getLogger(__name__)


def get_services(request: Request) -> ProcessServices:
    """获取应用组件"""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "service_unavailable",
                "message": "Process engine not initialized"
            }
        )
    return services


def get_engine(services: ProcessServices = Depends(get_services)) -> ProcessEngine:
    """获取流程引擎实例"""
    return services.engine


def get_definition_store(services: ProcessServices = Depends(get_services)) -> DefinitionStore:
    """获取流程定义存储"""
    return services.definitions


def get_scheduler(services: ProcessServices = Depends(get_services)) -> TimerScheduler:
    """获取定时器调度器"""
    return services.scheduler


def get_current_user(request: Request) -> Dict[str, Any]:
    """获取当前用户信息（由认证中间件设置）"""
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "unauthorized",
                "message": "Authentication required"
            }
        )
    return user


def require_permission(permission: str):
    """权限检查依赖"""
    async def permission_checker(
        request: Request,
        current_user: Dict[str, Any] = Depends(get_current_user),
        services: ProcessServices = Depends(get_services)
    ) -> Dict[str, Any]:
        # 关闭认证时不检查权限
        if request.app.state.settings.disable_auth:
            return current_user

        user = await services.permissions.get_user(current_user["id"]) if current_user["id"] else None
        if user is None or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={
                    "error": "unauthorized",
                    "message": "Unknown or inactive user"
                }
            )

        # 管理员拥有所有权限
        if user.is_administrator:
            return current_user

        if permission not in await services.permissions.user_permissions(user.id):
            logger.warning(f"User '{user.id}' lacks permission '{permission}'")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "insufficient_permissions",
                    "message": f"Permission '{permission}' required"
                }
            )

        return current_user

    return permission_checker
