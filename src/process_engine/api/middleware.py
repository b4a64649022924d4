"""
API 中间件
"""
import time
import uuid
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Any

import jwt
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


logger = logging.getLogger(__name__)


def create_access_token(user_id: str, secret_key: str, algorithm: str = "HS256",
                        expires_in: timedelta = timedelta(hours=1),
                        claims: Dict[str, Any] = None) -> str:
    """签发访问令牌"""
    payload = dict(claims or {})
    payload.update({
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + expires_in
    })
    return jwt.encode(payload, secret_key, algorithm=algorithm)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """请求日志中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 生成请求ID
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        # 记录请求开始时间
        start_time = time.time()
        logger.info(
            f"Request started: {request.method} {request.url.path} "
            f"[request_id={request_id}]"
        )

        # 处理请求
        response = await call_next(request)

        # 添加响应头
        duration = time.time() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration)

        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"[request_id={request_id}] "
            f"[status={response.status_code}] "
            f"[duration={duration:.3f}s]"
        )

        return response


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """认证中间件：校验 Bearer JWT 并记录当前用户"""

    # 不需要认证的路径
    EXCLUDE_PATHS = [
        "/",
        "/docs",
        "/redoc",
        "/openapi.json",
        "/api/1.0/health",
    ]

    def __init__(self, app, secret_key: str, algorithm: str = "HS256", disabled: bool = False):
        super().__init__(app)
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.disabled = disabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXCLUDE_PATHS:
            return await call_next(request)

        # 开发模式下跳过认证
        if self.disabled:
            request.state.user = {"id": None}
            return await call_next(request)

        # 获取认证头
        authorization = request.headers.get("Authorization")
        if not authorization or not authorization.startswith("Bearer "):
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={
                    "error": "unauthorized",
                    "message": "Missing or invalid authorization header"
                }
            )

        token = authorization.split(" ", 1)[1]

        # 验证令牌
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={
                    "error": "token_expired",
                    "message": "Token has expired"
                }
            )
        except jwt.InvalidTokenError:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={
                    "error": "invalid_token",
                    "message": "Invalid token"
                }
            )

        # 将用户信息添加到请求状态
        request.state.user = {"id": payload.get("sub")}
        return await call_next(request)
