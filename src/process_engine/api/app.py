"""
FastAPI 应用主文件
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .models import ErrorResponse
from .routers import processes, tasks, requests, monitoring
from .middleware import RequestLoggingMiddleware, AuthenticationMiddleware
from ..config import Settings
from ..exceptions import ProcessEngineError
from ..services import ProcessServices, build_database_services
from .. import __version__


logger = logging.getLogger(__name__)

API_PREFIX = "/api/1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("Starting Process Engine API...")

    owns_services = app.state.services is None
    if owns_services:
        app.state.services = await build_database_services(app.state.settings)

    services = app.state.services
    if app.state.run_scheduler:
        await services.scheduler.start()

    logger.info("Process Engine API started successfully")

    yield

    logger.info("Shutting down Process Engine API...")
    await services.scheduler.stop()
    if owns_services:
        await services.close()
        app.state.services = None

    logger.info("Process Engine API shut down successfully")


def _error_response(request: Request, status_code: int, error: str, message: str,
                    details: dict = None) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        request_id=getattr(request.state, "request_id", None)
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, exclude_none=True)
    )


def create_app(settings: Optional[Settings] = None,
               services: Optional[ProcessServices] = None,
               run_scheduler: bool = True) -> FastAPI:
    """
    创建应用

    Args:
        settings: 配置，缺省时从环境变量读取
        services: 预先组装的组件；缺省时在启动阶段按配置连接数据库
        run_scheduler: 是否在应用生命周期内运行定时器扫描
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Process Engine API",
        description="BPMN 流程执行服务 RESTful API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )
    app.state.settings = settings
    app.state.services = services
    app.state.run_scheduler = run_scheduler

    # 添加CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        AuthenticationMiddleware,
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        disabled=settings.disable_auth
    )
    # 最后添加的中间件最先执行
    app.add_middleware(RequestLoggingMiddleware)

    # 注册路由
    app.include_router(processes.router, prefix=API_PREFIX, tags=["processes"])
    app.include_router(tasks.router, prefix=API_PREFIX, tags=["tasks"])
    app.include_router(requests.router, prefix=API_PREFIX, tags=["requests"])
    app.include_router(monitoring.router, prefix=API_PREFIX, tags=["monitoring"])

    # 注册异常处理器
    @app.exception_handler(ProcessEngineError)
    async def process_engine_exception_handler(request: Request, exc: ProcessEngineError):
        """引擎异常：按异常类型返回结构化错误"""
        logger.warning(f"{exc.kind}: {exc}")
        details = {"errors": exc.errors} if hasattr(exc, "errors") else None
        return _error_response(request, exc.status_code, exc.kind, str(exc), details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            422,
            "validation_error",
            "Request validation failed",
            {"errors": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            return _error_response(
                request, exc.status_code, exc.detail["error"], exc.detail.get("message", "")
            )
        return _error_response(request, exc.status_code, "http_error", str(exc.detail))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """全局异常处理器"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_server_error",
            "An unexpected error occurred"
        )

    @app.get("/", tags=["root"])
    async def root():
        """API根路径"""
        return {
            "name": "Process Engine API",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "health": f"{API_PREFIX}/health"
        }

    return app
