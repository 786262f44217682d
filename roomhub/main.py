"""
roomhub.main
~~~~~~~~~~~~

应用工厂 —— 组装 Hub、中间件、路由和异常处理器，并提供命令行入口。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Receive, Scope, Send

from roomhub.api import events, openai, rooms
from roomhub.core.config import Settings, settings as default_settings
from roomhub.core.errors import HubError
from roomhub.core.logging import get_logger, setup_logging, uvicorn_log_config
from roomhub.schemas.api_response import ErrorResponse, HealthResponse
from roomhub.schemas.common import now_ms
from roomhub.services.hub import Hub

logger = get_logger(__name__)

# 局域网多设备使用，允许所有来源
CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class PreflightMiddleware:
    """所有路径的 OPTIONS 预检请求统一返回 204 + CORS 头。

    纯 ASGI 实现，不包装响应体，SSE 与流式代理不受影响。
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            response = Response(status_code=204, headers=CORS_HEADERS)
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
        headers={"Access-Control-Allow-Origin": "*"},
    )


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """构造一个带独立 Hub 的 FastAPI 应用。

    Args:
        settings: 使用的配置，默认取全局 ``settings``。
        transport: 上游 HTTP 传输层（测试时注入 ``httpx.MockTransport``）。
    """
    settings = settings or default_settings
    hub = Hub(settings, transport=transport)

    # ── 生命周期 ──────────────────────────────────────────────────────

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """应用生命周期钩子：启动存活巡检，关闭时清理全部状态。"""
        setup_logging(settings)
        hub.start()
        logger.info(
            "🚀 Hub 已启动 | env=%s | port=%d | health_interval=%dms",
            settings.ENVIRONMENT,
            settings.PORT,
            settings.HEALTH_CHECK_INTERVAL_MS,
        )
        yield
        await hub.close()
        logger.info("👋 Hub 已关闭")

    app: FastAPI = FastAPI(
        title=settings.PROJECT_NAME,
        description="把个人 LLM 推理端点汇聚到房间中，统一以 OpenAI 兼容接口对外提供",
        version=settings.VERSION,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.hub = hub

    # ── 中间件 ────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 最外层：所有 OPTIONS 请求在进入路由之前直接应答
    app.add_middleware(PreflightMiddleware)

    # ── 路由挂载 ──────────────────────────────────────────────────────
    app.include_router(rooms.router, tags=["Rooms"])
    app.include_router(openai.router, tags=["OpenAI"])
    app.include_router(events.router, tags=["Events"])

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Hub 存活检查。"""
        return HealthResponse(status="ok", timestamp=now_ms())

    # ── 异常处理器 ────────────────────────────────────────────────────

    @app.exception_handler(HubError)
    async def hub_error_handler(request: Request, exc: HubError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
        return _error(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """请求体格式错误统一返回 400。"""
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error(f"Invalid request: {message}", 400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """捕获所有未处理异常，避免返回 HTML 错误页面。"""
        logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
        # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
        detail = str(exc) if not settings.is_prod else "Internal server error"
        return _error(detail, 500)

    return app


def run() -> None:
    """命令行入口：按全局配置启动 uvicorn。"""
    import uvicorn

    uvicorn.run(
        "roomhub.main:create_app",
        factory=True,
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.reload,  # 仅 dev 环境开启热重载
        log_config=uvicorn_log_config(default_settings),
    )


if __name__ == "__main__":
    run()
