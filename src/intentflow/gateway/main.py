"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 变更广播器 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from intentflow.core.config import get_db_path
from intentflow.core.logging_config import setup_logging
from intentflow.core.store import create_store_group

from .error_handlers import register_error_handlers
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import dependencies, events, health, plan, stream, tasks, workspace
from .services.change_hub import ChangeHub

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group
    app.state.change_hub = ChangeHub()
    log.info("gateway_started", db_path=db_path, session_id=store_group.session_id)

    yield

    # 关闭：清理数据库连接
    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="intentflow Gateway",
        version="0.1.0",
        description="Task lifecycle engine HTTP / WebSocket API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()

    register_error_handlers(app)

    # 注册路由
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(dependencies.router, tags=["dependencies"])
    app.include_router(workspace.router, tags=["workspace"])
    app.include_router(plan.router, tags=["plan"])
    app.include_router(events.router, tags=["events"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
