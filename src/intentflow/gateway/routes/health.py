"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性与 WAL 模式。
"""

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from intentflow.core.store.sqlite_init import verify_wal_mode

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. wal_mode: 是否运行在 WAL 模式
    3. subscribers: 当前变更订阅者数量（仅信息）
    """
    checks = {}
    all_ok = True

    # 1. SQLite 连通性检查
    try:
        store_group = request.app.state.store_group
        async with store_group.read():
            cursor = await store_group.conn.execute("SELECT 1")
            await cursor.fetchone()
            wal = await verify_wal_mode(store_group.conn)
        checks["sqlite"] = "ok"
        checks["wal_mode"] = "ok" if wal else "disabled"
    except Exception as e:
        log.warning("readiness_check_failed", error=str(e))
        checks["sqlite"] = f"error: {str(e)}"
        all_ok = False

    change_hub = getattr(request.app.state, "change_hub", None)
    checks["subscribers"] = change_hub.subscriber_count if change_hub else 0

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "checks": checks,
        },
    )
