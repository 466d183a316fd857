"""TraceMiddleware

任务路由（/api/tasks/{task_id}/...）把 task_id 绑定到 structlog context，
引擎在该请求内输出的日志都带上它。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


def extract_task_id(path: str) -> int | None:
    """从 /api/tasks/{task_id}... 路径中提取数字 task_id"""
    parts = [p for p in path.split("/") if p]
    for i, part in enumerate(parts):
        if part == "tasks" and i + 1 < len(parts) and parts[i + 1].isdigit():
            return int(parts[i + 1])
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件 -- 为任务操作绑定 task_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        task_id = extract_task_id(request.url.path)
        if task_id is not None:
            structlog.contextvars.bind_contextvars(task_id=task_id)

        return await call_next(request)
