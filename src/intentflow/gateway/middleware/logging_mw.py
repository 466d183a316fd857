"""LoggingMiddleware

每个 HTTP 请求生成 request_id，并把网关会话的 session_id 一起绑定到
structlog contextvars，引擎在请求内输出的日志都能按会话归类。
响应头回传 X-Request-ID 与 X-Session-ID。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

log = structlog.get_logger()


def _session_id(request: Request) -> str | None:
    store_group = getattr(request.app.state, "store_group", None)
    return store_group.session_id if store_group is not None else None


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())
        session_id = _session_id(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            session_id=session_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)

        # 4xx/5xx 记为 warning
        if response.status_code >= 400:
            await log.awarning(
                "request_failed", status_code=response.status_code, duration_ms=duration_ms
            )
        else:
            await log.ainfo(
                "request_completed", status_code=response.status_code, duration_ms=duration_ms
            )

        response.headers["X-Request-ID"] = request_id
        if session_id is not None:
            response.headers["X-Session-ID"] = session_id
        return response
