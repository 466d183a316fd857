"""引擎异常 -> HTTP 响应

响应体统一为 {"error": {"code", "message", "retryable", "details"}}。
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from intentflow.core.errors import (
    CircularDependencyError,
    DuplicateNamesError,
    EngineError,
    InvalidInputError,
    MissingSpecForDoingError,
    MultipleInProgressError,
    NoCurrentTaskError,
    NotFoundError,
    PermissionDeniedError,
    StoreBusyError,
    TaskBlockedError,
    UncompletedChildrenError,
    invalid_input_from,
)

log = structlog.get_logger()

# 按继承顺序匹配，先具体后通用
_STATUS_BY_ERROR: list[tuple[type[EngineError], int]] = [
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (TaskBlockedError, 409),
    (UncompletedChildrenError, 409),
    (CircularDependencyError, 409),
    (DuplicateNamesError, 409),
    (MultipleInProgressError, 409),
    (NoCurrentTaskError, 409),
    (MissingSpecForDoingError, 400),
    (InvalidInputError, 400),
    (StoreBusyError, 503),
]


def status_for(exc: EngineError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status_code = status_for(exc)
    await log.awarning(
        "engine_error", code=exc.code, message=exc.message, status_code=status_code
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.to_error_response()},
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = invalid_input_from(exc)
    return JSONResponse(status_code=400, content={"error": error.to_error_response()})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
