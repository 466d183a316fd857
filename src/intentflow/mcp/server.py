"""MCP JSON-RPC 2.0 服务

按行读取 stdin 上的 JSON-RPC 消息，响应写到 stdout；日志只写 stderr。
支持方法：initialize / ping / tools/list / tools/call，无 id 的通知消息不回复。

错误码：
- -32700 解析失败
- -32600 请求结构非法
- -32601 方法或工具不存在
- -32602 参数校验失败
- -32603 未预期的内部错误（进程继续服务）
- -32000 引擎错误（data 中携带结构化错误）
"""

import asyncio
import json
import sys
from typing import Any, TextIO

import structlog
from pydantic import BaseModel, ValidationError

from intentflow.core.errors import EngineError
from intentflow.core.store import StoreGroup

from .tools import TOOLS

log = structlog.get_logger()

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "intentflow"
SERVER_VERSION = "0.1.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
ENGINE_ERROR = -32000


class JsonRpcError(Exception):
    """协议层错误，直接映射为 JSON-RPC error 对象"""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


class McpServer:
    """MCP 服务：把 JSON-RPC 请求分发到引擎工具"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def handle_line(self, line: str) -> dict[str, Any] | None:
        """处理一行原始输入，返回要写回的响应（通知返回 None）"""
        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            return _error_response(None, JsonRpcError(PARSE_ERROR, f"Parse error: {exc}"))
        return await self.handle_message(message)

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            return _error_response(
                message.get("id") if isinstance(message, dict) else None,
                JsonRpcError(INVALID_REQUEST, "Invalid Request"),
            )

        request_id = message.get("id")
        method = message.get("method")
        params = message.get("params")
        is_notification = "id" not in message

        try:
            if params is None:
                params = {}
            elif not isinstance(params, dict):
                raise JsonRpcError(INVALID_PARAMS, "params must be an object")
            result = await self._dispatch(method, params)
        except JsonRpcError as exc:
            if is_notification:
                return None
            return _error_response(request_id, exc)
        except Exception as e:
            log.error(
                "mcp_request_failed",
                method=method,
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )
            if is_notification:
                return None
            return _error_response(
                request_id,
                JsonRpcError(INTERNAL_ERROR, "Internal error", data={"error_type": type(e).__name__}),
            )

        if is_notification:
            return None
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def _dispatch(self, method: Any, params: dict[str, Any]) -> Any:
        if method == "initialize":
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            }
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": [tool.definition() for tool in TOOLS.values()]}
        if method == "tools/call":
            return await self._call_tool(params)
        if isinstance(method, str) and method.startswith("notifications/"):
            return None
        raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str):
            raise JsonRpcError(INVALID_PARAMS, "Tool name must be a string")
        tool = TOOLS.get(name)
        if tool is None:
            raise JsonRpcError(METHOD_NOT_FOUND, f"Unknown tool: {name}")

        try:
            args = tool.args_model.model_validate(params.get("arguments") or {})
        except ValidationError as exc:
            raise JsonRpcError(
                INVALID_PARAMS,
                f"Invalid arguments for {name}",
                data=json.loads(exc.json(include_url=False)),
            ) from exc

        structlog.contextvars.bind_contextvars(tool=name)
        try:
            result = await tool.handler(self._stores, args)
        except ValidationError as exc:
            raise JsonRpcError(
                INVALID_PARAMS,
                f"Invalid arguments for {name}",
                data=json.loads(exc.json(include_url=False)),
            ) from exc
        except EngineError as exc:
            await log.awarning("tool_call_failed", code=exc.code, message=exc.message)
            raise JsonRpcError(ENGINE_ERROR, exc.message, data=exc.to_error_response()) from exc
        finally:
            structlog.contextvars.unbind_contextvars("tool")

        payload = _to_jsonable(result)
        return {
            "content": [
                {"type": "text", "text": json.dumps(payload, ensure_ascii=False, indent=2)}
            ],
            "structuredContent": payload if isinstance(payload, dict) else {"items": payload},
            "isError": False,
        }

    async def serve(self, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> None:
        """主循环：逐行读取直到 EOF"""
        loop = asyncio.get_running_loop()
        await log.ainfo("mcp_server_started", session_id=self._stores.session_id)
        while True:
            line = await loop.run_in_executor(None, stdin.readline)
            if not line:
                break
            if not line.strip():
                continue
            response = await self.handle_line(line)
            if response is not None:
                stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
                stdout.flush()
        await log.ainfo("mcp_server_stopped")


def _error_response(request_id: Any, error: JsonRpcError) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": error.to_dict()}
