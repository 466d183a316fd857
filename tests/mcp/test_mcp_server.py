"""MCP JSON-RPC 服务测试

测试内容：
1. initialize / ping / tools/list / 通知
2. tools/call 成功结果结构
3. AI 调用方：创建的任务归属 AI，不能完成 human 任务
4. 错误码：解析失败、非法请求、未知方法 / 工具、参数校验、引擎错误
5. serve() 逐行读写
"""

import io
import json
from dataclasses import replace

import pytest_asyncio

from intentflow.core.models import TaskStatus
from intentflow.core.tasks import TaskManager
from intentflow.mcp.server import (
    ENGINE_ERROR,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    McpServer,
)
from intentflow.mcp.tools import TOOLS


@pytest_asyncio.fixture
async def server(store_group) -> McpServer:
    return McpServer(store_group)


def _request(method: str, params: dict | None = None, request_id: int = 1) -> dict:
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


async def _call(server: McpServer, name: str, /, **arguments) -> dict:
    response = await server.handle_message(
        _request("tools/call", {"name": name, "arguments": arguments})
    )
    assert "error" not in response, response
    return response["result"]


class TestProtocol:
    """协议层方法"""

    async def test_initialize(self, server: McpServer):
        response = await server.handle_message(_request("initialize", {}))
        result = response["result"]
        assert response["id"] == 1
        assert result["protocolVersion"] == PROTOCOL_VERSION
        assert result["serverInfo"]["name"] == "intentflow"
        assert "tools" in result["capabilities"]

    async def test_ping(self, server: McpServer):
        response = await server.handle_message(_request("ping"))
        assert response["result"] == {}

    async def test_tools_list(self, server: McpServer):
        response = await server.handle_message(_request("tools/list"))
        tools = {tool["name"]: tool for tool in response["result"]["tools"]}
        assert set(tools) == set(TOOLS)
        assert "task_add" in tools
        assert tools["task_add"]["inputSchema"]["required"] == ["name"]

    async def test_notification_gets_no_response(self, server: McpServer):
        message = {"jsonrpc": "2.0", "method": "notifications/initialized"}
        assert await server.handle_message(message) is None

    async def test_parse_error(self, server: McpServer):
        response = await server.handle_line("{not json")
        assert response["error"]["code"] == PARSE_ERROR
        assert response["id"] is None

    async def test_invalid_request(self, server: McpServer):
        response = await server.handle_message({"id": 3, "method": "ping"})
        assert response["error"]["code"] == INVALID_REQUEST

    async def test_unknown_method(self, server: McpServer):
        response = await server.handle_message(_request("resources/list"))
        assert response["error"]["code"] == METHOD_NOT_FOUND


class TestToolCalls:
    """tools/call"""

    async def test_task_add_owned_by_ai(self, server: McpServer):
        result = await _call(server, "task_add", name="Investigate", spec="read logs")

        assert result["isError"] is False
        task = result["structuredContent"]
        assert task["owner"] == "ai"
        assert json.loads(result["content"][0]["text"])["id"] == task["id"]

    async def test_list_wraps_items(self, server: McpServer):
        await _call(server, "task_add", name="One")
        result = await _call(server, "task_list", parent_id=None)
        assert [t["name"] for t in result["structuredContent"]["items"]] == ["One"]

    async def test_ai_flow_start_done(self, server: McpServer):
        task = (await _call(server, "task_add", name="AI job"))["structuredContent"]
        await _call(server, "task_start", task_id=task["id"])

        done = (await _call(server, "task_done"))["structuredContent"]

        assert done["completed_task"]["status"] == "done"
        assert done["next_step_suggestion"]["type"] == "WORKSPACE_IS_CLEAR"

    async def test_ai_cannot_complete_human_task(self, server: McpServer, store_group):
        manager = TaskManager(store_group)
        task = await manager.add_task(name="Human job")
        await manager.start_task(task.id)

        response = await server.handle_message(
            _request("tools/call", {"name": "task_done", "arguments": {}})
        )

        error = response["error"]
        assert error["code"] == ENGINE_ERROR
        assert error["data"]["code"] == "PERMISSION_DENIED"
        assert error["data"]["details"]["task_id"] == task.id
        assert (await manager.get_task(task.id)).status == TaskStatus.DOING

    async def test_update_only_provided_fields(self, server: McpServer):
        parent = (await _call(server, "task_add", name="Parent"))["structuredContent"]
        child = (
            await _call(server, "task_add", name="Child", parent_id=parent["id"])
        )["structuredContent"]

        renamed = (
            await _call(server, "task_update", task_id=child["id"], name="Renamed")
        )["structuredContent"]
        assert renamed["parent_id"] == parent["id"]

        moved = (
            await _call(server, "task_update", task_id=child["id"], parent_id=None)
        )["structuredContent"]
        assert moved["parent_id"] is None

    async def test_plan_creates_ai_tasks(self, server: McpServer):
        result = (
            await _call(
                server,
                "plan",
                tasks=[{"name": "Epic", "children": [{"name": "Step", "spec": "s", "status": "doing"}]}],
            )
        )["structuredContent"]

        assert result["created_count"] == 2
        assert result["focused_task"]["task"]["owner"] == "ai"

    async def test_dependency_and_pick_next(self, server: McpServer):
        a = (await _call(server, "task_add", name="A", priority="low"))["structuredContent"]
        b = (await _call(server, "task_add", name="B", priority="critical"))["structuredContent"]
        await _call(server, "task_add_dependency", blocked_task_id=b["id"], blocking_task_id=a["id"])

        picked = (await _call(server, "task_pick_next"))["structuredContent"]

        assert picked["task"]["id"] == a["id"]

    async def test_events_and_report(self, server: McpServer):
        task = (await _call(server, "task_add", name="Noted"))["structuredContent"]
        await _call(server, "event_add", type="note", data="context", task_id=task["id"])

        events = (await _call(server, "event_list", task_id=task["id"]))["structuredContent"]
        report = (await _call(server, "report_generate"))["structuredContent"]
        current = (await _call(server, "current_task_get"))["structuredContent"]

        assert [e["discussion_data"] for e in events["items"]] == ["context"]
        assert report["summary"]["total_events"] == 1
        assert current == {"current_task_id": None, "task": None}


class TestToolErrors:
    """工具调用错误"""

    async def test_unknown_tool(self, server: McpServer):
        response = await server.handle_message(
            _request("tools/call", {"name": "task_explode", "arguments": {}})
        )
        assert response["error"]["code"] == METHOD_NOT_FOUND

    async def test_missing_required_argument(self, server: McpServer):
        response = await server.handle_message(
            _request("tools/call", {"name": "task_start", "arguments": {}})
        )
        assert response["error"]["code"] == INVALID_PARAMS

    async def test_extra_argument_rejected(self, server: McpServer):
        response = await server.handle_message(
            _request("tools/call", {"name": "task_done", "arguments": {"force": True}})
        )
        assert response["error"]["code"] == INVALID_PARAMS

    async def test_bad_priority_in_update(self, server: McpServer):
        task = (await _call(server, "task_add", name="T"))["structuredContent"]
        response = await server.handle_message(
            _request(
                "tools/call",
                {"name": "task_update", "arguments": {"task_id": task["id"], "priority": "soon"}},
            )
        )
        assert response["error"]["code"] == INVALID_PARAMS

    async def test_array_params_rejected(self, server: McpServer):
        """params 为数组时返回参数错误，而不是抛出异常"""
        response = await server.handle_line(
            '{"jsonrpc":"2.0","id":1,"method":"tools/call","params":["task_list"]}'
        )
        assert response["id"] == 1
        assert response["error"]["code"] == INVALID_PARAMS

    async def test_non_string_tool_name_rejected(self, server: McpServer):
        response = await server.handle_message(
            _request("tools/call", {"name": ["task_list"], "arguments": {}})
        )
        assert response["error"]["code"] == INVALID_PARAMS

    async def test_unexpected_handler_error_is_internal_error(
        self, server: McpServer, monkeypatch
    ):
        async def _boom(stores, args):
            raise RuntimeError("disk on fire")

        monkeypatch.setitem(TOOLS, "task_list", replace(TOOLS["task_list"], handler=_boom))

        response = await server.handle_message(
            _request("tools/call", {"name": "task_list", "arguments": {}}, request_id=9)
        )

        assert response["id"] == 9
        assert response["error"]["code"] == INTERNAL_ERROR
        assert response["error"]["data"] == {"error_type": "RuntimeError"}

    async def test_engine_error_payload(self, server: McpServer):
        response = await server.handle_message(
            _request("tools/call", {"name": "task_get", "arguments": {"task_id": 404}})
        )
        error = response["error"]
        assert error["code"] == ENGINE_ERROR
        assert error["data"]["code"] == "TASK_NOT_FOUND"
        assert error["data"]["retryable"] is False


class TestServe:
    """serve() 主循环"""

    async def test_line_protocol(self, server: McpServer):
        stdin = io.StringIO(
            "\n".join(
                [
                    json.dumps(_request("initialize", {}, request_id=1)),
                    json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
                    "",
                    json.dumps(_request("ping", request_id=2)),
                ]
            )
            + "\n"
        )
        stdout = io.StringIO()

        await server.serve(stdin, stdout)

        lines = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert [line["id"] for line in lines] == [1, 2]

    async def test_bad_request_does_not_stop_loop(self, server: McpServer):
        """非法 params 只产生错误响应，后续请求仍被处理"""
        stdin = io.StringIO(
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": ["x"]})
            + "\n"
            + json.dumps(_request("ping", request_id=2))
            + "\n"
        )
        stdout = io.StringIO()

        await server.serve(stdin, stdout)

        lines = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert lines[0]["error"]["code"] == INVALID_PARAMS
        assert lines[1] == {"jsonrpc": "2.0", "id": 2, "result": {}}
