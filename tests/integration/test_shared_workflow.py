"""端到端：human（HTTP）与 AI（MCP）共享同一个数据库

场景：
1. human 通过 /api/plan 建立任务树
2. AI 通过 MCP 在自己的会话中开始子任务，焦点与 human 会话互不影响
3. AI 不能完成 human 任务；human 完成后父任务自动完成
4. 任一会话完成任务时清除所有会话中指向它的焦点
"""

from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from intentflow.core.store import create_store_group
from intentflow.gateway.services.change_hub import ChangeHub
from intentflow.mcp.server import ENGINE_ERROR, McpServer


@pytest_asyncio.fixture
async def shared(tmp_path: Path, monkeypatch):
    db_path = str(tmp_path / "shared.db")
    monkeypatch.setenv("INTENTFLOW_DB_PATH", db_path)

    from intentflow.gateway.main import create_app

    app = create_app()
    human_stores = await create_store_group(db_path, session_id="human")
    ai_stores = await create_store_group(db_path, session_id="ai")
    app.state.store_group = human_stores
    app.state.change_hub = ChangeHub()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, McpServer(ai_stores)

    await ai_stores.close()
    await human_stores.close()


async def _tool(server: McpServer, name: str, /, **arguments) -> dict:
    return await server.handle_message(
        {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": name, "arguments": arguments},
        }
    )


class TestSharedWorkflow:
    """human 与 AI 协作完成一棵任务树"""

    async def test_plan_then_split_work(self, shared):
        client, ai = shared

        plan = (
            await client.post(
                "/api/plan",
                json={
                    "tasks": [
                        {
                            "name": "Launch",
                            "spec": "Public launch",
                            "children": [
                                {"name": "Landing page", "spec": "copy + design"},
                                {"name": "Announcement", "depends_on": ["Landing page"]},
                            ],
                        }
                    ]
                },
            )
        ).json()
        ids = plan["task_id_map"]

        # AI 会话开始 Landing page；human 会话焦点不受影响
        started = await _tool(ai, "task_start", task_id=ids["Landing page"])
        assert started["result"]["structuredContent"]["task"]["status"] == "doing"
        human_focus = (await client.get("/api/current-task")).json()
        assert human_focus["current_task_id"] is None

        # human 任务不能由 AI 完成
        denied = await _tool(ai, "task_done")
        assert denied["error"]["code"] == ENGINE_ERROR
        assert denied["error"]["data"]["code"] == "PERMISSION_DENIED"

        # Announcement 仍被阻塞
        blocked = await client.post(f"/api/tasks/{ids['Announcement']}/start")
        assert blocked.status_code == 409

        # human 接手完成 Landing page，AI 会话的焦点随之清除
        await client.post(f"/api/tasks/{ids['Landing page']}/switch")
        done = (await client.post("/api/tasks/done")).json()
        assert done["next_step_suggestion"]["type"] == "SIBLING_TASKS_REMAIN"
        ai_focus = await _tool(ai, "current_task_get")
        assert ai_focus["result"]["structuredContent"]["current_task_id"] is None

        # 下一步推荐 Announcement，完成后 Launch 自动完成
        picked = (await client.get("/api/pick-next")).json()
        assert picked["task"]["id"] == ids["Announcement"]

        await client.post(f"/api/tasks/{ids['Announcement']}/start")
        final = (await client.post("/api/tasks/done")).json()
        assert final["auto_completed_task_ids"] == [ids["Launch"]]

        report = (await client.get("/api/report")).json()
        assert report["summary"]["done_count"] == 3
        assert report["summary"]["todo_count"] == 0

    async def test_ai_owned_subtask_completed_by_ai(self, shared):
        client, ai = shared

        parent = (await client.post("/api/tasks", json={"name": "Refactor"})).json()
        await _tool(ai, "task_switch", task_id=parent["id"])
        spawned = await _tool(ai, "task_spawn_subtask", name="Rename module", spec="mechanical")
        subtask = spawned["result"]["structuredContent"]["subtask"]
        assert subtask["owner"] == "ai"

        done = await _tool(ai, "task_done")
        result = done["result"]["structuredContent"]
        assert result["completed_task"]["id"] == subtask["id"]
        assert result["auto_completed_task_ids"] == [parent["id"]]

        detail = (await client.get(f"/api/tasks/{parent['id']}")).json()
        assert detail["task"]["status"] == "done"
