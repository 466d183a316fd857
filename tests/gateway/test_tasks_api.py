"""任务 / 依赖 / 焦点 API 测试

测试内容：
1. 创建、查询、更新（parent_id 三态）、删除
2. start / done / switch / spawn-subtask 走完整生命周期
3. 依赖边的增删与阻塞
4. 引擎错误映射为 HTTP 状态码与 {"error": {...}} 响应体
5. 写操作广播 task_changed
"""

from httpx import AsyncClient


async def _create(client: AsyncClient, name: str, **fields) -> dict:
    resp = await client.post("/api/tasks", json={"name": name, **fields})
    assert resp.status_code == 201
    return resp.json()


class TestTaskCrud:
    """任务 CRUD"""

    async def test_create_and_get(self, client: AsyncClient):
        task = await _create(client, "Write docs", spec="README", priority="high")
        assert task["status"] == "todo"
        assert task["owner"] == "human"
        assert task["priority"] == 2

        resp = await client.get(f"/api/tasks/{task['id']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["task"]["name"] == "Write docs"
        assert data["events_summary"]["total_count"] == 0

    async def test_get_missing_is_404(self, client: AsyncClient):
        resp = await client.get("/api/tasks/999")
        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "TASK_NOT_FOUND"
        assert error["details"] == {"task_id": 999}

    async def test_list_parent_tristate(self, client: AsyncClient):
        parent = await _create(client, "Parent")
        await _create(client, "Child", parent_id=parent["id"])

        everything = (await client.get("/api/tasks")).json()["tasks"]
        roots = (await client.get("/api/tasks", params={"parent_id": "null"})).json()["tasks"]
        children = (
            await client.get("/api/tasks", params={"parent_id": parent["id"]})
        ).json()["tasks"]

        assert len(everything) == 2
        assert [t["name"] for t in roots] == ["Parent"]
        assert [t["name"] for t in children] == ["Child"]

    async def test_list_invalid_status_is_400(self, client: AsyncClient):
        resp = await client.get("/api/tasks", params={"status": "paused"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_INPUT"

    async def test_patch_explicit_null_parent(self, client: AsyncClient):
        parent = await _create(client, "Parent")
        child = await _create(client, "Child", parent_id=parent["id"])

        renamed = await client.patch(f"/api/tasks/{child['id']}", json={"name": "Renamed"})
        assert renamed.json()["parent_id"] == parent["id"]

        moved = await client.patch(f"/api/tasks/{child['id']}", json={"parent_id": None})
        assert moved.status_code == 200
        assert moved.json()["parent_id"] is None

    async def test_patch_bad_priority_is_400(self, client: AsyncClient):
        task = await _create(client, "Task")
        resp = await client.patch(f"/api/tasks/{task['id']}", json={"priority": "soon"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_INPUT"

    async def test_delete_cascade(self, client: AsyncClient):
        parent = await _create(client, "Parent")
        await _create(client, "Child", parent_id=parent["id"])

        resp = await client.delete(f"/api/tasks/{parent['id']}")

        assert resp.status_code == 200
        assert resp.json() == {"task_id": parent["id"], "cascade_deleted_count": 1}
        assert (await client.get("/api/tasks")).json()["tasks"] == []


class TestLifecycleApi:
    """生命周期端点"""

    async def test_start_done_cascade(self, client: AsyncClient):
        a = await _create(client, "A")
        b = await _create(client, "B", parent_id=a["id"])

        started = await client.post(f"/api/tasks/{b['id']}/start")
        assert started.status_code == 200
        assert started.json()["task"]["status"] == "doing"

        current = (await client.get("/api/current-task")).json()
        assert current["current_task_id"] == b["id"]

        done = await client.post("/api/tasks/done")
        assert done.status_code == 200
        body = done.json()
        assert body["auto_completed_task_ids"] == [a["id"]]
        assert body["next_step_suggestion"]["type"] == "PARENT_COMPLETED"
        assert (await client.get("/api/current-task")).json()["current_task_id"] is None

    async def test_done_without_focus_is_409(self, client: AsyncClient):
        resp = await client.post("/api/tasks/done")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "NO_CURRENT_TASK"

    async def test_done_with_open_children_is_409(self, client: AsyncClient):
        parent = await _create(client, "Parent")
        await _create(client, "Child", parent_id=parent["id"])
        await client.post(f"/api/tasks/{parent['id']}/start")

        resp = await client.post("/api/tasks/done")

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "UNCOMPLETED_CHILDREN"

    async def test_switch_and_spawn(self, client: AsyncClient):
        a = await _create(client, "A")
        b = await _create(client, "B")
        await client.post(f"/api/tasks/{a['id']}/start")

        switched = await client.post(f"/api/tasks/{b['id']}/switch")
        assert switched.status_code == 200
        assert switched.json()["previous_task"] == {"id": a["id"], "status": "doing"}

        spawned = await client.post(
            "/api/tasks/spawn-subtask", json={"name": "Sub", "spec": "detail"}
        )
        assert spawned.status_code == 201
        assert spawned.json()["subtask"]["parent_id"] == b["id"]

    async def test_current_task_put_and_delete(self, client: AsyncClient):
        task = await _create(client, "Pinned")

        put = await client.put("/api/current-task", json={"task_id": task["id"]})
        assert put.status_code == 200
        assert put.json()["current_task_id"] == task["id"]
        assert put.json()["task"]["status"] == "todo"

        cleared = await client.delete("/api/current-task")
        assert cleared.json()["current_task_id"] is None

    async def test_pick_next(self, client: AsyncClient):
        empty = (await client.get("/api/pick-next")).json()
        assert empty["suggestion_type"] == "NONE"
        assert empty["reason_code"] == "NO_TASKS_IN_PROJECT"

        task = await _create(client, "Next")
        picked = (await client.get("/api/pick-next")).json()
        assert picked["suggestion_type"] == "TOP_LEVEL_TASK"
        assert picked["task"]["id"] == task["id"]


class TestDependencyApi:
    """依赖端点"""

    async def test_add_block_remove(self, client: AsyncClient):
        a = await _create(client, "A")
        b = await _create(client, "B")

        added = await client.post(
            f"/api/tasks/{b['id']}/dependencies", json={"blocking_task_id": a["id"]}
        )
        assert added.status_code == 201

        blocked = await client.post(f"/api/tasks/{b['id']}/start")
        assert blocked.status_code == 409
        error = blocked.json()["error"]
        assert error["code"] == "TASK_BLOCKED"
        assert error["details"]["blocking_task_ids"] == [a["id"]]

        deps = (await client.get(f"/api/tasks/{b['id']}/dependencies")).json()
        assert [t["id"] for t in deps["blocking_tasks"]] == [a["id"]]

        removed = await client.delete(f"/api/tasks/{b['id']}/dependencies/{a['id']}")
        assert removed.status_code == 204
        assert (await client.post(f"/api/tasks/{b['id']}/start")).status_code == 200

    async def test_cycle_is_409(self, client: AsyncClient):
        a = await _create(client, "A")
        b = await _create(client, "B")
        await client.post(f"/api/tasks/{b['id']}/dependencies", json={"blocking_task_id": a["id"]})

        resp = await client.post(
            f"/api/tasks/{a['id']}/dependencies", json={"blocking_task_id": b["id"]}
        )

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CIRCULAR_DEPENDENCY"

    async def test_remove_missing_is_404(self, client: AsyncClient):
        a = await _create(client, "A")
        b = await _create(client, "B")
        resp = await client.delete(f"/api/tasks/{b['id']}/dependencies/{a['id']}")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "DEPENDENCY_NOT_FOUND"


class TestChangeBroadcast:
    """写操作广播"""

    async def test_mutations_broadcast(self, test_app, client: AsyncClient):
        queue = await test_app.state.change_hub.subscribe()

        task = await _create(client, "Watched")
        await client.post(f"/api/tasks/{task['id']}/start")

        created = queue.get_nowait()
        started = queue.get_nowait()
        assert created["type"] == "task_changed"
        assert created["operation"] == "create"
        assert created["task_ids"] == [task["id"]]
        assert started["operation"] == "start"

    async def test_failed_mutation_does_not_broadcast(self, test_app, client: AsyncClient):
        queue = await test_app.state.change_hub.subscribe()

        resp = await client.post("/api/tasks/404/start")

        assert resp.status_code == 404
        assert queue.empty()
