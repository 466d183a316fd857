"""任务路由

GET    /api/tasks                    任务列表（status / parent_id 筛选，parent_id=null 仅根任务）
POST   /api/tasks                    创建任务
GET    /api/tasks/{task_id}          任务详情 + 最近事件
GET    /api/tasks/{task_id}/context  祖先 / 兄弟 / 子任务 / 依赖
PATCH  /api/tasks/{task_id}          部分更新
DELETE /api/tasks/{task_id}          级联删除
POST   /api/tasks/{task_id}/start    开始并聚焦
POST   /api/tasks/{task_id}/switch   切换焦点
POST   /api/tasks/done               完成当前任务
POST   /api/tasks/spawn-subtask      在当前任务下创建子任务并聚焦

HTTP 调用方视为 human。写操作成功后通过 ChangeHub 广播变更。
"""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from intentflow.core.errors import InvalidInputError
from intentflow.core.models import (
    DeleteTaskResponse,
    DoneTaskResponse,
    SpawnSubtaskResponse,
    SwitchTaskResponse,
    Task,
    TaskContext,
    TaskFilter,
    TaskUpdate,
    TaskWithEvents,
)
from intentflow.core.tasks import TaskManager, parse_status

from ..deps import get_change_hub, get_store_group

router = APIRouter()


class TaskCreateRequest(BaseModel):
    """创建任务请求"""

    name: str
    spec: str | None = None
    parent_id: int | None = None
    priority: str | int | None = Field(
        default=None, description="critical/high/medium/low 或整数"
    )
    complexity: int | None = None


class SpawnSubtaskRequest(BaseModel):
    """创建子任务请求"""

    name: str
    spec: str | None = None


class TaskListResponse(BaseModel):
    """任务列表响应"""

    tasks: list[Task]


def _parse_parent_filter(request: Request) -> TaskFilter:
    """从查询参数构造 TaskFilter，保留 parent_id 的三态语义"""
    fields: dict = {}
    status = request.query_params.get("status")
    if status:
        fields["status"] = parse_status(status)
    if "parent_id" in request.query_params:
        raw = request.query_params["parent_id"]
        if raw.lower() in ("", "null", "none"):
            fields["parent_id"] = None
        elif raw.isdigit():
            fields["parent_id"] = int(raw)
        else:
            raise InvalidInputError(
                f"Invalid parent_id '{raw}': expected a task id or null", parent_id=raw
            )
    return TaskFilter(**fields)


@router.get("/api/tasks", response_model=TaskListResponse)
async def list_tasks(
    request: Request,
    status: str | None = Query(default=None, description="按状态筛选"),
    parent_id: str | None = Query(
        default=None, description="父任务 ID；null 表示仅根任务；不传表示不筛选"
    ),
    store_group=Depends(get_store_group),
):
    """查询任务列表"""
    tasks = await TaskManager(store_group).find_tasks(_parse_parent_filter(request))
    return TaskListResponse(tasks=tasks)


@router.post("/api/tasks", response_model=Task, status_code=201)
async def create_task(
    body: TaskCreateRequest,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    """创建 todo 任务"""
    task = await TaskManager(store_group).add_task(
        name=body.name,
        spec=body.spec,
        parent_id=body.parent_id,
        priority=body.priority,
        complexity=body.complexity,
    )
    await change_hub.broadcast("create", [task.id])
    return task


@router.post("/api/tasks/done", response_model=DoneTaskResponse)
async def done_task(
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    """完成当前焦点任务"""
    result = await TaskManager(store_group).done_task(is_ai_caller=False)
    await change_hub.broadcast(
        "done", [result.completed_task.id, *result.auto_completed_task_ids]
    )
    return result


@router.post("/api/tasks/spawn-subtask", response_model=SpawnSubtaskResponse, status_code=201)
async def spawn_subtask(
    body: SpawnSubtaskRequest,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    """在当前焦点任务下创建子任务并聚焦"""
    result = await TaskManager(store_group).spawn_subtask(name=body.name, spec=body.spec)
    await change_hub.broadcast("spawn_subtask", [result.subtask.id, result.parent_task.id])
    return result


@router.get("/api/tasks/{task_id}", response_model=TaskWithEvents)
async def get_task(task_id: int, store_group=Depends(get_store_group)):
    """任务详情，附带最近事件"""
    return await TaskManager(store_group).get_task_with_events(task_id)


@router.get("/api/tasks/{task_id}/context", response_model=TaskContext)
async def get_task_context(task_id: int, store_group=Depends(get_store_group)):
    """任务在树与依赖图中的上下文"""
    return await TaskManager(store_group).get_task_context(task_id)


@router.patch("/api/tasks/{task_id}", response_model=Task)
async def update_task(
    task_id: int,
    body: TaskUpdate,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    """部分更新；请求体中缺省的字段保持不变，parent_id 显式 null 表示移到根"""
    task = await TaskManager(store_group).update_task(task_id, body)
    await change_hub.broadcast("update", [task_id])
    return task


@router.delete("/api/tasks/{task_id}", response_model=DeleteTaskResponse)
async def delete_task(
    task_id: int,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    """级联删除任务及其子树"""
    result = await TaskManager(store_group).delete_task(task_id)
    await change_hub.broadcast("delete", [task_id])
    return result


@router.post("/api/tasks/{task_id}/start", response_model=TaskWithEvents)
async def start_task(
    task_id: int,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    """开始任务并切换焦点"""
    result = await TaskManager(store_group).start_task(task_id)
    await change_hub.broadcast("start", [task_id])
    return result


@router.post("/api/tasks/{task_id}/switch", response_model=SwitchTaskResponse)
async def switch_task(
    task_id: int,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    """切换焦点到指定任务"""
    result = await TaskManager(store_group).switch_to_task(task_id)
    await change_hub.broadcast("switch", [task_id])
    return result
