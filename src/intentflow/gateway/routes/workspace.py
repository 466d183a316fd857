"""焦点与推荐路由

GET    /api/current-task  当前焦点任务
PUT    /api/current-task  直接设置焦点（不改变任务状态）
DELETE /api/current-task  清除焦点
GET    /api/pick-next     推荐下一个任务
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from intentflow.core.models import CurrentTaskResponse, PickNextResponse
from intentflow.core.recommender import pick_next
from intentflow.core.workspace import WorkspaceManager

from ..deps import get_change_hub, get_store_group

router = APIRouter()


class SetCurrentTaskRequest(BaseModel):
    task_id: int


@router.get("/api/current-task", response_model=CurrentTaskResponse)
async def get_current_task(store_group=Depends(get_store_group)):
    return await WorkspaceManager(store_group).get_current_task()


@router.put("/api/current-task", response_model=CurrentTaskResponse)
async def set_current_task(
    body: SetCurrentTaskRequest,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    result = await WorkspaceManager(store_group).set_current_task(body.task_id)
    await change_hub.broadcast("set_current", [body.task_id])
    return result


@router.delete("/api/current-task", response_model=CurrentTaskResponse)
async def clear_current_task(
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    await WorkspaceManager(store_group).clear_current_task()
    await change_hub.broadcast("clear_current", [])
    return CurrentTaskResponse()


@router.get("/api/pick-next", response_model=PickNextResponse)
async def get_next_task(store_group=Depends(get_store_group)):
    """推荐下一个要做的任务"""
    return await pick_next(store_group)
