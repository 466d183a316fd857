"""依赖路由

GET    /api/tasks/{task_id}/dependencies                     双向依赖
POST   /api/tasks/{task_id}/dependencies                     task_id 依赖 blocking_task_id
DELETE /api/tasks/{task_id}/dependencies/{blocking_task_id}  删除依赖边
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from starlette.responses import Response

from intentflow.core.dependencies import DependencyGraph
from intentflow.core.models import Dependency, TaskDependencies

from ..deps import get_change_hub, get_store_group

router = APIRouter()


class DependencyCreateRequest(BaseModel):
    """新增依赖请求"""

    blocking_task_id: int


@router.get("/api/tasks/{task_id}/dependencies", response_model=TaskDependencies)
async def get_dependencies(task_id: int, store_group=Depends(get_store_group)):
    return await DependencyGraph(store_group).get_task_dependencies(task_id)


@router.post(
    "/api/tasks/{task_id}/dependencies", response_model=Dependency, status_code=201
)
async def add_dependency(
    task_id: int,
    body: DependencyCreateRequest,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    """task_id 在 blocking_task_id 完成前不能开始"""
    dependency = await DependencyGraph(store_group).add_dependency(
        blocking_task_id=body.blocking_task_id, blocked_task_id=task_id
    )
    await change_hub.broadcast("add_dependency", [body.blocking_task_id, task_id])
    return dependency


@router.delete(
    "/api/tasks/{task_id}/dependencies/{blocking_task_id}", status_code=204
)
async def remove_dependency(
    task_id: int,
    blocking_task_id: int,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    await DependencyGraph(store_group).remove_dependency(
        blocking_task_id=blocking_task_id, blocked_task_id=task_id
    )
    await change_hub.broadcast("remove_dependency", [blocking_task_id, task_id])
    return Response(status_code=204)
