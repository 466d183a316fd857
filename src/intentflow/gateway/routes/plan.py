"""计划路由

POST /api/plan: 原子地应用一棵声明式任务树。
"""

from fastapi import APIRouter, Depends

from intentflow.core.models import PlanRequest, PlanResult
from intentflow.core.plan import PlanReconciler

from ..deps import get_change_hub, get_store_group

router = APIRouter()


@router.post("/api/plan", response_model=PlanResult)
async def apply_plan(
    body: PlanRequest,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    result = await PlanReconciler(store_group).execute(body, is_ai_caller=False)
    await change_hub.broadcast("plan", sorted(set(result.task_id_map.values())))
    return result
