"""下一任务推荐

只读策略：
1. 当前焦点任务存在未被阻塞的 todo 子任务 -> FOCUSED_SUB_TASK
2. 否则全项目范围内未被阻塞的 todo 任务 -> TOP_LEVEL_TASK
3. 没有任何任务 -> NONE / NO_TASKS_IN_PROJECT
4. 没有 todo 任务 -> NONE / ALL_TASKS_COMPLETED
5. todo 任务全部被阻塞 -> NONE / NO_AVAILABLE_TODOS

候选按 priority 升序、id 升序排序，被阻塞的任务直接跳过。
"""

import structlog

from .models import NoneReason, PickNextResponse, TaskStatus
from .store import StoreGroup

log = structlog.get_logger()


async def pick_next(store_group: StoreGroup) -> PickNextResponse:
    """推荐下一个要做的任务"""
    task_store = store_group.task_store

    async with store_group.read():
        current_id = await store_group.workspace_store.get_current_task_id()
        if current_id is not None:
            candidate = await task_store.find_next_todo(parent_id=current_id)
            if candidate is not None:
                return PickNextResponse.focused_subtask(candidate)

        candidate = await task_store.find_next_todo()
        if candidate is not None:
            return PickNextResponse.top_level_task(candidate)

        counts = await task_store.count_by_status()

    if sum(counts.values()) == 0:
        reason = NoneReason.NO_TASKS_IN_PROJECT
    elif counts[TaskStatus.TODO] == 0:
        reason = NoneReason.ALL_TASKS_COMPLETED
    else:
        reason = NoneReason.NO_AVAILABLE_TODOS

    log.debug("pick_next_none", reason=reason.value, counts=counts)
    return PickNextResponse.none(reason)
