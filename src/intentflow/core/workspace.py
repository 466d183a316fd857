"""WorkspaceManager -- 会话焦点槽位"""

import structlog

from .errors import TaskNotFoundError
from .models import CurrentTaskResponse
from .store import StoreGroup

log = structlog.get_logger()


class WorkspaceManager:
    """当前会话的 current_task_id 读写"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def get_current_task(self) -> CurrentTaskResponse:
        async with self._stores.read():
            current_id = await self._stores.workspace_store.get_current_task_id()
            if current_id is None:
                return CurrentTaskResponse()
            task = await self._stores.task_store.get_task(current_id)
        return CurrentTaskResponse(current_task_id=current_id, task=task)

    async def set_current_task(self, task_id: int) -> CurrentTaskResponse:
        """直接设置焦点，不改变任务状态

        Raises:
            TaskNotFoundError: 任务不存在
        """
        async with self._stores.transaction():
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            await self._stores.workspace_store.set_current_task_id(task_id)

        await log.ainfo(
            "current_task_set", task_id=task_id, session_id=self._stores.session_id
        )
        return CurrentTaskResponse(current_task_id=task_id, task=task)

    async def clear_current_task(self) -> None:
        async with self._stores.transaction():
            await self._stores.workspace_store.clear_current_task_id()
        await log.ainfo("current_task_cleared", session_id=self._stores.session_id)
