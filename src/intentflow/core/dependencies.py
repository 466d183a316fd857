"""DependencyGraph -- 任务间"阻塞"关系

边 blocking -> blocked 表示 blocked 必须等 blocking 完成后才能开始。
写入时做可达性搜索拒绝任何长度的环。
"""

import structlog

from .errors import (
    CircularDependencyError,
    DependencyNotFoundError,
    TaskNotFoundError,
)
from .models import Dependency, Task, TaskDependencies
from .store import StoreGroup
from .time_utils import utc_now

log = structlog.get_logger()


class DependencyGraph:
    """依赖图业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def add_dependency(self, blocking_task_id: int, blocked_task_id: int) -> Dependency:
        """添加依赖边 blocking -> blocked

        已存在的相同边直接返回，不重复写入。

        Raises:
            TaskNotFoundError: 任一端点不存在
            CircularDependencyError: 自依赖或新边会形成环
        """
        async with self._stores.transaction():
            for task_id in (blocking_task_id, blocked_task_id):
                if await self._stores.task_store.get_task(task_id) is None:
                    raise TaskNotFoundError(task_id)

            if blocking_task_id == blocked_task_id:
                raise CircularDependencyError(
                    f"Task {blocking_task_id} cannot depend on itself",
                    task_id=blocking_task_id,
                )

            dep_store = self._stores.dependency_store
            existing = await dep_store.get_dependency(blocking_task_id, blocked_task_id)
            if existing is not None:
                return existing

            # blocking 已经（传递地）依赖 blocked 时，新边会闭合成环
            if await dep_store.depends_on(blocking_task_id, blocked_task_id):
                raise CircularDependencyError(
                    f"Adding dependency {blocking_task_id} -> {blocked_task_id} "
                    "would create a circular dependency",
                    blocking_task_id=blocking_task_id,
                    blocked_task_id=blocked_task_id,
                )

            dependency = await dep_store.add_dependency(
                blocking_task_id, blocked_task_id, utc_now()
            )

        await log.ainfo(
            "dependency_added",
            blocking_task_id=blocking_task_id,
            blocked_task_id=blocked_task_id,
        )
        return dependency

    async def remove_dependency(self, blocking_task_id: int, blocked_task_id: int) -> None:
        """删除依赖边

        Raises:
            DependencyNotFoundError: 边不存在
        """
        async with self._stores.transaction():
            removed = await self._stores.dependency_store.remove_dependency(
                blocking_task_id, blocked_task_id
            )
            if not removed:
                raise DependencyNotFoundError(blocking_task_id, blocked_task_id)

        await log.ainfo(
            "dependency_removed",
            blocking_task_id=blocking_task_id,
            blocked_task_id=blocked_task_id,
        )

    async def is_blocked(self, task_id: int) -> list[Task] | None:
        """返回尚未完成的直接阻塞任务；未被阻塞时返回 None"""
        async with self._stores.read():
            blockers = await self._stores.dependency_store.get_blocking_tasks(
                task_id, undone_only=True
            )
        return blockers or None

    async def get_task_dependencies(self, task_id: int) -> TaskDependencies:
        """任务的双向依赖关系

        Raises:
            TaskNotFoundError: 任务不存在
        """
        async with self._stores.read():
            if await self._stores.task_store.get_task(task_id) is None:
                raise TaskNotFoundError(task_id)
            dep_store = self._stores.dependency_store
            return TaskDependencies(
                blocking_tasks=await dep_store.get_blocking_tasks(task_id),
                blocked_by_tasks=await dep_store.get_blocked_tasks(task_id),
            )
