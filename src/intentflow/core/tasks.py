"""TaskManager -- 任务 CRUD、状态机与级联

状态流转：todo -> doing -> done。
- start：todo 任务检查依赖阻塞后进入 doing，设置焦点，并把 todo 祖先级联为 doing
- done：只作用于当前焦点任务，要求子任务全部完成，完成后向上级联
- 焦点切换不改变原焦点任务状态，doing 且非焦点即视为暂停（读时推导）

所有写操作在单个事务内完成；被 PlanReconciler 调用时加入外层事务。
"""

from typing import Any

import structlog

from .config import EVENTS_SUMMARY_LIMIT
from .dependencies import DependencyGraph
from .errors import (
    CircularDependencyError,
    InvalidInputError,
    NoCurrentTaskError,
    PermissionDeniedError,
    TaskBlockedError,
    TaskNotFoundError,
    UncompletedChildrenError,
)
from .models import (
    CurrentTaskResponse,
    DeleteTaskResponse,
    DoneTaskResponse,
    EventsSummary,
    NextStepSuggestion,
    NextStepType,
    PreviousTaskInfo,
    PriorityLevel,
    SpawnSubtaskResponse,
    SwitchTaskResponse,
    Task,
    TaskContext,
    TaskFilter,
    TaskOwner,
    TaskStatus,
    TaskUpdate,
    TaskWithEvents,
    WorkspaceStatus,
)
from .store import StoreGroup
from .time_utils import utc_now
from .workspace import WorkspaceManager

log = structlog.get_logger()


def parse_priority(value: str | int | None) -> int | None:
    """解析优先级输入，失败时抛出 InvalidInputError"""
    if value is None:
        return None
    try:
        return PriorityLevel.parse(value)
    except ValueError as exc:
        raise InvalidInputError(str(exc), priority=value) from exc


def parse_status(value: str | TaskStatus | None) -> TaskStatus | None:
    """解析状态字符串，失败时抛出 InvalidInputError"""
    if value is None or isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(value.strip().lower())
    except ValueError:
        raise InvalidInputError(
            f"Invalid status '{value}': expected todo, doing or done",
            status=value,
        ) from None


class TaskManager:
    """任务业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._deps = DependencyGraph(store_group)
        self._workspace = WorkspaceManager(store_group)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def get_task(self, task_id: int) -> Task:
        """查询任务

        Raises:
            TaskNotFoundError: 任务不存在
        """
        async with self._stores.read():
            return await self._require_task(task_id)

    async def get_task_with_events(self, task_id: int) -> TaskWithEvents:
        """任务 + 最近事件摘要"""
        async with self._stores.read():
            task = await self._require_task(task_id)
            return await self._attach_events(task)

    async def get_task_context(self, task_id: int) -> TaskContext:
        """任务的祖先、兄弟、子任务与依赖关系"""
        async with self._stores.read():
            task = await self._require_task(task_id)
            task_store = self._stores.task_store
            return TaskContext(
                task=task,
                ancestors=await task_store.get_ancestors(task_id),
                siblings=await task_store.get_siblings(task),
                children=await task_store.get_children(task_id),
                dependencies=await self._deps.get_task_dependencies(task_id),
            )

    async def find_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """按状态 / 父任务筛选

        parent_id 三态：未提供不筛选，显式 None 仅根任务，整数为该任务的子任务。
        """
        task_filter = task_filter or TaskFilter()
        async with self._stores.read():
            return await self._stores.task_store.find_tasks(
                status=task_filter.status.value if task_filter.status else None,
                parent_id=task_filter.parent_id,
                filter_parent=task_filter.parent_id_provided,
            )

    async def get_current_task(self) -> CurrentTaskResponse:
        return await self._workspace.get_current_task()

    # ------------------------------------------------------------------
    # 创建 / 更新 / 删除
    # ------------------------------------------------------------------

    async def add_task(
        self,
        name: str,
        spec: str | None = None,
        parent_id: int | None = None,
        owner: TaskOwner = TaskOwner.HUMAN,
        priority: str | int | None = None,
        complexity: int | None = None,
    ) -> Task:
        """创建 todo 任务

        Raises:
            InvalidInputError: 名称为空、优先级非法或父任务已完成
            TaskNotFoundError: 父任务不存在
        """
        if not name or not name.strip():
            raise InvalidInputError("Task name must not be empty")
        priority_value = parse_priority(priority)
        if priority_value is None:
            priority_value = int(PriorityLevel.LOW)

        async with self._stores.transaction():
            if parent_id is not None:
                parent = await self._require_task(parent_id)
                if parent.status == TaskStatus.DONE:
                    raise InvalidInputError(
                        f"Cannot add a subtask under completed task {parent_id}",
                        parent_id=parent_id,
                    )
            task_id = await self._stores.task_store.insert_task(
                name=name.strip(),
                spec=spec,
                parent_id=parent_id,
                owner=TaskOwner(owner),
                priority=priority_value,
                complexity=complexity,
                created_at=utc_now(),
            )
            task = await self._require_task(task_id)

        await log.ainfo(
            "task_created",
            task_id=task.id,
            parent_id=parent_id,
            owner=task.owner.value,
        )
        return task

    async def update_task(self, task_id: int, update: TaskUpdate) -> Task:
        """部分更新任务字段

        直接写入 status 不触发级联，仅用于人工纠正；first_<status>_at 仍只记录首次。

        Raises:
            TaskNotFoundError: 任务或新父任务不存在
            CircularDependencyError: 新父任务是自身或自身后代
            InvalidInputError: 名称为空或会把未完成任务挂到已完成任务下
        """
        provided = update.model_fields_set
        fields: dict[str, Any] = {}

        async with self._stores.transaction():
            task = await self._require_task(task_id)
            task_store = self._stores.task_store

            if "name" in provided and update.name is not None:
                if not update.name.strip():
                    raise InvalidInputError("Task name must not be empty", task_id=task_id)
                fields["name"] = update.name.strip()
            if "spec" in provided:
                fields["spec"] = update.spec
            if "complexity" in provided:
                fields["complexity"] = update.complexity
            if "priority" in provided and update.priority is not None:
                fields["priority"] = update.priority

            new_status = update.status if "status" in provided else None
            effective_status = new_status or task.status

            if update.parent_id_provided:
                if update.parent_id is not None:
                    await self._check_reparent(task, update.parent_id, effective_status)
                fields["parent_id"] = update.parent_id

            await task_store.update_fields(task_id, fields)

            if new_status is not None and new_status != task.status:
                await task_store.update_status(task_id, new_status, utc_now())
                if new_status == TaskStatus.DONE:
                    await self._stores.workspace_store.clear_for_tasks([task_id])

            updated = await self._require_task(task_id)

        await log.ainfo(
            "task_updated",
            task_id=task_id,
            fields=sorted(fields),
            status=new_status.value if new_status else None,
        )
        return updated

    async def delete_task(self, task_id: int) -> DeleteTaskResponse:
        """级联删除任务及其全部后代，同时清理依赖边、事件与焦点槽位

        Returns:
            DeleteTaskResponse，cascade_deleted_count 为被删除的后代数量
        """
        async with self._stores.transaction():
            await self._require_task(task_id)
            task_store = self._stores.task_store
            descendant_ids = await task_store.get_descendant_ids(task_id)
            await self._stores.workspace_store.clear_for_tasks([task_id, *descendant_ids])
            await task_store.delete_task(task_id)

        await log.ainfo(
            "task_deleted",
            task_id=task_id,
            cascade_deleted_count=len(descendant_ids),
        )
        return DeleteTaskResponse(
            task_id=task_id, cascade_deleted_count=len(descendant_ids)
        )

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    async def start_task(self, task_id: int) -> TaskWithEvents:
        """开始任务并切换焦点

        Raises:
            TaskNotFoundError: 任务不存在
            TaskBlockedError: 存在未完成的阻塞任务
            InvalidInputError: 任务已完成
        """
        async with self._stores.transaction():
            task = await self._require_task(task_id)
            now = utc_now()

            if task.status == TaskStatus.DONE:
                raise InvalidInputError(
                    f"Task {task_id} is already done and cannot be started again",
                    task_id=task_id,
                )
            if task.status == TaskStatus.TODO:
                blockers = await self._stores.dependency_store.get_blocking_tasks(
                    task_id, undone_only=True
                )
                if blockers:
                    raise TaskBlockedError(task_id, [b.id for b in blockers])
                await self._stores.task_store.update_status(task_id, TaskStatus.DOING, now)

            await self._stores.workspace_store.set_current_task_id(task_id)
            cascaded = await self._cascade_start_upward(task_id, now)
            result = await self._attach_events(await self._require_task(task_id))

        await log.ainfo(
            "task_started",
            task_id=task_id,
            cascaded_task_ids=cascaded,
            session_id=self._stores.session_id,
        )
        return result

    async def done_task(self, is_ai_caller: bool = False) -> DoneTaskResponse:
        """完成当前焦点任务

        Args:
            is_ai_caller: 调用方是否为 AI（AI 不能完成 human 拥有的任务）

        Raises:
            NoCurrentTaskError: 当前没有焦点任务
            InvalidInputError: 焦点任务不处于 doing
            UncompletedChildrenError: 存在未完成的直接子任务
            PermissionDeniedError: AI 调用方试图完成 human 任务
        """
        async with self._stores.transaction():
            current_id = await self._stores.workspace_store.get_current_task_id()
            if current_id is None:
                raise NoCurrentTaskError(
                    "No current task to complete; start or switch to a task first"
                )
            task = await self._stores.task_store.get_task(current_id)
            if task is None:
                # 悬空焦点：清除随事务提交，提交后再报错
                await self._stores.workspace_store.clear_current_task_id()
            else:
                if task.status != TaskStatus.DOING:
                    raise InvalidInputError(
                        f"Task {task.id} is '{task.status.value}', "
                        "only a doing task can be completed",
                        task_id=task.id,
                        status=task.status.value,
                    )

                auto_completed = await self._complete(task, is_ai_caller)
                completed = await self._require_task(task.id)
                suggestion = await self._next_step_suggestion(completed, auto_completed)
                current_after = await self._stores.workspace_store.get_current_task_id()

        if task is None:
            await log.awarning("stale_focus_cleared", task_id=current_id)
            raise NoCurrentTaskError(f"Current task {current_id} no longer exists")

        await log.ainfo(
            "task_completed",
            task_id=task.id,
            auto_completed_task_ids=auto_completed,
            is_ai_caller=is_ai_caller,
        )
        return DoneTaskResponse(
            completed_task=completed,
            auto_completed_task_ids=auto_completed,
            workspace_status=WorkspaceStatus(current_task_id=current_after),
            next_step_suggestion=suggestion,
        )

    async def complete_task(self, task_id: int, is_ai_caller: bool = False) -> list[int]:
        """按 id 完成任务（不要求是焦点或处于 doing），已完成时不做任何事

        供计划执行使用，子任务检查、所有权检查与向上级联与 done_task 一致。

        Returns:
            本次被置为 done 的任务 ID（含级联完成的祖先）
        """
        async with self._stores.transaction():
            task = await self._require_task(task_id)
            if task.status == TaskStatus.DONE:
                return []
            auto_completed = await self._complete(task, is_ai_caller)

        await log.ainfo(
            "task_completed",
            task_id=task_id,
            auto_completed_task_ids=auto_completed,
            is_ai_caller=is_ai_caller,
        )
        return [task_id, *auto_completed]

    async def spawn_subtask(
        self,
        name: str,
        spec: str | None = None,
        owner: TaskOwner = TaskOwner.HUMAN,
    ) -> SpawnSubtaskResponse:
        """在当前焦点任务下创建子任务并立即切换焦点到它

        Raises:
            NoCurrentTaskError: 当前没有焦点任务
        """
        async with self._stores.transaction():
            parent_id = await self._stores.workspace_store.get_current_task_id()
            if parent_id is None:
                raise NoCurrentTaskError(
                    "No current task to spawn a subtask under; start a task first"
                )
            subtask = await self.add_task(
                name=name, spec=spec, parent_id=parent_id, owner=owner
            )
            started = await self.start_task(subtask.id)
            parent = await self._require_task(parent_id)

        await log.ainfo("subtask_spawned", task_id=subtask.id, parent_id=parent_id)
        return SpawnSubtaskResponse(subtask=started.task, parent_task=parent)

    async def switch_to_task(self, task_id: int) -> SwitchTaskResponse:
        """切换焦点

        todo 任务按 start 处理（阻塞检查 + 祖先级联）；doing 任务只重新分配焦点；
        done 任务不能切换。

        Raises:
            TaskNotFoundError: 任务不存在
            InvalidInputError: 任务已完成
            TaskBlockedError: todo 任务被阻塞
        """
        async with self._stores.transaction():
            previous_id = await self._stores.workspace_store.get_current_task_id()
            previous = (
                await self._stores.task_store.get_task(previous_id)
                if previous_id is not None
                else None
            )
            task = await self._require_task(task_id)

            if task.status == TaskStatus.DONE:
                raise InvalidInputError(
                    f"Task {task_id} is already done; switch to an unfinished task",
                    task_id=task_id,
                )
            if task.status == TaskStatus.TODO:
                await self.start_task(task_id)
            else:
                await self._stores.workspace_store.set_current_task_id(task_id)
            current = await self._require_task(task_id)

        await log.ainfo(
            "task_switched",
            previous_task_id=previous_id,
            task_id=task_id,
            session_id=self._stores.session_id,
        )
        return SwitchTaskResponse(
            previous_task=(
                PreviousTaskInfo(id=previous.id, status=previous.status)
                if previous is not None
                else None
            ),
            current_task=current,
        )

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------

    async def _require_task(self, task_id: int) -> Task:
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def _attach_events(self, task: Task) -> TaskWithEvents:
        event_store = self._stores.event_store
        return TaskWithEvents(
            task=task,
            events_summary=EventsSummary(
                total_count=await event_store.count_events(task_id=task.id),
                recent_events=await event_store.list_events(
                    task_id=task.id, limit=EVENTS_SUMMARY_LIMIT
                ),
            ),
        )

    async def _check_reparent(
        self, task: Task, parent_id: int, effective_status: TaskStatus
    ) -> None:
        """校验把 task 移到 parent_id 之下是否合法"""
        if parent_id == task.id:
            raise CircularDependencyError(
                f"Task {task.id} cannot be its own parent", task_id=task.id
            )
        parent = await self._require_task(parent_id)
        descendants = await self._stores.task_store.get_descendant_ids(task.id)
        if parent_id in descendants:
            raise CircularDependencyError(
                f"Cannot move task {task.id} under its own descendant {parent_id}",
                task_id=task.id,
                parent_id=parent_id,
            )
        if parent.status == TaskStatus.DONE and effective_status != TaskStatus.DONE:
            raise InvalidInputError(
                f"Cannot move unfinished task {task.id} under completed task {parent_id}",
                task_id=task.id,
                parent_id=parent_id,
            )

    async def _cascade_start_upward(self, task_id: int, now) -> list[int]:
        """todo 祖先依次置为 doing，遇到第一个 doing/done 祖先即停止"""
        cascaded: list[int] = []
        for ancestor in await self._stores.task_store.get_ancestors(task_id):
            if ancestor.status != TaskStatus.TODO:
                break
            await self._stores.task_store.update_status(ancestor.id, TaskStatus.DOING, now)
            cascaded.append(ancestor.id)
        return cascaded

    async def _complete(self, task: Task, is_ai_caller: bool) -> list[int]:
        """置 done 并向上级联，返回被级联完成的祖先 ID"""
        task_store = self._stores.task_store

        incomplete = await task_store.get_incomplete_child_ids(task.id)
        if incomplete:
            raise UncompletedChildrenError(task.id, incomplete)
        if task.owner == TaskOwner.HUMAN and is_ai_caller:
            raise PermissionDeniedError(task.id, task.name)

        now = utc_now()
        await task_store.update_status(task.id, TaskStatus.DONE, now)

        auto_completed: list[int] = []
        parent_id = task.parent_id
        while parent_id is not None:
            if await task_store.get_incomplete_child_ids(parent_id):
                break
            parent = await self._require_task(parent_id)
            if parent.status == TaskStatus.DONE:
                break
            await task_store.update_status(parent.id, TaskStatus.DONE, now)
            auto_completed.append(parent.id)
            parent_id = parent.parent_id

        await self._stores.workspace_store.clear_for_tasks([task.id, *auto_completed])
        return auto_completed

    async def _next_step_suggestion(
        self, completed: Task, auto_completed: list[int]
    ) -> NextStepSuggestion:
        task_store = self._stores.task_store

        if completed.parent_id is not None:
            parent = await self._require_task(completed.parent_id)
            if auto_completed:
                return NextStepSuggestion(
                    type=NextStepType.PARENT_COMPLETED,
                    message=(
                        f"All subtasks of '{parent.name}' are done; "
                        "it was completed automatically."
                    ),
                    parent_task_id=parent.id,
                    parent_task_name=parent.name,
                )
            remaining = await task_store.get_incomplete_child_ids(parent.id)
            return NextStepSuggestion(
                type=NextStepType.SIBLING_TASKS_REMAIN,
                message=(
                    f"'{parent.name}' still has {len(remaining)} unfinished subtask(s); "
                    "pick the next one."
                ),
                parent_task_id=parent.id,
                parent_task_name=parent.name,
                remaining_siblings_count=len(remaining),
            )

        counts = await task_store.count_by_status()
        if counts[TaskStatus.TODO] == 0 and counts[TaskStatus.DOING] == 0:
            return NextStepSuggestion(
                type=NextStepType.WORKSPACE_IS_CLEAR,
                message="All tasks are done. The workspace is clear.",
            )
        if await task_store.get_children(completed.id):
            return NextStepSuggestion(
                type=NextStepType.TOP_LEVEL_TASK_COMPLETED,
                message=f"Top-level task '{completed.name}' and all its subtasks are done.",
            )
        return NextStepSuggestion(
            type=NextStepType.NO_PARENT_CONTEXT,
            message=f"Task '{completed.name}' is done. Pick the next task to work on.",
        )
