"""PlanReconciler -- 声明式任务树对齐

把一棵期望的任务树应用到存储，整个过程在单个事务内完成，任一步失败全部回滚：
1. 静态校验（重名、节点标识、依赖引用与环、多个 doing）
2. 删除节点：按 id 级联删除，不存在的 id 记为警告，保证重复应用幂等
3. 深度优先创建 / 更新：显式 id -> 同名已有任务（最新创建者）-> 新建
4. doing 节点必须有 spec
5. 按名称解析 depends_on 并写入依赖边
6. 应用状态：done 节点后序完成，todo 节点直接写入，doing 节点走 start（聚焦）
7. 最终检查只剩一条 doing 链
"""

from dataclasses import dataclass, field

import structlog

from .dependencies import DependencyGraph
from .errors import (
    InvalidInputError,
    MissingSpecForDoingError,
    MultipleInProgressError,
    TaskNotFoundError,
)
from .models import (
    PlanRequest,
    PlanResult,
    Task,
    TaskOwner,
    TaskStatus,
    TaskTree,
    TaskUpdate,
)
from .plan_validation import node_label, validate_plan
from .store import StoreGroup
from .tasks import TaskManager

log = structlog.get_logger()


@dataclass
class _AppliedNode:
    """已落库的计划节点"""

    node: TaskTree
    task_id: int
    children: list["_AppliedNode"] = field(default_factory=list)


class PlanReconciler:
    """计划执行器"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._tasks = TaskManager(store_group)
        self._deps = DependencyGraph(store_group)

    async def execute(self, request: PlanRequest, is_ai_caller: bool = False) -> PlanResult:
        """应用计划

        Args:
            request: 期望的任务树
            is_ai_caller: 调用方是否为 AI；决定新建任务的 owner 与完成时的所有权检查

        Returns:
            PlanResult：各类计数、名称到 id 的映射、警告与当前焦点任务

        Raises:
            EngineError 的各个子类；抛出时存储保持调用前的状态
        """
        validate_plan(request)
        result = PlanResult()
        owner = TaskOwner.AI if is_ai_caller else TaskOwner.HUMAN

        async with self._stores.transaction():
            await self._apply_deletes(request, result)

            focus_id = await self._stores.workspace_store.get_current_task_id()
            roots: list[_AppliedNode] = []
            for tree in request.tasks:
                if tree.delete:
                    continue
                roots.append(
                    await self._apply_node(tree, None, focus_id, owner, result)
                )

            flat = [applied for root in roots for applied in _preorder(root)]
            await self._apply_dependencies(flat, result)
            await self._apply_statuses(roots, flat, is_ai_caller)
            await self._check_single_doing(flat)

            current_id = await self._stores.workspace_store.get_current_task_id()
            if current_id is not None:
                result.focused_task = await self._tasks.get_task_with_events(current_id)

        await log.ainfo(
            "plan_applied",
            created_count=result.created_count,
            updated_count=result.updated_count,
            deleted_count=result.deleted_count,
            cascade_deleted_count=result.cascade_deleted_count,
            dependency_count=result.dependency_count,
            warnings=len(result.warnings),
            is_ai_caller=is_ai_caller,
        )
        return result

    async def _apply_deletes(self, request: PlanRequest, result: PlanResult) -> None:
        for node in request.iter_nodes():
            if not node.delete:
                continue
            if await self._stores.task_store.get_task(node.id) is None:
                result.warnings.append(f"Task #{node.id} not found; delete skipped")
                continue
            deleted = await self._tasks.delete_task(node.id)
            result.deleted_count += 1
            result.cascade_deleted_count += deleted.cascade_deleted_count

    async def _apply_node(
        self,
        node: TaskTree,
        enclosing_id: int | None,
        focus_id: int | None,
        owner: TaskOwner,
        result: PlanResult,
    ) -> _AppliedNode:
        existing = await self._match_existing(node)

        # 父任务：外层节点 > 显式 parent_id（null 为根）> 新建时取当前焦点
        set_parent = True
        if enclosing_id is not None:
            parent_id = enclosing_id
        elif node.parent_id_provided:
            parent_id = node.parent_id
        elif existing is None:
            parent_id = focus_id
        else:
            parent_id = None
            set_parent = False

        if node.status == TaskStatus.DOING:
            spec = node.spec if node.spec is not None else (existing.spec if existing else None)
            if not spec or not spec.strip():
                raise MissingSpecForDoingError(node_label(node))

        if existing is None:
            task = await self._tasks.add_task(
                name=node.name,
                spec=node.spec,
                parent_id=parent_id,
                owner=owner,
                priority=node.priority,
                complexity=node.complexity,
            )
            task_id = task.id
            result.created_count += 1
            if not node.spec:
                result.warnings.append(f"Task '{node.name}' was created without a spec")
        else:
            task_id = existing.id
            await self._tasks.update_task(
                task_id, self._build_update(node, existing, parent_id, set_parent)
            )
            result.updated_count += 1

        if node.name:
            result.task_id_map[node.name] = task_id

        applied = _AppliedNode(node=node, task_id=task_id)
        for child in node.children:
            if child.delete:
                continue
            applied.children.append(
                await self._apply_node(child, task_id, focus_id, owner, result)
            )
        return applied

    async def _match_existing(self, node: TaskTree) -> Task | None:
        if node.id is not None:
            task = await self._stores.task_store.get_task(node.id)
            if task is None:
                raise TaskNotFoundError(node.id)
            return task
        return await self._stores.task_store.find_latest_by_name(node.name)

    @staticmethod
    def _build_update(
        node: TaskTree, existing: Task, parent_id: int | None, set_parent: bool
    ) -> TaskUpdate:
        """只包含节点提供的字段；status 由后续阶段统一处理"""
        fields: dict = {}
        if node.name and node.name != existing.name:
            fields["name"] = node.name
        if node.spec is not None:
            fields["spec"] = node.spec
        if node.priority is not None:
            fields["priority"] = node.priority
        if node.complexity is not None:
            fields["complexity"] = node.complexity
        if set_parent and parent_id != existing.parent_id:
            fields["parent_id"] = parent_id
        return TaskUpdate(**fields)

    async def _apply_dependencies(self, flat: list[_AppliedNode], result: PlanResult) -> None:
        dep_store = self._stores.dependency_store
        for applied in flat:
            for dep_name in applied.node.depends_on:
                blocking_id = result.task_id_map[dep_name]
                existed = await dep_store.get_dependency(blocking_id, applied.task_id)
                await self._deps.add_dependency(blocking_id, applied.task_id)
                if existed is None:
                    result.dependency_count += 1

    async def _apply_statuses(
        self,
        roots: list[_AppliedNode],
        flat: list[_AppliedNode],
        is_ai_caller: bool,
    ) -> None:
        # done：后序，子任务先于父任务完成
        for root in roots:
            for applied in _postorder(root):
                if applied.node.status == TaskStatus.DONE:
                    await self._tasks.complete_task(applied.task_id, is_ai_caller)

        for applied in flat:
            if applied.node.status != TaskStatus.TODO:
                continue
            task = await self._tasks.get_task(applied.task_id)
            if task.status == TaskStatus.DONE:
                raise InvalidInputError(
                    f"Task '{node_label(applied.node)}' is already done and cannot be reopened by a plan",
                    task_id=task.id,
                )
            if task.status == TaskStatus.DOING:
                await self._tasks.update_task(task.id, TaskUpdate(status=TaskStatus.TODO))
                await self._stores.workspace_store.clear_for_tasks([task.id])

        for applied in flat:
            if applied.node.status == TaskStatus.DOING:
                await self._tasks.start_task(applied.task_id)

    async def _check_single_doing(self, flat: list[_AppliedNode]) -> None:
        """计划节点中的 doing 任务必须落在同一条祖先链上"""
        task_store = self._stores.task_store
        doing: list[_AppliedNode] = []
        for applied in flat:
            task = await task_store.get_task(applied.task_id)
            if task is not None and task.status == TaskStatus.DOING:
                doing.append(applied)
        if len(doing) < 2:
            return

        ancestor_ids: set[int] = set()
        for applied in doing:
            ancestor_ids.update(a.id for a in await task_store.get_ancestors(applied.task_id))
        leaves = [applied for applied in doing if applied.task_id not in ancestor_ids]
        if len(leaves) > 1:
            raise MultipleInProgressError([node_label(a.node) for a in leaves[:2]])


def _preorder(applied: _AppliedNode):
    yield applied
    for child in applied.children:
        yield from _preorder(child)


def _postorder(applied: _AppliedNode):
    for child in applied.children:
        yield from _postorder(child)
    yield applied
