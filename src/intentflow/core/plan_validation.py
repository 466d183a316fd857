"""计划请求的静态校验

在触碰存储之前完成，失败时不会产生任何写入：
1. 计划内任务名不能重复（跨嵌套层级）
2. delete 节点必须带 id 且不能有子节点；其他节点必须有名称或 id
3. depends_on 只能引用计划内的非删除节点，不能引用自身，依赖之间不能成环
4. 最多一个节点显式请求 doing
"""

from collections import Counter

from .errors import (
    CircularDependencyError,
    DuplicateNamesError,
    InvalidInputError,
    MultipleInProgressError,
)
from .models import PlanRequest, TaskStatus, TaskTree


def node_label(node: TaskTree) -> str:
    """错误信息中使用的节点标识"""
    if node.name:
        return node.name
    return f"#{node.id}"


def validate_plan(request: PlanRequest) -> None:
    """执行全部静态校验

    Raises:
        DuplicateNamesError / InvalidInputError / CircularDependencyError /
        MultipleInProgressError
    """
    nodes = list(request.iter_nodes())
    _check_duplicate_names(nodes)
    _check_node_identity(nodes)
    _check_dependency_references(nodes)
    _check_dependency_cycles(nodes)
    _check_single_doing(nodes)


def _check_duplicate_names(nodes: list[TaskTree]) -> None:
    counts = Counter(node.name for node in nodes if node.name)
    duplicates = sorted(name for name, n in counts.items() if n > 1)
    if duplicates:
        raise DuplicateNamesError(duplicates)


def _check_node_identity(nodes: list[TaskTree]) -> None:
    for node in nodes:
        if node.delete:
            if node.id is None:
                raise InvalidInputError(
                    f"Delete node '{node_label(node)}' must specify an id",
                    name=node.name,
                )
            if node.children:
                raise InvalidInputError(
                    f"Delete node #{node.id} cannot have children; "
                    "deleting a task already removes its subtree",
                    task_id=node.id,
                )
            continue
        if node.name is not None and not node.name.strip():
            raise InvalidInputError("Task names in a plan must not be blank")
        if node.name is None and node.id is None:
            raise InvalidInputError("Every plan node needs a name or an id")


def _check_dependency_references(nodes: list[TaskTree]) -> None:
    known = {node.name for node in nodes if node.name and not node.delete}
    for node in nodes:
        for dep_name in node.depends_on:
            if node.delete:
                raise InvalidInputError(
                    f"Delete node #{node.id} cannot declare dependencies",
                    task_id=node.id,
                )
            if dep_name == node.name:
                raise CircularDependencyError(
                    f"Task '{dep_name}' cannot depend on itself", name=dep_name
                )
            if dep_name not in known:
                raise InvalidInputError(
                    f"Task '{node_label(node)}' depends on '{dep_name}', "
                    "which is not part of this plan",
                    name=node.name,
                    depends_on=dep_name,
                )


def _check_dependency_cycles(nodes: list[TaskTree]) -> None:
    """计划内依赖图的环检测（深度优先三色标记）"""
    graph: dict[str, list[str]] = {
        node.name: list(node.depends_on) for node in nodes if node.name and not node.delete
    }
    visiting, done = set(), set()

    for root in graph:
        if root in done:
            continue
        stack: list[tuple[str, int]] = [(root, 0)]
        path: list[str] = []
        visiting.add(root)
        path.append(root)
        while stack:
            name, index = stack[-1]
            targets = graph.get(name, [])
            if index < len(targets):
                stack[-1] = (name, index + 1)
                target = targets[index]
                if target in visiting:
                    cycle = path[path.index(target):] + [target]
                    raise CircularDependencyError(
                        "Circular dependency in plan: " + " -> ".join(cycle),
                        cycle=cycle,
                    )
                if target not in done:
                    visiting.add(target)
                    path.append(target)
                    stack.append((target, 0))
            else:
                stack.pop()
                path.pop()
                visiting.discard(name)
                done.add(name)


def _check_single_doing(nodes: list[TaskTree]) -> None:
    doing = [
        node_label(node)
        for node in nodes
        if not node.delete and node.status == TaskStatus.DOING
    ]
    if len(doing) > 1:
        raise MultipleInProgressError(doing[:2])
