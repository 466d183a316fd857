"""引擎异常体系

所有引擎操作失败都以 EngineError 子类抛出，携带稳定的 code 与结构化 details，
由 CLI / MCP / HTTP 适配层统一转换为各自的错误表示。
"""

from typing import Any


class EngineError(Exception):
    """引擎基础异常"""

    code: str = "ENGINE_ERROR"

    def __init__(self, message: str, retryable: bool = False, **details: Any) -> None:
        """
        Args:
            message: 错误描述
            retryable: 调用方是否可以原样重试
            details: 结构化上下文（任务 id、名称等）
        """
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.details = details

    def to_error_response(self) -> dict[str, Any]:
        """序列化为适配层通用的错误结构"""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class NotFoundError(EngineError):
    """引用的实体不存在"""

    code = "NOT_FOUND"


class TaskNotFoundError(NotFoundError):
    """任务不存在"""

    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} not found", task_id=task_id)
        self.task_id = task_id


class DependencyNotFoundError(NotFoundError):
    """依赖边不存在"""

    code = "DEPENDENCY_NOT_FOUND"

    def __init__(self, blocking_task_id: int, blocked_task_id: int) -> None:
        super().__init__(
            f"Dependency {blocking_task_id} -> {blocked_task_id} not found",
            blocking_task_id=blocking_task_id,
            blocked_task_id=blocked_task_id,
        )


class TaskBlockedError(EngineError):
    """任务仍被未完成的依赖阻塞"""

    code = "TASK_BLOCKED"

    def __init__(self, task_id: int, blocking_task_ids: list[int]) -> None:
        ids = ", ".join(f"#{i}" for i in blocking_task_ids)
        super().__init__(
            f"Task {task_id} is blocked by unfinished tasks: {ids}",
            task_id=task_id,
            blocking_task_ids=blocking_task_ids,
        )
        self.task_id = task_id
        self.blocking_task_ids = blocking_task_ids


class UncompletedChildrenError(EngineError):
    """任务存在未完成的子任务，不能完成"""

    code = "UNCOMPLETED_CHILDREN"

    def __init__(self, task_id: int, child_ids: list[int]) -> None:
        ids = ", ".join(f"#{i}" for i in child_ids)
        super().__init__(
            f"Cannot complete task {task_id}: unfinished subtasks {ids}",
            task_id=task_id,
            child_ids=child_ids,
        )
        self.task_id = task_id
        self.child_ids = child_ids


class PermissionDeniedError(EngineError):
    """调用方无权执行该操作（AI 不能完成 human 任务）"""

    code = "PERMISSION_DENIED"

    def __init__(self, task_id: int, task_name: str) -> None:
        super().__init__(
            f"Task {task_id} '{task_name}' is owned by a human; "
            "only a human caller can mark it done",
            task_id=task_id,
            task_name=task_name,
        )
        self.task_id = task_id


class NoCurrentTaskError(EngineError):
    """当前会话没有焦点任务"""

    code = "NO_CURRENT_TASK"

    def __init__(self, message: str = "No current task is set") -> None:
        super().__init__(message)


class CircularDependencyError(EngineError):
    """依赖或父子关系会形成环"""

    code = "CIRCULAR_DEPENDENCY"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, **details)


class DuplicateNamesError(EngineError):
    """计划中出现重复的任务名"""

    code = "DUPLICATE_NAMES"

    def __init__(self, names: list[str]) -> None:
        super().__init__(
            "Duplicate task names in plan: " + ", ".join(f"'{n}'" for n in names),
            names=names,
        )
        self.names = names


class MultipleInProgressError(EngineError):
    """计划会产生多个并列的 doing 任务"""

    code = "MULTIPLE_IN_PROGRESS"

    def __init__(self, names: list[str]) -> None:
        super().__init__(
            "Only one task may be doing at a time, got: "
            + ", ".join(f"'{n}'" for n in names),
            names=names,
        )
        self.names = names


class MissingSpecForDoingError(EngineError):
    """doing 任务缺少 spec"""

    code = "MISSING_SPEC_FOR_DOING"

    def __init__(self, task_name: str) -> None:
        super().__init__(
            f"Task '{task_name}' is set to doing but has no spec; "
            "describe the goal before starting it",
            task_name=task_name,
        )
        self.task_name = task_name


class InvalidInputError(EngineError):
    """输入不合法"""

    code = "INVALID_INPUT"


class StoreBusyError(EngineError):
    """SQLite 写锁被占用，调用方可重试"""

    code = "STORE_BUSY"

    def __init__(self, message: str = "Database is busy, retry the operation") -> None:
        super().__init__(message, retryable=True)


def invalid_input_from(exc) -> InvalidInputError:
    """把 pydantic ValidationError 转换为 InvalidInputError"""
    problems = [
        f"{'.'.join(str(p) for p in error['loc']) or 'input'}: {error['msg']}"
        for error in exc.errors()
    ]
    return InvalidInputError("Invalid input: " + "; ".join(problems), errors=problems)
