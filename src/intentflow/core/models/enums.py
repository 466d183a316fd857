"""枚举定义

包含 TaskStatus 状态机、TaskOwner、优先级等级、推荐结果类型、
事件日志类型以及完成任务后的下一步提示类型。
"""

from enum import IntEnum, StrEnum


class TaskStatus(StrEnum):
    """Task 状态机：todo -> doing -> done"""

    TODO = "todo"
    DOING = "doing"
    DONE = "done"


class TaskOwner(StrEnum):
    """任务所有者，创建时确定，之后不可修改"""

    HUMAN = "human"
    AI = "ai"


class PriorityLevel(IntEnum):
    """命名优先级，数值越小越紧急"""

    CRITICAL = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4

    @classmethod
    def parse(cls, value: "str | int") -> int:
        """解析优先级名称或数值

        Args:
            value: "critical"/"high"/"medium"/"low"（大小写不敏感）或整数

        Returns:
            优先级数值

        Raises:
            ValueError: 无法识别的优先级名称
        """
        if isinstance(value, bool):
            raise ValueError(f"Invalid priority: {value!r}")
        if isinstance(value, int):
            return value
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            return cls[text.upper()].value
        except KeyError:
            raise ValueError(
                f"Invalid priority '{value}': expected critical, high, medium, low or an integer"
            ) from None

    @classmethod
    def label(cls, value: int) -> str:
        """数值转名称，非命名等级原样返回字符串"""
        try:
            return cls(value).name.lower()
        except ValueError:
            return str(value)


class SuggestionType(StrEnum):
    """pick_next 推荐类型"""

    FOCUSED_SUB_TASK = "FOCUSED_SUB_TASK"
    TOP_LEVEL_TASK = "TOP_LEVEL_TASK"
    NONE = "NONE"


class NoneReason(StrEnum):
    """pick_next 无推荐时的原因"""

    NO_TASKS_IN_PROJECT = "NO_TASKS_IN_PROJECT"
    ALL_TASKS_COMPLETED = "ALL_TASKS_COMPLETED"
    NO_AVAILABLE_TODOS = "NO_AVAILABLE_TODOS"


class EventLogType(StrEnum):
    """任务事件日志类型"""

    DECISION = "decision"
    BLOCKER = "blocker"
    MILESTONE = "milestone"
    NOTE = "note"


class NextStepType(StrEnum):
    """完成任务后的下一步提示"""

    PARENT_COMPLETED = "PARENT_COMPLETED"
    SIBLING_TASKS_REMAIN = "SIBLING_TASKS_REMAIN"
    TOP_LEVEL_TASK_COMPLETED = "TOP_LEVEL_TASK_COMPLETED"
    NO_PARENT_CONTEXT = "NO_PARENT_CONTEXT"
    WORKSPACE_IS_CLEAR = "WORKSPACE_IS_CLEAR"
