"""intentflow Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .dependency import Dependency
from .enums import (
    EventLogType,
    NextStepType,
    NoneReason,
    PriorityLevel,
    SuggestionType,
    TaskOwner,
    TaskStatus,
)
from .event import TaskEvent
from .plan import PlanRequest, PlanResult, TaskTree
from .report import DateRange, ReportResponse, ReportSummary
from .responses import (
    CurrentTaskResponse,
    DeleteTaskResponse,
    DoneTaskResponse,
    NextStepSuggestion,
    PickNextResponse,
    PreviousTaskInfo,
    SpawnSubtaskResponse,
    SwitchTaskResponse,
    WorkspaceStatus,
)
from .task import (
    EventsSummary,
    Task,
    TaskContext,
    TaskDependencies,
    TaskFilter,
    TaskUpdate,
    TaskWithEvents,
)

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskOwner",
    "PriorityLevel",
    "SuggestionType",
    "NoneReason",
    "EventLogType",
    "NextStepType",
    # 任务
    "Task",
    "TaskUpdate",
    "TaskFilter",
    "TaskContext",
    "TaskDependencies",
    "TaskWithEvents",
    "EventsSummary",
    # 依赖 / 事件
    "Dependency",
    "TaskEvent",
    # 操作返回
    "DoneTaskResponse",
    "NextStepSuggestion",
    "WorkspaceStatus",
    "SwitchTaskResponse",
    "PreviousTaskInfo",
    "SpawnSubtaskResponse",
    "CurrentTaskResponse",
    "DeleteTaskResponse",
    "PickNextResponse",
    # 计划
    "PlanRequest",
    "PlanResult",
    "TaskTree",
    # 报告
    "ReportResponse",
    "ReportSummary",
    "DateRange",
]
