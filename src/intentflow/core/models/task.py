"""Task 领域模型

tasks 表是一片森林：每个任务通过 parent_id 指向父任务。
paused 状态不落库，由 status == doing 且不是当前焦点推导得出。
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .enums import PriorityLevel, TaskOwner, TaskStatus
from .event import TaskEvent


class Task(BaseModel):
    """Task 数据模型"""

    id: int = Field(description="自增主键，删除后不复用")
    parent_id: int | None = Field(default=None, description="父任务 ID，None 为根任务")
    name: str = Field(description="任务名称（不要求唯一）")
    spec: str | None = Field(default=None, description="任务目标/验收描述")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="当前状态")
    owner: TaskOwner = Field(default=TaskOwner.HUMAN, description="任务所有者")
    complexity: int | None = Field(default=None, description="复杂度估计")
    priority: int = Field(default=int(PriorityLevel.LOW), description="优先级，数值越小越紧急")
    first_todo_at: datetime | None = None
    first_doing_at: datetime | None = None
    first_done_at: datetime | None = None

    def is_paused(self, current_task_id: int | None) -> bool:
        """doing 但不是当前焦点的任务视为暂停"""
        return self.status == TaskStatus.DOING and self.id != current_task_id


class TaskUpdate(BaseModel):
    """任务部分更新

    未出现在请求中的字段保持不变；parent_id 显式传 None 表示移动到根。
    通过 model_fields_set 区分"未提供"与"显式 None"。
    """

    name: str | None = None
    spec: str | None = None
    parent_id: int | None = None
    status: TaskStatus | None = None
    complexity: int | None = None
    priority: int | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, value):
        if value is None:
            return None
        return PriorityLevel.parse(value)

    @property
    def parent_id_provided(self) -> bool:
        return "parent_id" in self.model_fields_set


class TaskFilter(BaseModel):
    """任务列表筛选条件

    parent_id 三态：未提供 -> 不筛选；显式 None -> 仅根任务；整数 -> 该任务的子任务。
    """

    status: TaskStatus | None = None
    parent_id: int | None = None

    @property
    def parent_id_provided(self) -> bool:
        return "parent_id" in self.model_fields_set


class EventsSummary(BaseModel):
    """任务事件摘要"""

    total_count: int = 0
    recent_events: list[TaskEvent] = Field(default_factory=list)


class TaskWithEvents(BaseModel):
    """任务 + 最近事件摘要"""

    task: Task
    events_summary: EventsSummary | None = None


class TaskDependencies(BaseModel):
    """任务的依赖关系"""

    blocking_tasks: list[Task] = Field(
        default_factory=list, description="阻塞本任务的任务"
    )
    blocked_by_tasks: list[Task] = Field(
        default_factory=list, description="被本任务阻塞的任务"
    )


class TaskContext(BaseModel):
    """任务在树与依赖图中的完整上下文"""

    task: Task
    ancestors: list[Task] = Field(default_factory=list, description="由近到远的祖先链")
    siblings: list[Task] = Field(default_factory=list)
    children: list[Task] = Field(default_factory=list)
    dependencies: TaskDependencies = Field(default_factory=TaskDependencies)
