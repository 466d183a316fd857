"""声明式计划模型

PlanRequest 描述期望的任务树；PlanReconciler 将其与当前存储对齐。
TaskTree.parent_id 是三态字段：未提供 / 显式 None（强制为根）/ 整数。
"""

from pydantic import BaseModel, Field, field_validator

from .enums import PriorityLevel, TaskStatus
from .task import TaskWithEvents


class TaskTree(BaseModel):
    """计划中的一个任务节点"""

    name: str | None = Field(default=None, description="任务名称，计划内唯一")
    id: int | None = Field(default=None, description="显式指定已有任务（可用于改名）")
    status: TaskStatus | None = None
    spec: str | None = None
    priority: int | None = Field(
        default=None, description="优先级：critical/high/medium/low 或整数"
    )
    complexity: int | None = None
    parent_id: int | None = Field(
        default=None, description="显式父任务；显式 null 表示根任务"
    )
    children: list["TaskTree"] = Field(default_factory=list)
    depends_on: list[str] = Field(
        default_factory=list, description="同一计划中被依赖任务的名称"
    )
    delete: bool = Field(default=False, description="为 true 时按 id 级联删除")

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, value):
        if value is None:
            return None
        return PriorityLevel.parse(value)

    @field_validator("children", "depends_on", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value

    @property
    def parent_id_provided(self) -> bool:
        return "parent_id" in self.model_fields_set

    def iter_nodes(self):
        """深度优先遍历自身及所有后代"""
        yield self
        for child in self.children:
            yield from child.iter_nodes()


class PlanRequest(BaseModel):
    """计划请求"""

    tasks: list[TaskTree] = Field(default_factory=list)

    def iter_nodes(self):
        for tree in self.tasks:
            yield from tree.iter_nodes()


class PlanResult(BaseModel):
    """计划执行结果"""

    success: bool = True
    task_id_map: dict[str, int] = Field(
        default_factory=dict, description="计划节点名称 -> 任务 ID"
    )
    created_count: int = 0
    updated_count: int = 0
    deleted_count: int = 0
    cascade_deleted_count: int = 0
    dependency_count: int = 0
    focused_task: TaskWithEvents | None = None
    warnings: list[str] = Field(default_factory=list)
