"""引擎操作的返回结构"""

from pydantic import BaseModel, Field

from .enums import NextStepType, NoneReason, SuggestionType, TaskStatus
from .task import Task


class WorkspaceStatus(BaseModel):
    """操作完成后的会话焦点状态"""

    current_task_id: int | None = None


class NextStepSuggestion(BaseModel):
    """完成任务后的下一步提示"""

    type: NextStepType
    message: str
    parent_task_id: int | None = None
    parent_task_name: str | None = None
    remaining_siblings_count: int | None = None


class DoneTaskResponse(BaseModel):
    """done_task 返回"""

    completed_task: Task
    auto_completed_task_ids: list[int] = Field(
        default_factory=list, description="因子任务全部完成而被级联完成的祖先"
    )
    workspace_status: WorkspaceStatus
    next_step_suggestion: NextStepSuggestion


class PreviousTaskInfo(BaseModel):
    """切换前的焦点任务"""

    id: int
    status: TaskStatus


class SwitchTaskResponse(BaseModel):
    """switch_to_task 返回"""

    previous_task: PreviousTaskInfo | None = None
    current_task: Task


class SpawnSubtaskResponse(BaseModel):
    """spawn_subtask 返回：新子任务与已暂停的父任务"""

    subtask: Task
    parent_task: Task


class CurrentTaskResponse(BaseModel):
    """当前焦点任务"""

    current_task_id: int | None = None
    task: Task | None = None


class DeleteTaskResponse(BaseModel):
    """delete_task 返回"""

    task_id: int
    cascade_deleted_count: int = Field(description="被级联删除的后代数量")


class PickNextResponse(BaseModel):
    """pick_next 推荐结果"""

    suggestion_type: SuggestionType
    task: Task | None = None
    reason_code: NoneReason | None = None
    message: str | None = None

    @classmethod
    def focused_subtask(cls, task: Task) -> "PickNextResponse":
        return cls(suggestion_type=SuggestionType.FOCUSED_SUB_TASK, task=task)

    @classmethod
    def top_level_task(cls, task: Task) -> "PickNextResponse":
        return cls(suggestion_type=SuggestionType.TOP_LEVEL_TASK, task=task)

    @classmethod
    def none(cls, reason: NoneReason) -> "PickNextResponse":
        messages = {
            NoneReason.NO_TASKS_IN_PROJECT: (
                "No tasks found in this project. Your intent backlog is empty."
            ),
            NoneReason.ALL_TASKS_COMPLETED: (
                "Project complete! All intents have been realized."
            ),
            NoneReason.NO_AVAILABLE_TODOS: (
                "No immediate next task found: every remaining todo is blocked."
            ),
        }
        return cls(
            suggestion_type=SuggestionType.NONE,
            reason_code=reason,
            message=messages[reason],
        )

    def format_as_text(self) -> str:
        """渲染为 CLI 使用的人类可读提示"""
        if self.task is not None:
            head = (
                "Next subtask of your current focus"
                if self.suggestion_type == SuggestionType.FOCUSED_SUB_TASK
                else "Next task"
            )
            lines = [f"{head}: #{self.task.id} {self.task.name}"]
            if self.task.spec:
                lines.append(f"  spec: {self.task.spec}")
            lines.append(f"  start it with: intentflow task start {self.task.id}")
            return "\n".join(lines)

        if self.reason_code == NoneReason.NO_TASKS_IN_PROJECT:
            return f"{self.message}\n  add one with: intentflow task add --name <name>"
        if self.reason_code == NoneReason.NO_AVAILABLE_TODOS:
            return f"{self.message}\n  inspect blockers with: intentflow task list --status todo"
        return self.message or ""
