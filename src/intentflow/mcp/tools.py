"""MCP 工具定义

每个工具由参数模型（pydantic，同时生成 inputSchema）和处理函数组成。
MCP 调用方视为 AI：新建任务 owner 为 ai，不能完成 human 任务。
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from intentflow.core.config import DEFAULT_EVENT_LIST_LIMIT
from intentflow.core.dependencies import DependencyGraph
from intentflow.core.events import EventManager
from intentflow.core.models import PlanRequest, TaskFilter, TaskOwner, TaskUpdate
from intentflow.core.plan import PlanReconciler
from intentflow.core.recommender import pick_next
from intentflow.core.report import generate_report
from intentflow.core.store import StoreGroup
from intentflow.core.tasks import TaskManager, parse_status
from intentflow.core.workspace import WorkspaceManager


class ToolArgs(BaseModel):
    """工具参数基类：拒绝未知字段"""

    model_config = ConfigDict(extra="forbid")


class EmptyArgs(ToolArgs):
    pass


class TaskIdArgs(ToolArgs):
    task_id: int = Field(description="Task id")


class TaskGetArgs(TaskIdArgs):
    with_events: bool = Field(default=False, description="Include recent events")


class TaskAddArgs(ToolArgs):
    name: str = Field(description="Task name")
    spec: str | None = Field(default=None, description="Goal and acceptance criteria")
    parent_id: int | None = Field(default=None, description="Parent task id")
    priority: str | int | None = Field(
        default=None, description="critical, high, medium, low or an integer"
    )
    complexity: int | None = None


class TaskUpdateArgs(ToolArgs):
    task_id: int
    name: str | None = None
    spec: str | None = None
    parent_id: int | None = Field(
        default=None, description="New parent id; explicit null makes it a root task"
    )
    status: str | None = Field(default=None, description="todo, doing or done")
    complexity: int | None = None
    priority: str | int | None = None


class TaskListArgs(ToolArgs):
    status: str | None = Field(default=None, description="todo, doing or done")
    parent_id: int | None = Field(
        default=None,
        description="Omit for no filter, null for root tasks only, an id for its children",
    )


class TaskSpawnArgs(ToolArgs):
    name: str
    spec: str | None = None


class DependencyArgs(ToolArgs):
    blocked_task_id: int = Field(description="Task that has to wait")
    blocking_task_id: int = Field(description="Task that must be done first")


class EventAddArgs(ToolArgs):
    type: str = Field(description="decision, blocker, milestone or note")
    data: str = Field(description="Event text")
    task_id: int | None = Field(default=None, description="Defaults to the current task")


class EventListArgs(ToolArgs):
    task_id: int | None = None
    type: str | None = None
    since: str | None = Field(default=None, description="Duration such as 7d, 24h, 30m")
    limit: int = DEFAULT_EVENT_LIST_LIMIT


class ReportArgs(ToolArgs):
    since: str | None = None
    status: str | None = None
    summary_only: bool = True


ToolHandler = Callable[[StoreGroup, Any], Awaitable[Any]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler

    def definition(self) -> dict[str, Any]:
        """tools/list 中的工具描述"""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.args_model.model_json_schema(),
        }


async def _task_add(stores: StoreGroup, args: TaskAddArgs) -> Any:
    return await TaskManager(stores).add_task(
        name=args.name,
        spec=args.spec,
        parent_id=args.parent_id,
        owner=TaskOwner.AI,
        priority=args.priority,
        complexity=args.complexity,
    )


async def _task_get(stores: StoreGroup, args: TaskGetArgs) -> Any:
    manager = TaskManager(stores)
    if args.with_events:
        return await manager.get_task_with_events(args.task_id)
    return await manager.get_task(args.task_id)


async def _task_context(stores: StoreGroup, args: TaskIdArgs) -> Any:
    return await TaskManager(stores).get_task_context(args.task_id)


async def _task_update(stores: StoreGroup, args: TaskUpdateArgs) -> Any:
    fields = args.model_dump(include=args.model_fields_set - {"task_id"})
    return await TaskManager(stores).update_task(args.task_id, TaskUpdate(**fields))


async def _task_delete(stores: StoreGroup, args: TaskIdArgs) -> Any:
    return await TaskManager(stores).delete_task(args.task_id)


async def _task_list(stores: StoreGroup, args: TaskListArgs) -> Any:
    filter_fields: dict[str, Any] = {}
    if args.status is not None:
        filter_fields["status"] = parse_status(args.status)
    if "parent_id" in args.model_fields_set:
        filter_fields["parent_id"] = args.parent_id
    return await TaskManager(stores).find_tasks(TaskFilter(**filter_fields))


async def _task_start(stores: StoreGroup, args: TaskIdArgs) -> Any:
    return await TaskManager(stores).start_task(args.task_id)


async def _task_done(stores: StoreGroup, args: EmptyArgs) -> Any:
    return await TaskManager(stores).done_task(is_ai_caller=True)


async def _task_switch(stores: StoreGroup, args: TaskIdArgs) -> Any:
    return await TaskManager(stores).switch_to_task(args.task_id)


async def _task_spawn(stores: StoreGroup, args: TaskSpawnArgs) -> Any:
    return await TaskManager(stores).spawn_subtask(
        name=args.name, spec=args.spec, owner=TaskOwner.AI
    )


async def _task_pick_next(stores: StoreGroup, args: EmptyArgs) -> Any:
    return await pick_next(stores)


async def _task_add_dependency(stores: StoreGroup, args: DependencyArgs) -> Any:
    return await DependencyGraph(stores).add_dependency(
        blocking_task_id=args.blocking_task_id, blocked_task_id=args.blocked_task_id
    )


async def _current_task_get(stores: StoreGroup, args: EmptyArgs) -> Any:
    return await WorkspaceManager(stores).get_current_task()


async def _plan(stores: StoreGroup, args: PlanRequest) -> Any:
    return await PlanReconciler(stores).execute(args, is_ai_caller=True)


async def _event_add(stores: StoreGroup, args: EventAddArgs) -> Any:
    return await EventManager(stores).add_event(
        log_type=args.type, discussion_data=args.data, task_id=args.task_id
    )


async def _event_list(stores: StoreGroup, args: EventListArgs) -> Any:
    return await EventManager(stores).list_events(
        task_id=args.task_id, log_type=args.type, since=args.since, limit=args.limit
    )


async def _report_generate(stores: StoreGroup, args: ReportArgs) -> Any:
    return await generate_report(
        stores, since=args.since, status=args.status, summary_only=args.summary_only
    )


TOOLS: dict[str, Tool] = {
    tool.name: tool
    for tool in [
        Tool("task_add", "Create a todo task (owned by the AI).", TaskAddArgs, _task_add),
        Tool("task_get", "Get a task by id.", TaskGetArgs, _task_get),
        Tool(
            "task_context",
            "Get a task with its ancestors, siblings, children and dependencies.",
            TaskIdArgs,
            _task_context,
        ),
        Tool(
            "task_update",
            "Update task fields. A status written here skips cascades.",
            TaskUpdateArgs,
            _task_update,
        ),
        Tool("task_delete", "Delete a task and its whole subtree.", TaskIdArgs, _task_delete),
        Tool("task_list", "List tasks filtered by status and parent.", TaskListArgs, _task_list),
        Tool(
            "task_start",
            "Start a task, cascade doing to todo ancestors and focus it.",
            TaskIdArgs,
            _task_start,
        ),
        Tool(
            "task_done",
            "Complete the current task; parents whose subtasks are all done complete too.",
            EmptyArgs,
            _task_done,
        ),
        Tool("task_switch", "Switch focus to another unfinished task.", TaskIdArgs, _task_switch),
        Tool(
            "task_spawn_subtask",
            "Create a subtask of the current task and focus it.",
            TaskSpawnArgs,
            _task_spawn,
        ),
        Tool("task_pick_next", "Recommend the next task to work on.", EmptyArgs, _task_pick_next),
        Tool(
            "task_add_dependency",
            "Make blocked_task_id wait until blocking_task_id is done.",
            DependencyArgs,
            _task_add_dependency,
        ),
        Tool("current_task_get", "Get the current task of this session.", EmptyArgs, _current_task_get),
        Tool(
            "plan",
            "Apply a declarative task tree atomically: create, update, delete, "
            "dependencies and status in one transaction.",
            PlanRequest,
            _plan,
        ),
        Tool("event_add", "Record a decision, blocker, milestone or note.", EventAddArgs, _event_add),
        Tool("event_list", "List task events, newest first.", EventListArgs, _event_list),
        Tool("report_generate", "Summarize task status over a time window.", ReportArgs, _report_generate),
    ]
}
