"""CLI 入口模块 -- python -m intentflow.core <command>

命令输出为 JSON（stdout）；引擎错误以 {"error": {...}} 写到 stderr 并以状态码 1 退出。
CLI 视为 human 调用方。
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from .config import DEFAULT_EVENT_LIST_LIMIT, get_db_path
from .dependencies import DependencyGraph
from .errors import EngineError, InvalidInputError, invalid_input_from
from .events import EventManager
from .logging_config import setup_logging
from .models import PlanRequest, TaskFilter, TaskUpdate
from .plan import PlanReconciler
from .recommender import pick_next
from .report import generate_report
from .store import StoreGroup, create_store_group
from .tasks import TaskManager, parse_status
from .workspace import WorkspaceManager


def _optional_id(value: str) -> int | None:
    """解析可为 null 的任务 ID 参数"""
    if value.lower() in ("null", "none", "root"):
        return None
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a task id or 'null', got '{value}'") from None


def to_jsonable(value: Any) -> Any:
    """将返回值转换为可 JSON 序列化的结构"""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    if value is None:
        return {"ok": True}
    return value


# ----------------------------------------------------------------------
# 命令处理
# ----------------------------------------------------------------------


async def _task_add(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await TaskManager(stores).add_task(
        name=args.name,
        spec=args.spec,
        parent_id=args.parent,
        priority=args.priority,
        complexity=args.complexity,
    )


async def _task_get(stores: StoreGroup, args: argparse.Namespace) -> Any:
    manager = TaskManager(stores)
    if args.with_events:
        return await manager.get_task_with_events(args.task_id)
    return await manager.get_task(args.task_id)


async def _task_context(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await TaskManager(stores).get_task_context(args.task_id)


async def _task_update(stores: StoreGroup, args: argparse.Namespace) -> Any:
    fields = {
        key: getattr(args, key)
        for key in ("name", "spec", "parent_id", "status", "complexity", "priority")
        if hasattr(args, key)
    }
    if not fields:
        raise InvalidInputError("Nothing to update; pass at least one field option")
    return await TaskManager(stores).update_task(args.task_id, TaskUpdate(**fields))


async def _task_delete(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await TaskManager(stores).delete_task(args.task_id)


async def _task_list(stores: StoreGroup, args: argparse.Namespace) -> Any:
    filter_fields: dict[str, Any] = {}
    if args.status is not None:
        filter_fields["status"] = parse_status(args.status)
    if hasattr(args, "parent_id"):
        filter_fields["parent_id"] = args.parent_id
    return await TaskManager(stores).find_tasks(TaskFilter(**filter_fields))


async def _task_start(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await TaskManager(stores).start_task(args.task_id)


async def _task_done(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await TaskManager(stores).done_task(is_ai_caller=False)


async def _task_switch(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await TaskManager(stores).switch_to_task(args.task_id)


async def _task_spawn(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await TaskManager(stores).spawn_subtask(name=args.name, spec=args.spec)


async def _task_pick_next(stores: StoreGroup, args: argparse.Namespace) -> Any:
    response = await pick_next(stores)
    if args.format == "text":
        return response.format_as_text()
    return response


async def _task_depends_on(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await DependencyGraph(stores).add_dependency(
        blocking_task_id=args.blocking_id, blocked_task_id=args.task_id
    )


async def _task_remove_dependency(stores: StoreGroup, args: argparse.Namespace) -> Any:
    await DependencyGraph(stores).remove_dependency(
        blocking_task_id=args.blocking_id, blocked_task_id=args.task_id
    )
    return None


async def _current(stores: StoreGroup, args: argparse.Namespace) -> Any:
    workspace = WorkspaceManager(stores)
    if args.clear:
        await workspace.clear_current_task()
    elif args.set is not None:
        return await workspace.set_current_task(args.set)
    return await workspace.get_current_task()


async def _plan(stores: StoreGroup, args: argparse.Namespace) -> Any:
    raw = Path(args.file).read_text(encoding="utf-8") if args.file else sys.stdin.read()
    return await PlanReconciler(stores).execute(parse_plan(raw), is_ai_caller=False)


async def _event_add(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await EventManager(stores).add_event(
        log_type=args.type, discussion_data=args.data, task_id=args.task
    )


async def _event_list(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await EventManager(stores).list_events(
        task_id=args.task, log_type=args.type, since=args.since, limit=args.limit
    )


async def _report(stores: StoreGroup, args: argparse.Namespace) -> Any:
    return await generate_report(
        stores, since=args.since, status=args.status, summary_only=not args.full
    )


def parse_plan(raw: str) -> PlanRequest:
    """解析计划 JSON：{"tasks": [...]} 或直接一个任务数组"""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidInputError(f"Plan is not valid JSON: {exc}") from exc
    if isinstance(payload, list):
        payload = {"tasks": payload}
    try:
        return PlanRequest.model_validate(payload)
    except ValidationError as exc:
        raise invalid_input_from(exc) from exc


# ----------------------------------------------------------------------
# 参数解析
# ----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intentflow",
        description="Task lifecycle engine: task tree, dependencies, focus and plans",
    )
    sub = parser.add_subparsers(dest="command")

    # task
    task_p = sub.add_parser("task", help="Task operations")
    task_sub = task_p.add_subparsers(dest="task_command")

    add_p = task_sub.add_parser("add", help="Create a todo task")
    add_p.add_argument("--name", required=True)
    add_p.add_argument("--spec")
    add_p.add_argument("--parent", type=int)
    add_p.add_argument("--priority", help="critical|high|medium|low or an integer")
    add_p.add_argument("--complexity", type=int)
    add_p.set_defaults(handler=_task_add)

    get_p = task_sub.add_parser("get", help="Show a task")
    get_p.add_argument("task_id", type=int)
    get_p.add_argument("--with-events", action="store_true")
    get_p.set_defaults(handler=_task_get)

    ctx_p = task_sub.add_parser("context", help="Show ancestors, siblings, children and dependencies")
    ctx_p.add_argument("task_id", type=int)
    ctx_p.set_defaults(handler=_task_context)

    upd_p = task_sub.add_parser("update", help="Update task fields (status writes skip cascades)")
    upd_p.add_argument("task_id", type=int)
    upd_p.add_argument("--name", default=argparse.SUPPRESS)
    upd_p.add_argument("--spec", default=argparse.SUPPRESS)
    upd_p.add_argument(
        "--parent", dest="parent_id", type=_optional_id, default=argparse.SUPPRESS,
        help="new parent id, or 'null' to make it a root task",
    )
    upd_p.add_argument("--status", default=argparse.SUPPRESS)
    upd_p.add_argument("--priority", default=argparse.SUPPRESS)
    upd_p.add_argument("--complexity", type=int, default=argparse.SUPPRESS)
    upd_p.set_defaults(handler=_task_update)

    del_p = task_sub.add_parser("delete", help="Delete a task and its subtree")
    del_p.add_argument("task_id", type=int)
    del_p.set_defaults(handler=_task_delete)

    list_p = task_sub.add_parser("list", help="List tasks")
    list_p.add_argument("--status")
    list_p.add_argument(
        "--parent", dest="parent_id", type=_optional_id, default=argparse.SUPPRESS,
        help="parent id, or 'null' for root tasks only",
    )
    list_p.set_defaults(handler=_task_list)

    start_p = task_sub.add_parser("start", help="Start a task and focus it")
    start_p.add_argument("task_id", type=int)
    start_p.set_defaults(handler=_task_start)

    done_p = task_sub.add_parser("done", help="Complete the current task")
    done_p.set_defaults(handler=_task_done)

    switch_p = task_sub.add_parser("switch", help="Switch focus to another task")
    switch_p.add_argument("task_id", type=int)
    switch_p.set_defaults(handler=_task_switch)

    spawn_p = task_sub.add_parser("spawn-subtask", help="Create a subtask of the current task and focus it")
    spawn_p.add_argument("--name", required=True)
    spawn_p.add_argument("--spec")
    spawn_p.set_defaults(handler=_task_spawn)

    next_p = task_sub.add_parser("pick-next", help="Recommend the next task")
    next_p.add_argument("--format", choices=["json", "text"], default="json")
    next_p.set_defaults(handler=_task_pick_next)

    dep_p = task_sub.add_parser("depends-on", help="TASK_ID cannot start until BLOCKING_ID is done")
    dep_p.add_argument("task_id", type=int)
    dep_p.add_argument("blocking_id", type=int)
    dep_p.set_defaults(handler=_task_depends_on)

    rmdep_p = task_sub.add_parser("remove-dependency", help="Remove a dependency edge")
    rmdep_p.add_argument("task_id", type=int)
    rmdep_p.add_argument("blocking_id", type=int)
    rmdep_p.set_defaults(handler=_task_remove_dependency)

    # current
    current_p = sub.add_parser("current", help="Show or change the current task")
    current_p.add_argument("--set", type=int)
    current_p.add_argument("--clear", action="store_true")
    current_p.set_defaults(handler=_current)

    # plan
    plan_p = sub.add_parser("plan", help="Apply a declarative task tree (JSON from stdin or --file)")
    plan_p.add_argument("--file")
    plan_p.set_defaults(handler=_plan)

    # event
    event_p = sub.add_parser("event", help="Task event log")
    event_sub = event_p.add_subparsers(dest="event_command")

    ev_add_p = event_sub.add_parser("add", help="Record a decision, blocker, milestone or note")
    ev_add_p.add_argument("--type", required=True)
    ev_add_p.add_argument("--data", required=True)
    ev_add_p.add_argument("--task", type=int, help="defaults to the current task")
    ev_add_p.set_defaults(handler=_event_add)

    ev_list_p = event_sub.add_parser("list", help="List events, newest first")
    ev_list_p.add_argument("--task", type=int)
    ev_list_p.add_argument("--type")
    ev_list_p.add_argument("--since", help="e.g. 7d, 24h, 30m")
    ev_list_p.add_argument("--limit", type=int, default=DEFAULT_EVENT_LIST_LIMIT)
    ev_list_p.set_defaults(handler=_event_list)

    # report
    report_p = sub.add_parser("report", help="Status summary")
    report_p.add_argument("--since")
    report_p.add_argument("--status")
    report_p.add_argument("--full", action="store_true", help="include the task list")
    report_p.set_defaults(handler=_report)

    return parser


async def run_command(args: argparse.Namespace, db_path: str | None = None) -> Any:
    """打开存储、执行命令并关闭连接"""
    stores = await create_store_group(db_path or get_db_path())
    try:
        return await args.handler(stores, args)
    finally:
        await stores.close()


def main(argv: list[str] | None = None) -> None:
    """CLI 主入口"""
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "handler", None) is None:
        parser.print_help()
        sys.exit(1)

    setup_logging(sys.stderr)

    try:
        result = asyncio.run(run_command(args))
    except ValidationError as exc:
        _print_error(invalid_input_from(exc))
        sys.exit(1)
    except EngineError as exc:
        _print_error(exc)
        sys.exit(1)

    if isinstance(result, str):
        print(result)
    else:
        print(json.dumps(to_jsonable(result), ensure_ascii=False, indent=2))


def _print_error(exc: EngineError) -> None:
    print(
        json.dumps({"error": exc.to_error_response()}, ensure_ascii=False, indent=2),
        file=sys.stderr,
    )


if __name__ == "__main__":
    main()
