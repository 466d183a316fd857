"""EventManager -- 任务事件日志

记录决策（decision）、阻塞（blocker）、里程碑（milestone）与备注（note）。
未指定任务时写到当前焦点任务上。
"""

import structlog

from .config import DEFAULT_EVENT_LIST_LIMIT
from .errors import InvalidInputError, NoCurrentTaskError, TaskNotFoundError
from .models import EventLogType, TaskEvent
from .store import StoreGroup
from .time_utils import since_cutoff, utc_now

log = structlog.get_logger()


def parse_log_type(value: str | EventLogType) -> EventLogType:
    """解析事件类型，失败时抛出 InvalidInputError"""
    if isinstance(value, EventLogType):
        return value
    try:
        return EventLogType(value.strip().lower())
    except ValueError:
        raise InvalidInputError(
            f"Invalid event type '{value}': expected decision, blocker, milestone or note",
            log_type=value,
        ) from None


class EventManager:
    """事件日志业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def add_event(
        self,
        log_type: str | EventLogType,
        discussion_data: str,
        task_id: int | None = None,
    ) -> TaskEvent:
        """写入事件

        Raises:
            InvalidInputError: 事件类型非法或正文为空
            NoCurrentTaskError: 未指定任务且没有焦点任务
            TaskNotFoundError: 任务不存在
        """
        event_type = parse_log_type(log_type)
        if not discussion_data or not discussion_data.strip():
            raise InvalidInputError("Event data must not be empty")

        async with self._stores.transaction():
            if task_id is None:
                task_id = await self._stores.workspace_store.get_current_task_id()
                if task_id is None:
                    raise NoCurrentTaskError(
                        "No current task to attach the event to; pass a task id"
                    )
            if await self._stores.task_store.get_task(task_id) is None:
                raise TaskNotFoundError(task_id)
            event = await self._stores.event_store.append_event(
                task_id=task_id,
                log_type=event_type,
                discussion_data=discussion_data,
                timestamp=utc_now(),
            )

        await log.ainfo(
            "event_added", event_id=event.id, task_id=task_id, log_type=event_type.value
        )
        return event

    async def list_events(
        self,
        task_id: int | None = None,
        log_type: str | EventLogType | None = None,
        since: str | None = None,
        limit: int = DEFAULT_EVENT_LIST_LIMIT,
    ) -> list[TaskEvent]:
        """按条件列出事件，时间倒序

        Args:
            since: 时长字符串（"7d" / "24h" / "30m" / "45s"）
        """
        if limit <= 0:
            raise InvalidInputError("limit must be positive", limit=limit)
        event_type = parse_log_type(log_type) if log_type is not None else None
        cutoff = since_cutoff(since)

        async with self._stores.read():
            if task_id is not None and await self._stores.task_store.get_task(task_id) is None:
                raise TaskNotFoundError(task_id)
            return await self._stores.event_store.list_events(
                task_id=task_id,
                log_type=event_type.value if event_type else None,
                since=cutoff,
                limit=limit,
            )
