"""事件日志与报告路由

POST /api/events  记录事件（缺省挂到当前焦点任务）
GET  /api/events  事件列表，时间倒序
GET  /api/report  状态汇总
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from intentflow.core.config import DEFAULT_EVENT_LIST_LIMIT
from intentflow.core.events import EventManager
from intentflow.core.models import ReportResponse, TaskEvent
from intentflow.core.report import generate_report

from ..deps import get_change_hub, get_store_group

router = APIRouter()


class EventCreateRequest(BaseModel):
    """新增事件请求"""

    type: str
    data: str
    task_id: int | None = None


class EventListResponse(BaseModel):
    events: list[TaskEvent]


@router.post("/api/events", response_model=TaskEvent, status_code=201)
async def add_event(
    body: EventCreateRequest,
    store_group=Depends(get_store_group),
    change_hub=Depends(get_change_hub),
):
    event = await EventManager(store_group).add_event(
        log_type=body.type, discussion_data=body.data, task_id=body.task_id
    )
    await change_hub.broadcast("event_add", [event.task_id])
    return event


@router.get("/api/events", response_model=EventListResponse)
async def list_events(
    task_id: int | None = Query(default=None),
    type: str | None = Query(default=None, description="decision/blocker/milestone/note"),
    since: str | None = Query(default=None, description="时长，如 7d / 24h / 30m"),
    limit: int = Query(default=DEFAULT_EVENT_LIST_LIMIT),
    store_group=Depends(get_store_group),
):
    events = await EventManager(store_group).list_events(
        task_id=task_id, log_type=type, since=since, limit=limit
    )
    return EventListResponse(events=events)


@router.get("/api/report", response_model=ReportResponse)
async def report(
    since: str | None = Query(default=None),
    status: str | None = Query(default=None),
    summary_only: bool = Query(default=True),
    store_group=Depends(get_store_group),
):
    return await generate_report(
        store_group, since=since, status=status, summary_only=summary_only
    )
