"""状态报告"""

from .models import DateRange, ReportResponse, ReportSummary, TaskStatus
from .store import StoreGroup
from .tasks import parse_status
from .time_utils import since_cutoff, utc_now


async def generate_report(
    store_group: StoreGroup,
    since: str | None = None,
    status: str | None = None,
    summary_only: bool = True,
) -> ReportResponse:
    """生成时间窗口内的任务状态汇总

    Args:
        since: 时长字符串，None 表示全部历史
        status: 只统计该状态的任务
        summary_only: 为 False 时附带任务列表
    """
    status_filter = parse_status(status)
    cutoff = since_cutoff(since)

    async with store_group.read():
        tasks = await store_group.task_store.list_active_since(
            cutoff, status_filter.value if status_filter else None
        )
        total_events = await store_group.event_store.count_events(since=cutoff)

    summary = ReportSummary(
        total_tasks=len(tasks),
        todo_count=sum(1 for t in tasks if t.status == TaskStatus.TODO),
        doing_count=sum(1 for t in tasks if t.status == TaskStatus.DOING),
        done_count=sum(1 for t in tasks if t.status == TaskStatus.DONE),
        total_events=total_events,
        date_range=DateRange(start=cutoff, end=utc_now()) if cutoff else None,
    )
    return ReportResponse(summary=summary, tasks=None if summary_only else tasks)
