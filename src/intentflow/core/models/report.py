"""状态报告模型"""

from datetime import datetime

from pydantic import BaseModel

from .task import Task


class DateRange(BaseModel):
    """报告时间窗口"""

    start: datetime
    end: datetime


class ReportSummary(BaseModel):
    """按状态汇总的计数"""

    total_tasks: int = 0
    todo_count: int = 0
    doing_count: int = 0
    done_count: int = 0
    total_events: int = 0
    date_range: DateRange | None = None


class ReportResponse(BaseModel):
    """generate_report 返回"""

    summary: ReportSummary
    tasks: list[Task] | None = None
