"""任务事件日志模型"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import EventLogType


class TaskEvent(BaseModel):
    """附着在任务上的决策/阻塞/里程碑/备注记录"""

    id: int
    task_id: int
    timestamp: datetime
    log_type: EventLogType
    discussion_data: str = Field(description="事件正文")
