"""依赖边模型"""

from datetime import datetime

from pydantic import BaseModel, Field


class Dependency(BaseModel):
    """blocking_task_id 阻塞 blocked_task_id"""

    id: int
    blocking_task_id: int = Field(description="必须先完成的任务")
    blocked_task_id: int = Field(description="被阻塞的任务")
    created_at: datetime
