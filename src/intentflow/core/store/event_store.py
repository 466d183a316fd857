"""EventStore SQLite 实现

events 表记录附着在任务上的决策、阻塞、里程碑与备注，随任务级联删除。
不自动提交事务，需由调用方管理事务。
"""

from datetime import datetime
from typing import Any

import aiosqlite

from ..models.enums import EventLogType
from ..models.event import TaskEvent
from ..time_utils import to_iso


class SqliteEventStore:
    """EventStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(
        self,
        task_id: int,
        log_type: EventLogType,
        discussion_data: str,
        timestamp: datetime,
    ) -> TaskEvent:
        """写入单条事件"""
        cursor = await self._conn.execute(
            """
            INSERT INTO events (task_id, timestamp, log_type, discussion_data)
            VALUES (?, ?, ?, ?)
            """,
            (task_id, to_iso(timestamp), log_type.value, discussion_data),
        )
        return TaskEvent(
            id=cursor.lastrowid,
            task_id=task_id,
            timestamp=timestamp,
            log_type=log_type,
            discussion_data=discussion_data,
        )

    async def list_events(
        self,
        task_id: int | None = None,
        log_type: str | None = None,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[TaskEvent]:
        """按条件查询事件，时间倒序"""
        clauses: list[str] = []
        params: list[Any] = []
        if task_id is not None:
            clauses.append("task_id = ?")
            params.append(task_id)
        if log_type is not None:
            clauses.append("log_type = ?")
            params.append(log_type)
        if since is not None:
            clauses.append("timestamp >= ?")
            params.append(to_iso(since))

        sql = "SELECT id, task_id, timestamp, log_type, discussion_data FROM events"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def count_events(
        self, task_id: int | None = None, since: datetime | None = None
    ) -> int:
        clauses: list[str] = []
        params: list[Any] = []
        if task_id is not None:
            clauses.append("task_id = ?")
            params.append(task_id)
        if since is not None:
            clauses.append("timestamp >= ?")
            params.append(to_iso(since))

        sql = "SELECT COUNT(*) FROM events"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        return row[0]

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> TaskEvent:
        """将数据库行转换为 TaskEvent 模型"""
        return TaskEvent(
            id=row[0],
            task_id=row[1],
            timestamp=datetime.fromisoformat(row[2]),
            log_type=row[3],
            discussion_data=row[4],
        )
