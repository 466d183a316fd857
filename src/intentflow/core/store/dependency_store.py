"""DependencyStore SQLite 实现

dependencies 表中每一行表示 blocking_task_id 阻塞 blocked_task_id。
不自动提交事务，需由调用方管理事务。
"""

from datetime import datetime

import aiosqlite

from ..models.dependency import Dependency
from ..models.task import Task
from ..time_utils import to_iso
from .task_store import TASK_COLUMNS_T, SqliteTaskStore


class SqliteDependencyStore:
    """DependencyStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_dependency(
        self, blocking_task_id: int, blocked_task_id: int, created_at: datetime
    ) -> Dependency:
        """插入依赖边"""
        cursor = await self._conn.execute(
            """
            INSERT INTO dependencies (blocking_task_id, blocked_task_id, created_at)
            VALUES (?, ?, ?)
            """,
            (blocking_task_id, blocked_task_id, to_iso(created_at)),
        )
        return Dependency(
            id=cursor.lastrowid,
            blocking_task_id=blocking_task_id,
            blocked_task_id=blocked_task_id,
            created_at=created_at,
        )

    async def get_dependency(
        self, blocking_task_id: int, blocked_task_id: int
    ) -> Dependency | None:
        cursor = await self._conn.execute(
            """
            SELECT id, blocking_task_id, blocked_task_id, created_at
            FROM dependencies
            WHERE blocking_task_id = ? AND blocked_task_id = ?
            """,
            (blocking_task_id, blocked_task_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_dependency(row)

    async def remove_dependency(self, blocking_task_id: int, blocked_task_id: int) -> bool:
        """删除依赖边，返回是否存在并被删除"""
        cursor = await self._conn.execute(
            "DELETE FROM dependencies WHERE blocking_task_id = ? AND blocked_task_id = ?",
            (blocking_task_id, blocked_task_id),
        )
        return cursor.rowcount > 0

    async def depends_on(self, task_id: int, target_id: int) -> bool:
        """task_id 是否（直接或传递地）依赖 target_id

        从 task_id 出发沿"它依赖谁"的方向做可达性搜索。
        """
        cursor = await self._conn.execute(
            """
            WITH RECURSIVE upstream(task_id) AS (
                SELECT ?
                UNION
                SELECT d.blocking_task_id
                FROM dependencies d JOIN upstream u ON d.blocked_task_id = u.task_id
            )
            SELECT 1 FROM upstream WHERE task_id = ? LIMIT 1
            """,
            (task_id, target_id),
        )
        row = await cursor.fetchone()
        return row is not None

    async def get_blocking_tasks(self, task_id: int, undone_only: bool = False) -> list[Task]:
        """阻塞 task_id 的任务

        Args:
            undone_only: 只返回状态不为 done 的阻塞者
        """
        sql = f"""
            SELECT {TASK_COLUMNS_T} FROM dependencies d
            JOIN tasks t ON t.id = d.blocking_task_id
            WHERE d.blocked_task_id = ?
        """
        if undone_only:
            sql += " AND t.status != 'done'"
        sql += " ORDER BY t.id ASC"
        cursor = await self._conn.execute(sql, (task_id,))
        rows = await cursor.fetchall()
        return [SqliteTaskStore._row_to_task(row) for row in rows]

    async def get_blocked_tasks(self, task_id: int) -> list[Task]:
        """被 task_id 阻塞的任务"""
        cursor = await self._conn.execute(
            f"""
            SELECT {TASK_COLUMNS_T} FROM dependencies d
            JOIN tasks t ON t.id = d.blocked_task_id
            WHERE d.blocking_task_id = ?
            ORDER BY t.id ASC
            """,
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [SqliteTaskStore._row_to_task(row) for row in rows]

    async def count_dependencies(self) -> int:
        cursor = await self._conn.execute("SELECT COUNT(*) FROM dependencies")
        row = await cursor.fetchone()
        return row[0]

    @staticmethod
    def _row_to_dependency(row: aiosqlite.Row) -> Dependency:
        """将数据库行转换为 Dependency 模型"""
        return Dependency(
            id=row[0],
            blocking_task_id=row[1],
            blocked_task_id=row[2],
            created_at=datetime.fromisoformat(row[3]),
        )
