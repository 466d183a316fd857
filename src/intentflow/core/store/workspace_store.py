"""WorkspaceStore SQLite 实现

workspace_state 以 (session_id, key) 为主键，current_task_id 是其中唯一的焦点槽位。
不自动提交事务，需由调用方管理事务。
"""

import aiosqlite

CURRENT_TASK_KEY = "current_task_id"


class SqliteWorkspaceStore:
    """WorkspaceStore 的 SQLite 实现（绑定单个会话）"""

    def __init__(self, conn: aiosqlite.Connection, session_id: str) -> None:
        self._conn = conn
        self.session_id = session_id

    async def get_current_task_id(self) -> int | None:
        cursor = await self._conn.execute(
            "SELECT value FROM workspace_state WHERE session_id = ? AND key = ?",
            (self.session_id, CURRENT_TASK_KEY),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return int(row[0])

    async def set_current_task_id(self, task_id: int) -> None:
        await self._conn.execute(
            """
            INSERT INTO workspace_state (session_id, key, value)
            VALUES (?, ?, ?)
            ON CONFLICT (session_id, key) DO UPDATE SET value = excluded.value
            """,
            (self.session_id, CURRENT_TASK_KEY, str(task_id)),
        )

    async def clear_current_task_id(self) -> None:
        await self._conn.execute(
            "DELETE FROM workspace_state WHERE session_id = ? AND key = ?",
            (self.session_id, CURRENT_TASK_KEY),
        )

    async def clear_for_tasks(self, task_ids: list[int]) -> int:
        """清除所有会话中指向给定任务的焦点槽位

        Returns:
            被清除的槽位数
        """
        if not task_ids:
            return 0
        placeholders = ", ".join("?" for _ in task_ids)
        cursor = await self._conn.execute(
            f"""
            DELETE FROM workspace_state
            WHERE key = ? AND value IN ({placeholders})
            """,
            (CURRENT_TASK_KEY, *(str(i) for i in task_ids)),
        )
        return cursor.rowcount
