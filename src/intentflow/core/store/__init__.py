"""intentflow Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from ..config import get_session_id
from .dependency_store import SqliteDependencyStore
from .event_store import SqliteEventStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import TransactionManager
from .workspace_store import SqliteWorkspaceStore


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接与事务管理器"""

    def __init__(self, conn: aiosqlite.Connection, session_id: str) -> None:
        self.conn = conn
        self.session_id = session_id
        self.task_store = SqliteTaskStore(conn)
        self.dependency_store = SqliteDependencyStore(conn)
        self.workspace_store = SqliteWorkspaceStore(conn, session_id)
        self.event_store = SqliteEventStore(conn)
        self._tx = TransactionManager(conn)

    def transaction(self):
        """写事务上下文，嵌套调用加入外层事务"""
        return self._tx.transaction()

    def read(self):
        """只读上下文"""
        return self._tx.read()

    @property
    def in_transaction(self) -> bool:
        return self._tx.in_transaction

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(
    db_path: str,
    session_id: str | None = None,
) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径
        session_id: 焦点槽位所属会话，默认取 INTENTFLOW_SESSION_ID

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn, session_id=session_id or get_session_id())


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteDependencyStore",
    "SqliteWorkspaceStore",
    "SqliteEventStore",
    "TransactionManager",
    "init_db",
]
