"""SQLite 数据库初始化

PRAGMA 配置 + 四张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL：parent_id 级联删除，整棵子树随父任务一起删除
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    parent_id       INTEGER REFERENCES tasks(id) ON DELETE CASCADE,
    name            TEXT NOT NULL,
    spec            TEXT,
    status          TEXT NOT NULL DEFAULT 'todo'
                    CHECK (status IN ('todo', 'doing', 'done')),
    owner           TEXT NOT NULL DEFAULT 'human'
                    CHECK (owner IN ('human', 'ai')),
    complexity      INTEGER,
    priority        INTEGER NOT NULL DEFAULT 4,
    first_todo_at   TEXT,
    first_doing_at  TEXT,
    first_done_at   TEXT
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_parent_id ON tasks(parent_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_priority ON tasks(priority, id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_name ON tasks(name);",
]

# dependencies 表 DDL：blocking_task_id 阻塞 blocked_task_id
_DEPENDENCIES_DDL = """
CREATE TABLE IF NOT EXISTS dependencies (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    blocking_task_id  INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    blocked_task_id   INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    created_at        TEXT NOT NULL,

    UNIQUE (blocking_task_id, blocked_task_id),
    CHECK (blocking_task_id != blocked_task_id)
);
"""

_DEPENDENCIES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_dependencies_blocked ON dependencies(blocked_task_id);",
]

# workspace_state 表 DDL：按会话隔离的键值槽位
_WORKSPACE_DDL = """
CREATE TABLE IF NOT EXISTS workspace_state (
    session_id  TEXT NOT NULL,
    key         TEXT NOT NULL,
    value       TEXT NOT NULL,

    PRIMARY KEY (session_id, key)
);
"""

# events 表 DDL
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id          INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    timestamp        TEXT NOT NULL,
    log_type         TEXT NOT NULL
                     CHECK (log_type IN ('decision', 'blocker', 'milestone', 'note')),
    discussion_data  TEXT NOT NULL
);
"""

_EVENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_events_task_ts ON events(task_id, timestamp);",
    "CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events(timestamp DESC);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_DEPENDENCIES_DDL)
    await conn.execute(_WORKSPACE_DDL)
    await conn.execute(_EVENTS_DDL)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _DEPENDENCIES_INDEXES + _EVENTS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
