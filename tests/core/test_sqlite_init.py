"""数据库初始化测试

测试内容：
1. 四张表全部创建
2. WAL 模式生效
3. 外键级联：删除父任务时子任务、依赖边、事件一起删除
4. 重复初始化幂等
"""

import aiosqlite
import pytest

from intentflow.core.store.sqlite_init import init_db, verify_wal_mode


class TestInitDb:
    """init_db 建表与 PRAGMA"""

    async def test_tables_created(self, db_conn: aiosqlite.Connection):
        cursor = await db_conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
        )
        tables = {row[0] for row in await cursor.fetchall()}
        assert {"tasks", "dependencies", "workspace_state", "events"} <= tables

    async def test_wal_mode(self, db_conn: aiosqlite.Connection):
        assert await verify_wal_mode(db_conn) is True

    async def test_init_is_idempotent(self, db_conn: aiosqlite.Connection):
        await init_db(db_conn)
        cursor = await db_conn.execute("SELECT COUNT(*) FROM tasks")
        row = await cursor.fetchone()
        assert row[0] == 0

    async def test_status_check_constraint(self, db_conn: aiosqlite.Connection):
        """status 只允许 todo / doing / done"""
        with pytest.raises(aiosqlite.IntegrityError):
            await db_conn.execute(
                "INSERT INTO tasks (name, status) VALUES ('bad', 'paused')"
            )


class TestForeignKeyCascade:
    """删除任务时的外键级联"""

    async def test_delete_parent_cascades(self, db_conn: aiosqlite.Connection):
        await db_conn.execute("INSERT INTO tasks (id, name) VALUES (1, 'root')")
        await db_conn.execute("INSERT INTO tasks (id, name, parent_id) VALUES (2, 'child', 1)")
        await db_conn.execute("INSERT INTO tasks (id, name, parent_id) VALUES (3, 'leaf', 2)")
        await db_conn.execute("INSERT INTO tasks (id, name) VALUES (4, 'other')")
        await db_conn.execute(
            "INSERT INTO dependencies (blocking_task_id, blocked_task_id, created_at) "
            "VALUES (4, 3, '2026-01-01T00:00:00+00:00')"
        )
        await db_conn.execute(
            "INSERT INTO events (task_id, timestamp, log_type, discussion_data) "
            "VALUES (3, '2026-01-01T00:00:00+00:00', 'note', 'hello')"
        )
        await db_conn.commit()

        await db_conn.execute("DELETE FROM tasks WHERE id = 1")
        await db_conn.commit()

        cursor = await db_conn.execute("SELECT id FROM tasks ORDER BY id")
        assert [row[0] for row in await cursor.fetchall()] == [4]
        cursor = await db_conn.execute("SELECT COUNT(*) FROM dependencies")
        assert (await cursor.fetchone())[0] == 0
        cursor = await db_conn.execute("SELECT COUNT(*) FROM events")
        assert (await cursor.fetchone())[0] == 0
