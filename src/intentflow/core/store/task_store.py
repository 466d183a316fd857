"""TaskStore SQLite 实现

tasks 表以 parent_id 组织成森林，树形查询使用递归 CTE。
此处仅提供数据库操作，不做业务校验，也不自动提交事务，需由调用方管理事务。
"""

from datetime import datetime
from typing import Any

import aiosqlite

from ..models.enums import TaskOwner, TaskStatus
from ..models.task import Task
from ..time_utils import to_iso

# 统一的列顺序，_row_to_task 按下标取值
TASK_COLUMNS = (
    "id, parent_id, name, spec, status, owner, complexity, priority, "
    "first_todo_at, first_doing_at, first_done_at"
)

# 带表别名 t 的列列表（JOIN 查询使用）
TASK_COLUMNS_T = ", ".join(f"t.{c.strip()}" for c in TASK_COLUMNS.split(","))

# update_fields 允许写入的列
_UPDATABLE_COLUMNS = {"name", "spec", "parent_id", "complexity", "priority"}

# 未完成阻塞依赖存在性子查询（t 为被判断的任务）
UNBLOCKED_CLAUSE = """
NOT EXISTS (
    SELECT 1 FROM dependencies d
    JOIN tasks b ON b.id = d.blocking_task_id
    WHERE d.blocked_task_id = t.id AND b.status != 'done'
)
"""


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_task(
        self,
        name: str,
        spec: str | None,
        parent_id: int | None,
        owner: TaskOwner,
        priority: int,
        complexity: int | None,
        created_at: datetime,
    ) -> int:
        """插入 todo 任务，返回新任务 ID"""
        cursor = await self._conn.execute(
            """
            INSERT INTO tasks (name, spec, parent_id, status, owner,
                               priority, complexity, first_todo_at)
            VALUES (?, ?, ?, 'todo', ?, ?, ?, ?)
            """,
            (
                name,
                spec,
                parent_id,
                owner.value,
                priority,
                complexity,
                to_iso(created_at),
            ),
        )
        return cursor.lastrowid

    async def get_task(self, task_id: int) -> Task | None:
        """根据 id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def find_tasks(
        self,
        status: str | None = None,
        parent_id: int | None = None,
        filter_parent: bool = False,
    ) -> list[Task]:
        """按状态 / 父任务筛选，按 id 升序

        Args:
            status: 状态筛选，None 不筛选
            parent_id: 父任务 ID，仅在 filter_parent 为 True 时生效（None 表示根任务）
            filter_parent: 是否按 parent_id 筛选
        """
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if filter_parent:
            if parent_id is None:
                clauses.append("parent_id IS NULL")
            else:
                clauses.append("parent_id = ?")
                params.append(parent_id)

        sql = f"SELECT {TASK_COLUMNS} FROM tasks"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id ASC"

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def get_children(self, parent_id: int) -> list[Task]:
        """直接子任务，按优先级、id 排序"""
        cursor = await self._conn.execute(
            f"""
            SELECT {TASK_COLUMNS} FROM tasks
            WHERE parent_id = ?
            ORDER BY priority ASC, id ASC
            """,
            (parent_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def get_siblings(self, task: Task) -> list[Task]:
        """同一父任务下的其他任务（根任务的兄弟为其他根任务）"""
        if task.parent_id is None:
            cursor = await self._conn.execute(
                f"""
                SELECT {TASK_COLUMNS} FROM tasks
                WHERE parent_id IS NULL AND id != ?
                ORDER BY priority ASC, id ASC
                """,
                (task.id,),
            )
        else:
            cursor = await self._conn.execute(
                f"""
                SELECT {TASK_COLUMNS} FROM tasks
                WHERE parent_id = ? AND id != ?
                ORDER BY priority ASC, id ASC
                """,
                (task.parent_id, task.id),
            )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def get_incomplete_child_ids(self, parent_id: int) -> list[int]:
        """状态不为 done 的直接子任务 ID"""
        cursor = await self._conn.execute(
            "SELECT id FROM tasks WHERE parent_id = ? AND status != 'done' ORDER BY id",
            (parent_id,),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def get_ancestors(self, task_id: int) -> list[Task]:
        """祖先链，由近到远"""
        cursor = await self._conn.execute(
            f"""
            WITH RECURSIVE chain(id, depth) AS (
                SELECT parent_id, 1 FROM tasks WHERE id = ? AND parent_id IS NOT NULL
                UNION ALL
                SELECT t.parent_id, c.depth + 1
                FROM tasks t JOIN chain c ON t.id = c.id
                WHERE t.parent_id IS NOT NULL
            )
            SELECT {TASK_COLUMNS_T} FROM chain c
            JOIN tasks t ON t.id = c.id
            ORDER BY c.depth ASC
            """,
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def get_descendant_ids(self, task_id: int) -> list[int]:
        """所有后代 ID（不含自身）"""
        cursor = await self._conn.execute(
            """
            WITH RECURSIVE subtree(id) AS (
                SELECT id FROM tasks WHERE parent_id = ?
                UNION
                SELECT t.id FROM tasks t JOIN subtree s ON t.parent_id = s.id
            )
            SELECT id FROM subtree ORDER BY id
            """,
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def find_latest_by_name(self, name: str) -> Task | None:
        """精确同名任务中最新创建的一个"""
        cursor = await self._conn.execute(
            f"""
            SELECT {TASK_COLUMNS} FROM tasks
            WHERE name = ?
            ORDER BY id DESC
            LIMIT 1
            """,
            (name,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def find_next_todo(self, parent_id: int | None = None) -> Task | None:
        """未被阻塞的 todo 任务中优先级最高者

        Args:
            parent_id: 只在该任务的直接子任务中查找；None 表示全项目范围
        """
        params: list[Any] = []
        sql = f"SELECT {TASK_COLUMNS_T} FROM tasks t WHERE t.status = 'todo' AND {UNBLOCKED_CLAUSE}"
        if parent_id is not None:
            sql += " AND t.parent_id = ?"
            params.append(parent_id)
        sql += " ORDER BY t.priority ASC, t.id ASC LIMIT 1"

        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def count_by_status(self) -> dict[str, int]:
        """各状态任务数"""
        cursor = await self._conn.execute(
            "SELECT status, COUNT(*) FROM tasks GROUP BY status"
        )
        rows = await cursor.fetchall()
        counts = {status.value: 0 for status in TaskStatus}
        for row in rows:
            counts[row[0]] = row[1]
        return counts

    async def list_active_since(
        self, since: datetime | None, status: str | None = None
    ) -> list[Task]:
        """时间窗口内进入过任一状态的任务"""
        clauses: list[str] = []
        params: list[Any] = []
        if since is not None:
            clauses.append(
                "(first_todo_at >= ? OR first_doing_at >= ? OR first_done_at >= ?)"
            )
            params.extend([to_iso(since)] * 3)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)

        sql = f"SELECT {TASK_COLUMNS} FROM tasks"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id ASC"

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_status(
        self, task_id: int, status: TaskStatus, changed_at: datetime
    ) -> None:
        """写入状态，并只在首次进入该状态时记录 first_<status>_at"""
        column = f"first_{status.value}_at"
        await self._conn.execute(
            f"""
            UPDATE tasks
            SET status = ?, {column} = COALESCE({column}, ?)
            WHERE id = ?
            """,
            (status.value, to_iso(changed_at), task_id),
        )

    async def update_fields(self, task_id: int, fields: dict[str, Any]) -> None:
        """更新非状态字段（owner 不可写）"""
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not updatable: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{column} = ?" for column in fields)
        await self._conn.execute(
            f"UPDATE tasks SET {assignments} WHERE id = ?",
            (*fields.values(), task_id),
        )

    async def delete_task(self, task_id: int) -> None:
        """删除任务，外键级联删除后代、依赖边和事件"""
        await self._conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            id=row[0],
            parent_id=row[1],
            name=row[2],
            spec=row[3],
            status=row[4],
            owner=row[5],
            complexity=row[6],
            priority=row[7],
            first_todo_at=_parse_ts(row[8]),
            first_doing_at=_parse_ts(row[9]),
            first_done_at=_parse_ts(row[10]),
        )
