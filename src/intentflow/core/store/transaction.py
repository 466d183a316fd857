"""事务封装

所有 Store 共享同一个 aiosqlite 连接，写操作必须通过 transaction() 进入：
- asyncio.Lock 串行化对共享连接的访问
- BEGIN IMMEDIATE 提前获取 SQLite 写锁
- 成功提交，任何异常回滚并原样抛出
- ContextVar 记录当前协程是否已在事务内，嵌套调用直接加入外层事务

SQLite 的 locked/busy 错误转换为可重试的 StoreBusyError。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from itertools import count

import aiosqlite
import structlog

from ..errors import StoreBusyError

log = structlog.get_logger()

_READ = "read"
_WRITE = "write"

_manager_ids = count(1)


def _is_busy_error(exc: BaseException) -> bool:
    if not isinstance(exc, aiosqlite.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


class TransactionManager:
    """共享连接上的事务管理器"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._lock = asyncio.Lock()
        self._mode: ContextVar[str | None] = ContextVar(
            f"intentflow_tx_mode_{next(_manager_ids)}", default=None
        )

    @property
    def in_transaction(self) -> bool:
        return self._mode.get() == _WRITE

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """写事务：最外层负责 BEGIN / COMMIT / ROLLBACK，嵌套调用加入外层"""
        mode = self._mode.get()
        if mode == _WRITE:
            yield
            return
        if mode == _READ:
            raise RuntimeError("Cannot open a write transaction inside a read block")

        async with self._lock:
            token = self._mode.set(_WRITE)
            try:
                try:
                    await self._conn.execute("BEGIN IMMEDIATE")
                except aiosqlite.OperationalError as exc:
                    if _is_busy_error(exc):
                        await log.awarning("store_busy", phase="begin", error=str(exc))
                        raise StoreBusyError() from exc
                    raise

                try:
                    yield
                    await self._conn.commit()
                except BaseException as exc:
                    await self._conn.rollback()
                    if _is_busy_error(exc):
                        await log.awarning("store_busy", phase="write", error=str(exc))
                        raise StoreBusyError() from exc
                    raise
            finally:
                self._mode.reset(token)

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        """只读访问：持有连接锁但不开启事务；已在事务或读块内时直接复用"""
        if self._mode.get() is not None:
            yield
            return

        async with self._lock:
            token = self._mode.set(_READ)
            try:
                yield
            except aiosqlite.OperationalError as exc:
                if _is_busy_error(exc):
                    raise StoreBusyError() from exc
                raise
            finally:
                self._mode.reset(token)
