"""ChangeHub -- 内存中任务变更广播器

每个订阅者（WebSocket / SSE 连接）持有一个 asyncio.Queue。
广播为即发即弃：队列已满的订阅者直接移除，不影响写操作本身。
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import structlog

from intentflow.core.config import WS_QUEUE_SIZE

log = structlog.get_logger()


class ChangeHub:
    """任务变更广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = WS_QUEUE_SIZE) -> None:
        self._subscribers: set[asyncio.Queue] = set()
        self._queue_maxsize = queue_maxsize

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> asyncio.Queue:
        """订阅变更流

        Returns:
            asyncio.Queue 实例，变更消息会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers.add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        """取消订阅"""
        self._subscribers.discard(queue)

    def is_subscribed(self, queue: asyncio.Queue) -> bool:
        """队列是否仍在订阅中（队列满被移除后返回 False）"""
        return queue in self._subscribers

    async def broadcast(self, operation: str, task_ids: list[int]) -> dict[str, Any]:
        """向所有订阅者广播一次变更

        Args:
            operation: 触发变更的操作名（start / done / plan ...）
            task_ids: 受影响的任务 ID

        Returns:
            广播的消息体
        """
        message = {
            "type": "task_changed",
            "operation": operation,
            "task_ids": task_ids,
            "ts": datetime.now(UTC).isoformat(),
        }
        dead_queues = []
        for queue in self._subscribers:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        # 清理已满的队列
        for q in dead_queues:
            self._subscribers.discard(q)
        if dead_queues:
            log.warning("change_subscribers_dropped", count=len(dead_queues))
        return message
