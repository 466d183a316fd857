"""变更推送路由

GET /api/stream: SSE 推送任务变更（task_changed），空闲时发送心跳注释。
WS  /ws:         WebSocket 推送同样的变更消息；客户端发送 {"type": "ping"} 得到 pong。
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from sse_starlette.sse import EventSourceResponse

from intentflow.core.config import STREAM_HEARTBEAT_INTERVAL

from ..deps import get_change_hub

log = structlog.get_logger()

router = APIRouter()


@router.get("/api/stream")
async def stream_changes(request: Request, change_hub=Depends(get_change_hub)):
    """SSE 事件流端点"""
    queue = await change_hub.subscribe()

    async def event_generator():
        try:
            yield {
                "event": "connected",
                "data": json.dumps({"type": "connected"}),
            }
            while True:
                if await request.is_disconnected():
                    return
                try:
                    message = await asyncio.wait_for(
                        queue.get(), timeout=STREAM_HEARTBEAT_INTERVAL
                    )
                    yield {
                        "event": message["type"],
                        "data": json.dumps(message, ensure_ascii=False),
                    }
                    if queue.empty() and not change_hub.is_subscribed(queue):
                        await log.awarning("sse_subscriber_dropped")
                        return
                except TimeoutError:
                    # 心跳保活
                    yield {"comment": "heartbeat"}
        finally:
            await change_hub.unsubscribe(queue)

    return EventSourceResponse(event_generator())


# 订阅队列被 ChangeHub 移除（消费过慢）时使用的关闭码
WS_CLOSE_TRY_AGAIN_LATER = 1013


async def _pump_changes(websocket: WebSocket, change_hub, queue: asyncio.Queue) -> None:
    """把队列中的变更推给客户端；队列被移除且已排空时关闭连接"""
    while True:
        message = await queue.get()
        await websocket.send_json(message)
        if queue.empty() and not change_hub.is_subscribed(queue):
            await log.awarning("websocket_subscriber_dropped")
            await websocket.close(code=WS_CLOSE_TRY_AGAIN_LATER)
            return


async def _receive_pings(websocket: WebSocket) -> None:
    while True:
        incoming = await websocket.receive_json()
        if isinstance(incoming, dict) and incoming.get("type") == "ping":
            await websocket.send_json({"type": "pong"})


@router.websocket("/ws")
async def websocket_changes(websocket: WebSocket):
    """WebSocket 变更推送"""
    change_hub = websocket.app.state.change_hub
    await websocket.accept()
    queue = await change_hub.subscribe()
    tasks: set[asyncio.Task] = set()
    try:
        await websocket.send_json(
            {
                "type": "hello",
                "session_id": websocket.app.state.store_group.session_id,
            }
        )
        tasks = {
            asyncio.create_task(_pump_changes(websocket, change_hub, queue)),
            asyncio.create_task(_receive_pings(websocket)),
        }
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if isinstance(exc, WebSocketDisconnect):
                await log.ainfo("websocket_disconnected")
            elif exc is not None:
                await log.awarning(
                    "websocket_failed", error_type=type(exc).__name__, error=str(exc)
                )
    except WebSocketDisconnect:
        await log.ainfo("websocket_disconnected")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await change_hub.unsubscribe(queue)
