"""
roomhub.services.event_bus
~~~~~~~~~~~~~~~~~~~~~~~~~~

SSE 事件总线 —— 维护在线订阅者列表，把 Hub 的状态变化扇出给所有观察者。

每个订阅者持有一个独立的有界队列:
  - ``broadcast()`` 只做 ``put_nowait``，从不阻塞调用方
  - 队列写满或已关闭的订阅者直接被移除，不会影响其它订阅者
  - 传输层（``StreamingResponse``）负责把队列中的帧写给客户端
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from roomhub.core.logging import get_logger
from roomhub.schemas.events import ConnectedEvent, HubEvent, encode_sse

logger = get_logger(__name__)

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


@dataclass
class SSEClient:
    """一个已连接的 SSE 订阅者。"""

    id: str
    queue: asyncio.Queue[str | None]
    room_code: str | None = None
    closed: bool = field(default=False)

    def accepts(self, room_code: str | None) -> bool:
        """未限定房间的广播发给所有人；未限定房间的订阅者接收所有房间的事件。"""
        return room_code is None or self.room_code is None or self.room_code == room_code


class EventStream:
    """``subscribe()`` 返回的可消费事件流，逐帧产出已编码的 SSE 文本。"""

    def __init__(self, bus: EventBus, client: SSEClient) -> None:
        self._bus = bus
        self._client = client

    @property
    def client_id(self) -> str:
        return self._client.id

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            while True:
                if self._client.closed and self._client.queue.empty():
                    break
                frame = await self._client.queue.get()
                if frame is None:
                    break
                yield frame
        finally:
            self._bus.unsubscribe(self._client.id)

    async def aclose(self) -> None:
        self._bus.unsubscribe(self._client.id)


class EventBus:
    """SSE 事件总线。

    Attributes:
        queue_size: 每个订阅者的待发送帧上限。
    """

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self._clients: dict[str, SSEClient] = {}

    def subscribe(self, client_id: str, room_code: str | None = None) -> EventStream:
        """注册订阅者，并保证其收到的第一帧是 ``connected`` 事件。"""
        client = SSEClient(
            id=client_id,
            queue=asyncio.Queue(maxsize=self.queue_size),
            room_code=room_code.upper() if room_code else None,
        )
        client.queue.put_nowait(encode_sse(ConnectedEvent(client_id=client_id)))
        self._clients[client_id] = client
        logger.info("SSE 客户端已连接 | client=%s | room=%s | 在线: %d", client_id, room_code, len(self._clients))
        return EventStream(self, client)

    def unsubscribe(self, client_id: str) -> None:
        client = self._clients.pop(client_id, None)
        if client is not None:
            self._close(client)
            logger.info("SSE 客户端已断开 | client=%s | 在线: %d", client_id, len(self._clients))

    @staticmethod
    def _close(client: SSEClient) -> None:
        client.closed = True
        try:
            client.queue.put_nowait(None)
        except asyncio.QueueFull:
            # 消费端读完剩余帧后会因 closed 标记退出
            pass

    def broadcast(self, event: HubEvent, room_code: str | None = None) -> int:
        """向所有匹配的订阅者推送事件。

        Args:
            event: 要推送的事件。
            room_code: 限定房间码；``None`` 表示推送给所有订阅者。

        Returns:
            成功入队的订阅者数量。
        """
        frame = encode_sse(event)
        scope = room_code.upper() if room_code else None
        delivered = 0
        for client in list(self._clients.values()):
            if not client.accepts(scope):
                continue
            if client.closed:
                self.unsubscribe(client.id)
                continue
            try:
                client.queue.put_nowait(frame)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("SSE 客户端队列已满，移除 | client=%s", client.id)
                self.unsubscribe(client.id)
        return delivered

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def close_all(self) -> None:
        """结束所有事件流（Hub 关闭时调用）。"""
        for client in list(self._clients.values()):
            self._close(client)
        self._clients.clear()
        logger.info("所有 SSE 客户端已关闭")
