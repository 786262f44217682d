"""
roomhub.api.events
~~~~~~~~~~~~~~~~~~

SSE 实时事件接口 —— 仪表盘和 SDK 通过它接收状态变化，无需轮询。

端点:
  - ``GET /rooms/{code}/events``  → 只接收指定房间的事件
  - ``GET /events``               → 接收所有房间的事件

客户端断开后 Starlette 会取消响应生成器，事件流随之注销订阅者。
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from roomhub.api.deps import get_hub
from roomhub.services.event_bus import SSE_HEADERS, EventStream
from roomhub.services.hub import Hub

router: APIRouter = APIRouter()


def _sse_response(stream: EventStream) -> StreamingResponse:
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/rooms/{code}/events", summary="订阅房间事件")
async def room_events(code: str, hub: Hub = Depends(get_hub)):
    return _sse_response(hub.subscribe(code))


@router.get("/events", summary="订阅所有房间事件")
async def all_events(hub: Hub = Depends(get_hub)):
    return _sse_response(hub.subscribe())
