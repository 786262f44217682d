"""
roomhub.schemas.events
~~~~~~~~~~~~~~~~~~~~~~

SSE 推送事件 —— 以 ``event`` 字段为判别键的标签联合。

新增事件类型时，只需定义新模型并加入 ``HubEvent`` 联合。
线上帧格式::

    event: <name>
    data: <json>

"""
from __future__ import annotations

import json
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from roomhub.schemas.common import CamelModel
from roomhub.schemas.participant import LlmMetrics, ParticipantInfo
from roomhub.schemas.room import RoomPublic


class ConnectedEvent(CamelModel):
    event: Literal["connected"] = "connected"
    client_id: str


class RoomCreatedEvent(RoomPublic):
    event: Literal["room:created"] = "room:created"


class ParticipantJoinedEvent(ParticipantInfo):
    event: Literal["participant:joined"] = "participant:joined"


class ParticipantLeftEvent(CamelModel):
    event: Literal["participant:left"] = "participant:left"
    participant_id: str


class ParticipantOfflineEvent(CamelModel):
    event: Literal["participant:offline"] = "participant:offline"
    participant_id: str


class LlmRequestEvent(CamelModel):
    event: Literal["llm:request"] = "llm:request"
    participant_id: str
    model: str = Field(..., description="调用方请求的模型选择器")


class LlmCompleteEvent(CamelModel):
    event: Literal["llm:complete"] = "llm:complete"
    participant_id: str
    metrics: LlmMetrics | None = None


class LlmErrorEvent(CamelModel):
    event: Literal["llm:error"] = "llm:error"
    participant_id: str
    error: str


HubEvent = Annotated[
    Union[
        ConnectedEvent,
        RoomCreatedEvent,
        ParticipantJoinedEvent,
        ParticipantLeftEvent,
        ParticipantOfflineEvent,
        LlmRequestEvent,
        LlmCompleteEvent,
        LlmErrorEvent,
    ],
    Field(discriminator="event"),
]

_event_adapter: TypeAdapter[HubEvent] = TypeAdapter(HubEvent)


def encode_sse(event: HubEvent) -> str:
    """把事件编码为一帧 SSE 文本。"""
    data = event.model_dump(mode="json", by_alias=True, exclude={"event"}, exclude_none=True)
    return f"event: {event.event}\ndata: {json.dumps(data)}\n\n"


def decode_sse(frame: str) -> HubEvent:
    """把一帧 SSE 文本解析回事件模型（供订阅方和测试使用）。"""
    name = ""
    data = ""
    for line in frame.strip().splitlines():
        if line.startswith("event:"):
            name = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data += line[len("data:"):].strip()
    payload = json.loads(data) if data else {}
    payload["event"] = name
    return _event_adapter.validate_python(payload)
