"""
roomhub.services.hub
~~~~~~~~~~~~~~~~~~~~

Hub 业务服务 —— 组合根，持有注册表、事件总线、路由器、代理和存活巡检。

每个 FastAPI 应用在 ``create_app()`` 中构造一个 ``Hub`` 并挂载于
``app.state.hub``，路由层通过 ``Depends(get_hub)`` 取用。
同一进程内可以同时存在多个互不干扰的 Hub（测试常用）。
"""
from __future__ import annotations

import uuid

import httpx
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from roomhub.core.config import Settings
from roomhub.core.errors import AuthError, NotFound, ValidationError
from roomhub.core.logging import get_logger
from roomhub.core.security import PasswordGuard
from roomhub.schemas.events import (
    ParticipantJoinedEvent,
    ParticipantLeftEvent,
    ParticipantOfflineEvent,
    RoomCreatedEvent,
)
from roomhub.schemas.openai import ChatCompletionRequest, ModelCard, ModelListResponse, ModelMetadata
from roomhub.schemas.participant import ParticipantInfo, create_participant
from roomhub.schemas.room import (
    CreateRoomResponse,
    JoinRoomRequest,
    JoinRoomResponse,
    RoomPublic,
    RoomSummary,
)
from roomhub.services.event_bus import EventBus, EventStream
from roomhub.services.liveness import LivenessMonitor
from roomhub.services.proxy import ChatProxy
from roomhub.services.room_registry import RoomRegistry, StaleParticipant
from roomhub.services.router import RequestRouter

logger = get_logger(__name__)


def _check_endpoint(endpoint: str) -> None:
    """参与者端点必须是带主机名的 http(s) 绝对地址。"""
    try:
        url = httpx.URL(endpoint)
    except httpx.InvalidURL as exc:
        raise ValidationError(f"Invalid endpoint: {exc}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ValidationError("Invalid endpoint: expected an http(s) URL")


class Hub:
    """Hub 组合根。

    - ``create_room`` / ``list_rooms``                 → 房间管理
    - ``join_room`` / ``leave_room`` / ``heartbeat``   → 参与者生命周期
    - ``list_models`` / ``proxy_chat_completion``      → OpenAI 兼容接口
    - ``subscribe``                                    → SSE 事件流
    - ``start`` / ``close``                            → 进程生命周期

    Attributes:
        settings: 本 Hub 使用的配置。
        registry: 房间注册表。
        event_bus: SSE 事件总线。
        router: 选择器解析器。
        proxy: Chat Completions 代理。
        monitor: 存活巡检器。
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.registry = RoomRegistry(PasswordGuard(rounds=settings.BCRYPT_ROUNDS))
        self.event_bus = EventBus(queue_size=settings.SSE_QUEUE_SIZE)
        self.router = RequestRouter(self.registry)
        self.http_client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(None, connect=settings.PROXY_CONNECT_TIMEOUT),
        )
        self.proxy = ChatProxy(self.registry, self.router, self.event_bus, self.http_client)
        self.monitor = LivenessMonitor(
            self.registry,
            interval_ms=settings.HEALTH_CHECK_INTERVAL_MS,
            timeout_ms=settings.participant_timeout_ms,
            on_stale=self._broadcast_offline,
        )

    # ── 生命周期 ──────────────────────────────────────────────────────

    def start(self) -> None:
        self.monitor.start()

    async def close(self) -> None:
        """停止巡检、关闭所有事件流、清空状态并释放上游连接池。"""
        await self.monitor.stop()
        self.event_bus.close_all()
        self.registry.clear()
        await self.http_client.aclose()

    # ── 房间 ──────────────────────────────────────────────────────────

    async def create_room(self, name: str, password: str | None = None) -> CreateRoomResponse:
        host_id = str(uuid.uuid4())
        # bcrypt 哈希较慢，放到线程池避免阻塞事件循环
        room = await run_in_threadpool(self.registry.create, name, host_id, password)
        self.event_bus.broadcast(RoomCreatedEvent(**room.model_dump()))
        return CreateRoomResponse(room=room, host_id=host_id)

    def list_rooms(self) -> list[RoomSummary]:
        return self.registry.list_with_participant_count()

    def require_room(self, code: str) -> RoomPublic:
        room = self.registry.get_by_code(code)
        if room is None:
            raise NotFound("Room not found")
        return room

    # ── 参与者 ────────────────────────────────────────────────────────

    async def join_room(self, code: str, body: JoinRoomRequest) -> JoinRoomResponse:
        """加入房间。校验顺序：房间存在 → 必填字段 → 端点格式 → 密码。"""
        room = self.require_room(code)

        if not (body.id and body.nickname and body.model and body.endpoint):
            raise ValidationError("Missing required fields: id, nickname, model, endpoint")
        _check_endpoint(body.endpoint)

        if not await run_in_threadpool(self.registry.validate_password, room.id, body.password):
            raise AuthError("Invalid password")

        participant = create_participant(
            nickname=body.nickname,
            model=body.model,
            endpoint=body.endpoint,
            specs=body.specs,
            config=body.config,
            participant_id=body.id,
        )
        if not self.registry.add_participant(room.id, participant):
            raise NotFound("Room not found")

        logger.info("参与者加入 | room=%s | participant=%s | model=%s", room.code, participant.id, participant.model)
        self.event_bus.broadcast(ParticipantJoinedEvent(**participant.model_dump()), room.code)
        return JoinRoomResponse(participant=participant, room_id=room.id)

    def leave_room(self, code: str, participant_id: str) -> None:
        room = self.require_room(code)
        if not self.registry.remove_participant(room.id, participant_id):
            raise NotFound("Participant not found")
        logger.info("参与者离开 | room=%s | participant=%s", room.code, participant_id)
        self.event_bus.broadcast(ParticipantLeftEvent(participant_id=participant_id), room.code)

    def heartbeat(self, code: str, participant_id: str) -> None:
        room = self.require_room(code)
        if not participant_id:
            raise ValidationError("Participant ID is required")
        if not self.registry.update_last_seen(room.id, participant_id):
            raise NotFound("Participant not found")

    def list_participants(self, code: str) -> list[ParticipantInfo]:
        room = self.require_room(code)
        return self.registry.get_participants(room.id)

    # ── OpenAI 兼容接口 ───────────────────────────────────────────────

    def list_models(self, code: str) -> ModelListResponse:
        """每个在线参与者对应一个模型条目，ID 即参与者 ID。"""
        room = self.require_room(code)
        cards = [
            ModelCard(
                id=p.id,
                created=p.joined_at // 1000,
                owned_by=p.nickname,
                roomhub=ModelMetadata(nickname=p.nickname, model=p.model, endpoint=p.endpoint),
            )
            for p in self.registry.get_participants(room.id)
            if p.status == "online"
        ]
        return ModelListResponse(data=cards)

    async def proxy_chat_completion(self, code: str, request: ChatCompletionRequest) -> Response:
        room = self.require_room(code)
        return await self.proxy.proxy_chat_completion(room, request)

    # ── 事件流 ────────────────────────────────────────────────────────

    def subscribe(self, code: str | None = None) -> EventStream:
        """打开事件流；指定房间码时只接收该房间的事件。"""
        room_code = self.require_room(code).code if code is not None else None
        return self.event_bus.subscribe(str(uuid.uuid4()), room_code)

    # ── 内部 ──────────────────────────────────────────────────────────

    def _broadcast_offline(self, stale: list[StaleParticipant]) -> None:
        for item in stale:
            room = self.registry.get(item.room_id)
            if room is None:
                continue
            logger.info("参与者离线 | room=%s | participant=%s", room.code, item.participant_id)
            self.event_bus.broadcast(ParticipantOfflineEvent(participant_id=item.participant_id), room.code)
