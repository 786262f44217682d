"""
roomhub.services.proxy
~~~~~~~~~~~~~~~~~~~~~~

Chat Completions 代理 —— 把请求转发给选中参与者自己的 OpenAI 兼容服务。

流程:
  1. 解析选择器并把参与者从 online 原子切换为 busy
  2. 广播 ``llm:request``（在发起上游请求之前）
  3. 改写 ``model`` 为参与者的真实模型名后转发
  4. 流式请求逐块透传上游响应体；非流式请求缓冲完整 JSON 后返回
  5. 上游不可达或中途断开时广播 ``llm:error``，成功时广播 ``llm:complete``
  6. 无论成功失败，最后都把参与者从 busy 切回 online

代理过程中不持有注册表锁；除传输层的连接超时外不做超时、重试或熔断。
"""
from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any, NoReturn

import httpx
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from roomhub.core.errors import ParticipantOffline, ProxyFailure
from roomhub.core.logging import get_logger
from roomhub.schemas.events import LlmCompleteEvent, LlmErrorEvent, LlmRequestEvent
from roomhub.schemas.openai import ChatCompletionRequest
from roomhub.schemas.participant import LlmMetrics, ParticipantInfo
from roomhub.schemas.room import RoomPublic
from roomhub.services.event_bus import SSE_HEADERS, EventBus
from roomhub.services.room_registry import RoomRegistry
from roomhub.services.router import RequestRouter

logger = get_logger(__name__)

CHAT_COMPLETIONS_PATH: str = "/v1/chat/completions"


def build_upstream_payload(
    participant: ParticipantInfo, request: ChatCompletionRequest,
) -> dict[str, Any]:
    """构造发往上游的请求体。

    参与者的默认采样参数只填充调用方未设置的字段，
    ``model`` 总是改写为参与者的真实模型名。
    """
    payload = request.model_dump(exclude_unset=True)
    defaults = participant.generation_config.model_dump(exclude_none=True)
    for key, value in defaults.items():
        payload.setdefault(key, value)
    payload["model"] = participant.model
    return payload


def metrics_from_usage(data: Any, duration_ms: float) -> LlmMetrics | None:
    """从 OpenAI 风格的 ``usage`` 字段计算生成指标，缺失时返回 ``None``。"""
    if not isinstance(data, dict):
        return None
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None
    tokens = usage.get("completion_tokens")
    if not isinstance(tokens, int):
        return None
    seconds = duration_ms / 1000
    return LlmMetrics(
        tokens=tokens,
        latency_first_token_ms=duration_ms,
        duration_ms=duration_ms,
        tokens_per_second=tokens / seconds if seconds > 0 else 0.0,
    )


def _describe(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class UpstreamRelay:
    """把上游流式响应体逐块转交给调用方。

    上游连接的关闭和参与者的释放集中在 ``aclose()`` 中，且只执行一次。
    无论响应体是读完、中途断开，还是从未开始迭代，都会走到这里。
    """

    def __init__(
        self,
        proxy: ChatProxy,
        room: RoomPublic,
        participant: ParticipantInfo,
        upstream: httpx.Response,
    ) -> None:
        self.proxy = proxy
        self.room = room
        self.participant = participant
        self.upstream = upstream
        self.closed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._relay()

    async def _relay(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.upstream.aiter_raw():
                yield chunk
        except httpx.HTTPError as exc:
            # 响应头已发出，只能结束流并通知观察者
            logger.warning("上游流中断 | participant=%s | %s", self.participant.id, _describe(exc))
            self.proxy.bus.broadcast(
                LlmErrorEvent(participant_id=self.participant.id, error=_describe(exc)), self.room.code,
            )
        else:
            if self.upstream.is_success:
                self.proxy.bus.broadcast(LlmCompleteEvent(participant_id=self.participant.id), self.room.code)
            else:
                self.proxy.report_status_error(self.room, self.participant, self.upstream.status_code)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.upstream.aclose()
        finally:
            self.proxy.release(self.room, self.participant)


class RelayResponse(StreamingResponse):
    """发送失败或被取消时也会关闭 ``UpstreamRelay`` 的流式响应。"""

    body_iterator: UpstreamRelay

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.body_iterator.aclose()


class ChatProxy:
    """Chat Completions 代理。

    Attributes:
        registry: 房间注册表（用于 busy/online 状态切换）。
        router: 选择器解析器。
        bus: 生命周期事件的广播通道。
        client: 共享的上游 HTTP 连接池。
    """

    def __init__(
        self,
        registry: RoomRegistry,
        router: RequestRouter,
        bus: EventBus,
        client: httpx.AsyncClient,
    ) -> None:
        self.registry = registry
        self.router = router
        self.bus = bus
        self.client = client

    async def proxy_chat_completion(
        self, room: RoomPublic, request: ChatCompletionRequest,
    ) -> Response:
        """把一次 Chat Completions 请求代理给房间内的某个参与者。

        Raises:
            NoAvailableParticipant: 选择器没有匹配的参与者。
            ParticipantOffline: 匹配的参与者离线或正忙。
            ProxyFailure: 上游不可达或返回了无法解析的响应。
        """
        selector = request.model
        participant = self.router.resolve(room.id, selector)
        if not self.registry.transition_status(room.id, participant.id, "online", "busy"):
            raise ParticipantOffline()

        self.bus.broadcast(
            LlmRequestEvent(participant_id=participant.id, model=selector), room.code,
        )
        url = f"{participant.endpoint.rstrip('/')}{CHAT_COMPLETIONS_PATH}"
        payload = build_upstream_payload(participant, request)
        logger.info(
            "代理请求 | room=%s | selector=%s | participant=%s | stream=%s",
            room.code, selector, participant.id, request.stream,
        )

        if request.stream:
            return await self._stream(room, participant, url, payload)

        try:
            return await self._forward(room, participant, url, payload)
        finally:
            self.release(room, participant)

    async def _forward(
        self, room: RoomPublic, participant: ParticipantInfo, url: str, payload: dict[str, Any],
    ) -> JSONResponse:
        started = time.perf_counter()
        try:
            response = await self.client.post(url, json=payload)
            data = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            self._fail(room, participant, exc)
        duration_ms = (time.perf_counter() - started) * 1000

        if response.is_success:
            self.bus.broadcast(
                LlmCompleteEvent(
                    participant_id=participant.id,
                    metrics=metrics_from_usage(data, duration_ms),
                ),
                room.code,
            )
        else:
            self.report_status_error(room, participant, response.status_code)
        return JSONResponse(data, status_code=response.status_code, headers={"Access-Control-Allow-Origin": "*"})

    async def _stream(
        self, room: RoomPublic, participant: ParticipantInfo, url: str, payload: dict[str, Any],
    ) -> StreamingResponse:
        try:
            upstream_request = self.client.build_request("POST", url, json=payload)
            upstream = await self.client.send(upstream_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self.release(room, participant)
            self._fail(room, participant, exc)

        relay = UpstreamRelay(self, room, participant, upstream)
        return RelayResponse(
            relay,
            status_code=upstream.status_code,
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    def _fail(self, room: RoomPublic, participant: ParticipantInfo, exc: Exception) -> NoReturn:
        error = _describe(exc)
        logger.warning("代理失败 | room=%s | participant=%s | %s", room.code, participant.id, error)
        self.bus.broadcast(LlmErrorEvent(participant_id=participant.id, error=error), room.code)
        raise ProxyFailure(f"Failed to proxy request: {error}") from exc

    def report_status_error(self, room: RoomPublic, participant: ParticipantInfo, status_code: int) -> None:
        logger.warning("上游返回错误状态 | participant=%s | status=%d", participant.id, status_code)
        self.bus.broadcast(
            LlmErrorEvent(
                participant_id=participant.id,
                error=f"Upstream responded with status {status_code}",
            ),
            room.code,
        )

    def release(self, room: RoomPublic, participant: ParticipantInfo) -> None:
        # 巡检可能已在代理期间把参与者标记为 offline，此时保持 offline
        self.registry.transition_status(room.id, participant.id, "busy", "online")
