"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用 ``httpx.MockTransport`` 伪造参与者的推理服务，
使测试可在无网络环境下快速运行。
"""
from __future__ import annotations

import asyncio
import json
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")

from fastapi import FastAPI  # noqa: E402

from roomhub.core.config import Settings  # noqa: E402
from roomhub.core.security import PasswordGuard  # noqa: E402
from roomhub.main import create_app  # noqa: E402
from roomhub.schemas.common import now_ms  # noqa: E402
from roomhub.schemas.events import HubEvent, decode_sse  # noqa: E402
from roomhub.schemas.participant import ParticipantInfo  # noqa: E402
from roomhub.services.event_bus import EventBus, EventStream  # noqa: E402
from roomhub.services.hub import Hub  # noqa: E402
from roomhub.services.room_registry import RoomRegistry  # noqa: E402

# bcrypt 最低成本因子，测试只关心正确性
FAST_BCRYPT_ROUNDS: int = 4


def make_participant(**overrides: Any) -> ParticipantInfo:
    """构造测试用参与者，字段可按需覆盖。"""
    now = now_ms()
    data: dict[str, Any] = {
        "id": "p1",
        "nickname": "bot",
        "model": "llama3",
        "endpoint": "http://localhost:11434",
        "status": "online",
        "joined_at": now,
        "last_seen": now,
    }
    data.update(overrides)
    return ParticipantInfo(**data)


async def drain_events(stream: EventStream, bus: EventBus) -> list[HubEvent]:
    """关闭事件总线后读出事件流中积压的全部事件。"""
    bus.close_all()
    frames = [frame async for frame in stream]
    return [decode_sse(frame) for frame in frames]


class FakeUpstream:
    """伪造的参与者推理服务。

    记录收到的每个请求体；``responder`` 决定如何应答，
    默认返回一个带 ``usage`` 的标准 Chat Completion。
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.payloads: list[dict[str, Any]] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = self.default_response
        self.on_request: Callable[[httpx.Request], None] | None = None

    @staticmethod
    def default_response(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "chatcmpl-1",
                "object": "chat.completion",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "hi"}}],
                "usage": {"prompt_tokens": 3, "completion_tokens": 5, "total_tokens": 8},
            },
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.payloads.append(json.loads(request.content or b"{}"))
        if self.on_request is not None:
            self.on_request(request)
        return self.responder(request)


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(ENVIRONMENT="test", BCRYPT_ROUNDS=FAST_BCRYPT_ROUNDS)


@pytest.fixture()
def registry() -> RoomRegistry:
    return RoomRegistry(PasswordGuard(rounds=FAST_BCRYPT_ROUNDS))


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def app(test_settings: Settings, upstream: FakeUpstream) -> FastAPI:
    return create_app(test_settings, transport=httpx.MockTransport(upstream.handle))


@pytest.fixture()
def hub(app: FastAPI) -> Hub:
    return app.state.hub


@pytest_asyncio.fixture()
async def client(app: FastAPI, hub: Hub) -> AsyncGenerator[httpx.AsyncClient, None]:
    """指向应用的 ASGI 客户端；测试结束时关闭 Hub。"""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://hub.test") as http_client:
        yield http_client
    await hub.close()


async def create_room(client: httpx.AsyncClient, name: str = "Test Room", **extra: Any) -> dict[str, Any]:
    res = await client.post("/rooms", json={"name": name, **extra})
    assert res.status_code == 201
    return res.json()["room"]


async def join_room(client: httpx.AsyncClient, code: str, **fields: Any) -> httpx.Response:
    body: dict[str, Any] = {
        "id": "p1",
        "nickname": "bot",
        "model": "llama3",
        "endpoint": "http://localhost:11434",
    }
    body.update(fields)
    return await client.post(f"/rooms/{code}/join", json=body)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """轮询等待条件成立，超时则测试失败。"""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
