"""
roomhub.api.rooms
~~~~~~~~~~~~~~~~~

房间 REST 接口 —— 房间管理 + 参与者生命周期。

端点:
  - ``POST   /rooms``                       → 创建房间
  - ``GET    /rooms``                       → 房间列表（含参与者数）
  - ``POST   /rooms/{code}/join``           → 参与者加入
  - ``DELETE /rooms/{code}/leave/{id}``     → 参与者离开
  - ``POST   /rooms/{code}/health``         → 参与者心跳
  - ``GET    /rooms/{code}/participants``   → 参与者列表
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from roomhub.api.deps import get_hub
from roomhub.schemas.api_response import SuccessResponse
from roomhub.schemas.room import (
    CreateRoomRequest,
    CreateRoomResponse,
    HealthCheckRequest,
    JoinRoomRequest,
    JoinRoomResponse,
    ParticipantListResponse,
    RoomListResponse,
)
from roomhub.services.hub import Hub

router: APIRouter = APIRouter()


# ── 房间管理端点 ──────────────────────────────────────────────────────

@router.post("/rooms", status_code=201, summary="创建房间", response_model=CreateRoomResponse)
async def create_room(body: CreateRoomRequest, hub: Hub = Depends(get_hub)):
    """创建房间并返回房间信息与 hostId。密码为空时房间不加密。"""
    return await hub.create_room(body.name, body.password)


@router.get("/rooms", summary="获取房间列表", response_model=RoomListResponse)
async def list_rooms(hub: Hub = Depends(get_hub)):
    return RoomListResponse(rooms=hub.list_rooms())


# ── 参与者端点 ────────────────────────────────────────────────────────

@router.post("/rooms/{code}/join", status_code=201, summary="加入房间", response_model=JoinRoomResponse)
async def join_room(code: str, body: JoinRoomRequest, hub: Hub = Depends(get_hub)):
    """把一个 OpenAI 兼容端点注册为房间参与者。

    Args:
        code: 房间码（不区分大小写）。
        body: 参与者信息，``password`` 仅在房间加密时需要。
    """
    return await hub.join_room(code, body)


@router.delete("/rooms/{code}/leave/{participant_id}", summary="离开房间", response_model=SuccessResponse)
async def leave_room(code: str, participant_id: str, hub: Hub = Depends(get_hub)):
    hub.leave_room(code, participant_id)
    return SuccessResponse()


@router.post("/rooms/{code}/health", summary="参与者心跳", response_model=SuccessResponse)
async def heartbeat(code: str, body: HealthCheckRequest, hub: Hub = Depends(get_hub)):
    """刷新参与者的 lastSeen，离线参与者借此恢复 online。"""
    hub.heartbeat(code, body.id)
    return SuccessResponse()


@router.get("/rooms/{code}/participants", summary="获取参与者列表", response_model=ParticipantListResponse)
async def list_participants(code: str, hub: Hub = Depends(get_hub)):
    return ParticipantListResponse(participants=hub.list_participants(code))
