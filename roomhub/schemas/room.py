"""
roomhub.schemas.room
~~~~~~~~~~~~~~~~~~~~

房间相关的 Pydantic 请求/响应模型。

``RoomInfo`` 只在 ``RoomRegistry`` 内部使用（含密码哈希），
所有对外返回的房间都是不含哈希的 ``RoomPublic``。
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from roomhub.schemas.common import CamelModel
from roomhub.schemas.participant import GenerationConfig, MachineSpecs, ParticipantInfo


class RoomPublic(CamelModel):
    """对外暴露的房间信息。"""

    id: str = Field(..., description="房间唯一标识")
    code: str = Field(..., description="6 位大写房间码")
    name: str = Field(..., description="房间名")
    host_id: str = Field(..., description="创建者标识")
    created_at: int = Field(..., description="创建时间戳（毫秒）")


class RoomInfo(RoomPublic):
    """注册表内部的房间记录。"""

    password_hash: str | None = None

    def public(self) -> RoomPublic:
        return RoomPublic.model_validate(self.model_dump(exclude={"password_hash"}))


class RoomSummary(RoomPublic):
    """房间列表项，附带参与者数量。"""

    participant_count: int = Field(..., description="当前参与者数量（含离线）")


# ── 请求体 ────────────────────────────────────────────────────────────

class CreateRoomRequest(BaseModel):
    """创建房间请求体。"""

    name: str = ""
    password: str | None = None


class JoinRoomRequest(BaseModel):
    """加入房间请求体。必填字段的校验放在服务层，以保证先判断房间是否存在。"""

    id: str = ""
    nickname: str = ""
    model: str = ""
    endpoint: str = ""
    password: str | None = None
    specs: MachineSpecs | None = None
    config: GenerationConfig | None = None


class HealthCheckRequest(BaseModel):
    """参与者心跳请求体。"""

    id: str = ""


# ── 响应体 ────────────────────────────────────────────────────────────

class CreateRoomResponse(CamelModel):
    room: RoomPublic
    host_id: str


class RoomListResponse(CamelModel):
    rooms: list[RoomSummary]


class JoinRoomResponse(CamelModel):
    participant: ParticipantInfo
    room_id: str


class ParticipantListResponse(CamelModel):
    participants: list[ParticipantInfo]
