"""
roomhub.services.room_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间与参与者注册表 —— Hub 的全部业务状态都保存在这里（纯内存，重启即丢失）。

每个 Hub 实例持有一个独立的 ``RoomRegistry``。所有读写都在同一把
``RLock`` 下完成，包括"先遍历再修改"的复合操作（过期巡检、随机挑选），
保证并发的加入/离开/路由不会读到中间状态。锁内不做任何 I/O。
"""
from __future__ import annotations

import random
import secrets
import string
import threading
import uuid
from dataclasses import dataclass

from roomhub.core.errors import ValidationError
from roomhub.core.logging import get_logger
from roomhub.core.security import PasswordGuard
from roomhub.schemas.common import now_ms
from roomhub.schemas.participant import ParticipantInfo, ParticipantStatus
from roomhub.schemas.room import RoomInfo, RoomPublic, RoomSummary

logger = get_logger(__name__)

ROOM_CODE_LENGTH: int = 6
_CODE_ALPHABET: str = string.ascii_uppercase + string.digits


@dataclass
class StaleParticipant:
    """一次巡检中被判定离线的参与者。"""

    room_id: str
    participant_id: str


@dataclass
class _RoomState:
    info: RoomInfo
    # dict 保持插入顺序，即参与者的加入顺序
    participants: dict[str, ParticipantInfo]


def generate_room_code() -> str:
    """生成 6 位大写字母数字房间码。"""
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


class RoomRegistry:
    """房间注册表。

    - 主索引: ``room_id → _RoomState``
    - 二级索引: ``code → room_id``，用于按房间码 O(1) 查找

    参与者查询接口返回的是副本，调用方修改返回值不会影响注册表。

    Attributes:
        guard: 房间密码校验策略。
    """

    def __init__(self, guard: PasswordGuard | None = None) -> None:
        self.guard: PasswordGuard = guard or PasswordGuard()
        self._rooms: dict[str, _RoomState] = {}
        self._code_index: dict[str, str] = {}
        self._lock = threading.RLock()

    # ── 房间 ──────────────────────────────────────────────────────────

    def create(self, name: str, host_id: str, password: str | None = None) -> RoomPublic:
        """创建房间。

        密码哈希（bcrypt，较慢）在加锁之前完成。

        Raises:
            ValidationError: 房间名为空。
        """
        if not name or not name.strip():
            raise ValidationError("Name is required")

        password_hash = self.guard.hash(password) if password else None

        with self._lock:
            code = generate_room_code()
            while code in self._code_index:
                code = generate_room_code()

            info = RoomInfo(
                id=uuid.uuid4().hex,
                code=code,
                name=name,
                host_id=host_id,
                created_at=now_ms(),
                password_hash=password_hash,
            )
            self._rooms[info.id] = _RoomState(info=info, participants={})
            self._code_index[code] = info.id

        logger.info("房间已创建 | code=%s | name=%s | protected=%s", code, name, password_hash is not None)
        return info.public()

    def get(self, room_id: str) -> RoomPublic | None:
        with self._lock:
            state = self._rooms.get(room_id)
            return state.info.public() if state else None

    def get_by_code(self, code: str) -> RoomPublic | None:
        """按房间码查找（不区分大小写）。"""
        with self._lock:
            room_id = self._code_index.get(code.upper())
            if room_id is None:
                return None
            state = self._rooms.get(room_id)
            return state.info.public() if state else None

    def list(self) -> list[RoomPublic]:
        with self._lock:
            return [state.info.public() for state in self._rooms.values()]

    def list_with_participant_count(self) -> list[RoomSummary]:
        with self._lock:
            return [
                RoomSummary(
                    **state.info.public().model_dump(),
                    participant_count=len(state.participants),
                )
                for state in self._rooms.values()
            ]

    def remove(self, room_id: str) -> bool:
        with self._lock:
            state = self._rooms.pop(room_id, None)
            if state is None:
                return False
            self._code_index.pop(state.info.code, None)
        logger.info("房间已移除 | code=%s", state.info.code)
        return True

    def validate_password(self, room_id: str, password: str | None) -> bool:
        """按密码策略校验加入请求。未知房间返回 ``False``。

        bcrypt 校验较慢，只在锁内读取哈希，校验在锁外进行。
        """
        with self._lock:
            state = self._rooms.get(room_id)
            if state is None:
                return False
            hashed = state.info.password_hash
        return self.guard.check(hashed, password)

    @property
    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    # ── 参与者 ────────────────────────────────────────────────────────

    def add_participant(self, room_id: str, participant: ParticipantInfo) -> bool:
        """加入或替换参与者（同 ID 重新加入时保留原有的加入顺序位置）。"""
        with self._lock:
            state = self._rooms.get(room_id)
            if state is None:
                return False
            state.participants[participant.id] = participant.model_copy(deep=True)
            return True

    def remove_participant(self, room_id: str, participant_id: str) -> bool:
        with self._lock:
            state = self._rooms.get(room_id)
            if state is None:
                return False
            return state.participants.pop(participant_id, None) is not None

    def get_participant(self, room_id: str, participant_id: str) -> ParticipantInfo | None:
        with self._lock:
            participant = self._participant(room_id, participant_id)
            return participant.model_copy(deep=True) if participant else None

    def get_participants(self, room_id: str) -> list[ParticipantInfo]:
        with self._lock:
            state = self._rooms.get(room_id)
            if state is None:
                return []
            return [p.model_copy(deep=True) for p in state.participants.values()]

    def update_participant_status(
        self, room_id: str, participant_id: str, status: ParticipantStatus,
    ) -> bool:
        with self._lock:
            participant = self._participant(room_id, participant_id)
            if participant is None:
                return False
            participant.status = status
            return True

    def transition_status(
        self,
        room_id: str,
        participant_id: str,
        expected: ParticipantStatus,
        new: ParticipantStatus,
    ) -> bool:
        """仅当当前状态为 ``expected`` 时切换为 ``new``（比较并交换）。"""
        with self._lock:
            participant = self._participant(room_id, participant_id)
            if participant is None or participant.status != expected:
                return False
            participant.status = new
            return True

    def update_last_seen(self, room_id: str, participant_id: str) -> bool:
        """记录心跳：刷新 ``last_seen`` 并强制恢复为 online。"""
        with self._lock:
            participant = self._participant(room_id, participant_id)
            if participant is None:
                return False
            participant.last_seen = now_ms()
            participant.status = "online"
            return True

    def find_participant_by_model(self, room_id: str, model: str) -> ParticipantInfo | None:
        """按加入顺序返回第一个运行 ``model`` 且在线的参与者。"""
        with self._lock:
            state = self._rooms.get(room_id)
            if state is None:
                return None
            for participant in state.participants.values():
                if participant.model == model and participant.status == "online":
                    return participant.model_copy(deep=True)
            return None

    def get_random_online_participant(self, room_id: str) -> ParticipantInfo | None:
        with self._lock:
            state = self._rooms.get(room_id)
            if state is None:
                return None
            online = [p for p in state.participants.values() if p.status == "online"]
            if not online:
                return None
            return random.choice(online).model_copy(deep=True)

    # ── 存活巡检 ──────────────────────────────────────────────────────

    def check_stale_participants(
        self, timeout_ms: int, now: int | None = None,
    ) -> list[StaleParticipant]:
        """把心跳超时且尚未离线的参与者标记为 offline。

        参与者不会被删除，只改变状态，离开只能通过显式 leave。

        Args:
            timeout_ms: 心跳超时阈值（毫秒），严格大于才算超时。
            now: 当前时间戳（毫秒），默认取系统时间。

        Returns:
            本轮新标记为离线的参与者列表。
        """
        now = now_ms() if now is None else now
        stale: list[StaleParticipant] = []
        with self._lock:
            for room_id, state in self._rooms.items():
                for participant in state.participants.values():
                    if participant.status == "offline":
                        continue
                    if now - participant.last_seen > timeout_ms:
                        participant.status = "offline"
                        stale.append(StaleParticipant(room_id=room_id, participant_id=participant.id))
        return stale

    def clear(self) -> None:
        with self._lock:
            self._rooms.clear()
            self._code_index.clear()

    def _participant(self, room_id: str, participant_id: str) -> ParticipantInfo | None:
        state = self._rooms.get(room_id)
        if state is None:
            return None
        return state.participants.get(participant_id)
