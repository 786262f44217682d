"""
roomhub.services.router
~~~~~~~~~~~~~~~~~~~~~~~

请求路由 —— 把调用方的模型选择器解析为房间内的某个参与者。

解析规则按顺序匹配，命中即停止:
  1. ``*`` / ``any``    → 随机挑选一个在线参与者
  2. ``model:<name>``   → 第一个运行该模型的在线参与者
  3. 其它               → 先按参与者 ID 精确匹配，未命中再按模型名匹配
"""
from __future__ import annotations

from roomhub.core.errors import NoAvailableParticipant, ParticipantOffline, ValidationError
from roomhub.schemas.participant import ParticipantInfo
from roomhub.services.room_registry import RoomRegistry

WILDCARD_SELECTORS: frozenset[str] = frozenset({"*", "any"})
MODEL_PREFIX: str = "model:"


class RequestRouter:
    """模型选择器解析器。"""

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry

    def find(self, room_id: str, selector: str) -> ParticipantInfo | None:
        """按选择器查找参与者，不检查在线状态（ID 匹配可能命中离线参与者）。"""
        if selector in WILDCARD_SELECTORS:
            return self.registry.get_random_online_participant(room_id)

        if selector.startswith(MODEL_PREFIX):
            return self.registry.find_participant_by_model(room_id, selector[len(MODEL_PREFIX):])

        participant = self.registry.get_participant(room_id, selector)
        if participant is not None:
            return participant
        return self.registry.find_participant_by_model(room_id, selector)

    def resolve(self, room_id: str, selector: str) -> ParticipantInfo:
        """解析选择器，只返回在线参与者。

        Raises:
            ValidationError: 选择器为空。
            NoAvailableParticipant: 没有匹配的参与者。
            ParticipantOffline: 匹配到的参与者不在线。
        """
        if not selector:
            raise ValidationError("model is required")

        participant = self.find(room_id, selector)
        if participant is None:
            raise NoAvailableParticipant()
        if participant.status != "online":
            raise ParticipantOffline()
        return participant
