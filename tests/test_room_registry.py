"""
tests.test_room_registry
~~~~~~~~~~~~~~~~~~~~~~~~

RoomRegistry 单元测试：房间、参与者、密码、存活巡检与并发一致性。
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from roomhub.core.errors import ValidationError
from roomhub.services import room_registry as room_registry_module
from roomhub.services.room_registry import RoomRegistry
from tests.conftest import make_participant


# ── 房间 ──────────────────────────────────────────────────────────────

class TestRooms:
    """测试房间的创建、查询与删除。"""

    def test_create_room(self, registry: RoomRegistry) -> None:
        """新房间应有 ID 和 6 位大写房间码。"""
        room = registry.create("Test Room", "host-123")

        assert room.id
        assert len(room.code) == 6
        assert room.code == room.code.upper()
        assert room.name == "Test Room"
        assert room.host_id == "host-123"
        assert room.created_at > 0

    def test_create_requires_name(self, registry: RoomRegistry) -> None:
        """房间名为空应抛出 ValidationError。"""
        with pytest.raises(ValidationError):
            registry.create("", "host")
        with pytest.raises(ValidationError):
            registry.create("   ", "host")

    def test_rooms_are_distinct(self, registry: RoomRegistry) -> None:
        """两个房间的 ID 和房间码都不同。"""
        a = registry.create("A", "host")
        b = registry.create("B", "host")

        assert a.id != b.id
        assert a.code != b.code

    def test_code_collision_is_retried(self, registry: RoomRegistry, monkeypatch: pytest.MonkeyPatch) -> None:
        """生成器撞码时应重新生成，直到房间码唯一。"""
        codes = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
        monkeypatch.setattr(room_registry_module, "generate_room_code", lambda: next(codes))

        first = registry.create("A", "host")
        second = registry.create("B", "host")

        assert first.code == "AAAAAA"
        assert second.code == "BBBBBB"

    def test_get_by_code_is_case_insensitive(self, registry: RoomRegistry) -> None:
        """按房间码查找不区分大小写。"""
        room = registry.create("Test Room", "host")

        assert registry.get_by_code(room.code).id == room.id
        assert registry.get_by_code(room.code.lower()).id == room.id

    def test_get_unknown_room(self, registry: RoomRegistry) -> None:
        assert registry.get("missing") is None
        assert registry.get_by_code("nope00") is None

    def test_remove_room_frees_code(self, registry: RoomRegistry) -> None:
        """删除房间后主索引和房间码索引都应清除。"""
        room = registry.create("Test Room", "host")

        assert registry.remove(room.id) is True
        assert registry.get(room.id) is None
        assert registry.get_by_code(room.code) is None
        assert registry.remove(room.id) is False

    def test_list_with_participant_count(self, registry: RoomRegistry) -> None:
        """房间列表应按创建顺序返回并附带参与者数量。"""
        a = registry.create("A", "host")
        b = registry.create("B", "host")
        registry.add_participant(a.id, make_participant(id="p1"))
        registry.add_participant(a.id, make_participant(id="p2"))

        summaries = registry.list_with_participant_count()

        assert [s.id for s in summaries] == [a.id, b.id]
        assert [s.participant_count for s in summaries] == [2, 0]

    def test_password_hash_never_exposed(self, registry: RoomRegistry) -> None:
        """任何对外返回的房间表示都不包含密码哈希。"""
        room = registry.create("Secret", "host", password="hunter2")

        exposed = [
            room,
            registry.get(room.id),
            registry.get_by_code(room.code),
            *registry.list(),
            *registry.list_with_participant_count(),
        ]
        for item in exposed:
            dumped = item.model_dump(by_alias=True)
            assert "passwordHash" not in dumped
            assert "password_hash" not in dumped
            assert not hasattr(item, "password_hash")

    def test_clear(self, registry: RoomRegistry) -> None:
        room = registry.create("A", "host")
        registry.clear()

        assert registry.list() == []
        assert registry.get_by_code(room.code) is None
        assert registry.room_count == 0


# ── 密码 ──────────────────────────────────────────────────────────────

class TestValidatePassword:
    """测试加入房间时的密码策略。"""

    def test_unprotected_room_accepts_anything(self, registry: RoomRegistry) -> None:
        """未加密房间接受任何密码（包括空密码）。"""
        room = registry.create("Open", "host")

        assert registry.validate_password(room.id, None) is True
        assert registry.validate_password(room.id, "") is True
        assert registry.validate_password(room.id, "whatever") is True

    def test_protected_room(self, registry: RoomRegistry) -> None:
        """加密房间拒绝空密码和错误密码，只接受原始密码。"""
        room = registry.create("Locked", "host", password="s3cret")

        assert registry.validate_password(room.id, None) is False
        assert registry.validate_password(room.id, "") is False
        assert registry.validate_password(room.id, "wrong") is False
        assert registry.validate_password(room.id, "s3cret") is True

    def test_unknown_room(self, registry: RoomRegistry) -> None:
        assert registry.validate_password("missing", "x") is False


# ── 参与者 ────────────────────────────────────────────────────────────

class TestParticipants:
    """测试参与者的增删改查。"""

    def setup_method(self) -> None:
        self.registry = RoomRegistry()
        self.room = self.registry.create("Test Room", "host")

    def test_add_and_get_participant(self) -> None:
        assert self.registry.add_participant(self.room.id, make_participant(id="p1")) is True

        participant = self.registry.get_participant(self.room.id, "p1")

        assert participant is not None
        assert participant.nickname == "bot"
        assert len(self.registry.get_participants(self.room.id)) == 1

    def test_add_to_unknown_room(self) -> None:
        assert self.registry.add_participant("missing", make_participant()) is False

    def test_remove_participant(self) -> None:
        self.registry.add_participant(self.room.id, make_participant(id="p1"))

        assert self.registry.remove_participant(self.room.id, "p1") is True
        assert self.registry.get_participant(self.room.id, "p1") is None
        assert self.registry.remove_participant(self.room.id, "p1") is False
        assert self.registry.remove_participant("missing", "p1") is False

    def test_get_participants_unknown_room(self) -> None:
        assert self.registry.get_participants("missing") == []

    def test_returned_participants_are_copies(self) -> None:
        """修改查询结果不应影响注册表中的状态。"""
        self.registry.add_participant(self.room.id, make_participant(id="p1"))

        copy = self.registry.get_participant(self.room.id, "p1")
        copy.status = "offline"

        assert self.registry.get_participant(self.room.id, "p1").status == "online"

    def test_update_participant_status(self) -> None:
        self.registry.add_participant(self.room.id, make_participant(id="p1"))

        assert self.registry.update_participant_status(self.room.id, "p1", "busy") is True
        assert self.registry.get_participant(self.room.id, "p1").status == "busy"
        assert self.registry.update_participant_status(self.room.id, "ghost", "busy") is False

    def test_transition_status_is_compare_and_set(self) -> None:
        """只有当前状态符合预期时才切换。"""
        self.registry.add_participant(self.room.id, make_participant(id="p1"))

        assert self.registry.transition_status(self.room.id, "p1", "online", "busy") is True
        assert self.registry.transition_status(self.room.id, "p1", "online", "busy") is False
        assert self.registry.transition_status(self.room.id, "p1", "busy", "online") is True
        assert self.registry.transition_status(self.room.id, "ghost", "online", "busy") is False

    def test_update_last_seen_revives_offline(self) -> None:
        """心跳会刷新 lastSeen 并把离线参与者恢复为 online。"""
        self.registry.add_participant(
            self.room.id, make_participant(id="p1", status="offline", last_seen=1000),
        )

        assert self.registry.update_last_seen(self.room.id, "p1") is True

        participant = self.registry.get_participant(self.room.id, "p1")
        assert participant.status == "online"
        assert participant.last_seen > 1000
        assert self.registry.update_last_seen(self.room.id, "ghost") is False

    def test_find_by_model_skips_offline(self) -> None:
        """按模型查找只返回在线参与者。"""
        self.registry.add_participant(self.room.id, make_participant(id="down", model="llama3", status="offline"))
        self.registry.add_participant(self.room.id, make_participant(id="up", model="llama3"))

        found = self.registry.find_participant_by_model(self.room.id, "llama3")

        assert found is not None
        assert found.id == "up"
        assert self.registry.find_participant_by_model(self.room.id, "mistral") is None
        assert self.registry.find_participant_by_model("missing", "llama3") is None

    def test_find_by_model_uses_join_order(self) -> None:
        """多个在线参与者匹配时返回最早加入的那个。"""
        for pid in ("first", "second", "third"):
            self.registry.add_participant(self.room.id, make_participant(id=pid, model="llama3"))

        assert self.registry.find_participant_by_model(self.room.id, "llama3").id == "first"

    def test_random_online_participant(self) -> None:
        """随机挑选只会返回在线参与者。"""
        self.registry.add_participant(self.room.id, make_participant(id="a"))
        self.registry.add_participant(self.room.id, make_participant(id="b"))
        self.registry.add_participant(self.room.id, make_participant(id="c", status="offline"))
        self.registry.add_participant(self.room.id, make_participant(id="d", status="busy"))

        picked = {self.registry.get_random_online_participant(self.room.id).id for _ in range(50)}

        assert picked <= {"a", "b"}

    def test_random_online_participant_none(self) -> None:
        self.registry.add_participant(self.room.id, make_participant(id="a", status="offline"))

        assert self.registry.get_random_online_participant(self.room.id) is None
        assert self.registry.get_random_online_participant("missing") is None


# ── 存活巡检 ──────────────────────────────────────────────────────────

class TestStaleParticipants:
    """测试心跳超时判定。"""

    def setup_method(self) -> None:
        self.registry = RoomRegistry()
        self.room = self.registry.create("Test Room", "host")

    def test_marks_stale_participant_offline(self) -> None:
        """超过 30000ms 未心跳的在线参与者被标记为 offline，新鲜的不受影响。"""
        now = 1_000_000
        self.registry.add_participant(self.room.id, make_participant(id="stale", last_seen=now - 30_001))
        self.registry.add_participant(self.room.id, make_participant(id="fresh", last_seen=now))

        stale = self.registry.check_stale_participants(30_000, now=now)

        assert [(s.room_id, s.participant_id) for s in stale] == [(self.room.id, "stale")]
        assert self.registry.get_participant(self.room.id, "stale").status == "offline"
        assert self.registry.get_participant(self.room.id, "fresh").status == "online"

    def test_boundary_is_not_stale(self) -> None:
        """恰好等于超时阈值时不算超时。"""
        now = 1_000_000
        self.registry.add_participant(self.room.id, make_participant(id="edge", last_seen=now - 30_000))

        assert self.registry.check_stale_participants(30_000, now=now) == []

    def test_offline_participant_not_reported_twice(self) -> None:
        """已离线的参与者不会在后续巡检中重复上报。"""
        now = 1_000_000
        self.registry.add_participant(self.room.id, make_participant(id="stale", last_seen=now - 60_000))

        assert len(self.registry.check_stale_participants(30_000, now=now)) == 1
        assert self.registry.check_stale_participants(30_000, now=now) == []

    def test_busy_participant_can_go_stale(self) -> None:
        now = 1_000_000
        self.registry.add_participant(
            self.room.id, make_participant(id="busy", status="busy", last_seen=now - 30_001),
        )

        assert len(self.registry.check_stale_participants(30_000, now=now)) == 1
        assert self.registry.get_participant(self.room.id, "busy").status == "offline"

    def test_stale_participant_is_not_removed(self) -> None:
        """超时只改变状态，不删除参与者。"""
        now = 1_000_000
        self.registry.add_participant(self.room.id, make_participant(id="stale", last_seen=0))

        self.registry.check_stale_participants(30_000, now=now)

        assert len(self.registry.get_participants(self.room.id)) == 1


# ── 并发 ──────────────────────────────────────────────────────────────

class TestConcurrency:
    """多线程同时加入/离开/路由同一房间，不应丢失更新或读到中间状态。"""

    def test_concurrent_join_leave_and_route(self) -> None:
        registry = RoomRegistry()
        room = registry.create("Busy Room", "host")

        def join(i: int) -> None:
            registry.add_participant(room.id, make_participant(id=f"p{i}", model=f"m{i % 3}"))

        def leave(i: int) -> None:
            registry.remove_participant(room.id, f"p{i}")

        def route(i: int) -> None:
            picked = registry.get_random_online_participant(room.id)
            assert picked is None or picked.status == "online"
            registry.find_participant_by_model(room.id, f"m{i % 3}")
            registry.check_stale_participants(30_000)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(join, range(200)))
            futures = [pool.submit(leave, i) for i in range(0, 200, 2)]
            futures += [pool.submit(route, i) for i in range(200)]
            for future in futures:
                future.result()

        remaining = {p.id for p in registry.get_participants(room.id)}
        assert remaining == {f"p{i}" for i in range(1, 200, 2)}
        assert registry.list_with_participant_count()[0].participant_count == 100
