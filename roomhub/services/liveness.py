"""
roomhub.services.liveness
~~~~~~~~~~~~~~~~~~~~~~~~~

存活巡检 —— 后台定时任务，把心跳超时的参与者标记为离线。

巡检与请求处理相互独立；单次巡检出错只记录日志，定时任务继续运行。
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable

from roomhub.core.logging import get_logger
from roomhub.services.room_registry import RoomRegistry, StaleParticipant

logger = get_logger(__name__)

StaleCallback = Callable[[list[StaleParticipant]], None]


class LivenessMonitor:
    """周期性心跳巡检器。

    Attributes:
        registry: 被巡检的房间注册表。
        interval_ms: 巡检周期（毫秒）。
        timeout_ms: 心跳超时阈值（毫秒）。
        on_stale: 每轮巡检发现离线参与者后的回调。
    """

    def __init__(
        self,
        registry: RoomRegistry,
        interval_ms: int = 10_000,
        timeout_ms: int = 30_000,
        on_stale: StaleCallback | None = None,
    ) -> None:
        self.registry = registry
        self.interval_ms = interval_ms
        self.timeout_ms = timeout_ms
        self.on_stale = on_stale
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self, now: int | None = None) -> list[StaleParticipant]:
        """执行一轮巡检并触发回调。"""
        stale = self.registry.check_stale_participants(self.timeout_ms, now=now)
        if stale:
            logger.info("巡检发现 %d 个参与者心跳超时", len(stale))
            if self.on_stale is not None:
                self.on_stale(stale)
        return stale

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug("存活巡检已启动 | interval=%dms | timeout=%dms", self.interval_ms, self.timeout_ms)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("存活巡检已停止")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            try:
                self.sweep()
            except Exception:
                logger.exception("存活巡检失败，下个周期重试")
