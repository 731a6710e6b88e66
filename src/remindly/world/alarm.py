"""闹钟子系统

AlarmBackend 是调度器看到的外部定时器接口: 按回调标识注册/取消, 到点(或更晚)投递 payload。
投递可能任意延迟, 甚至发生在进程重启之后, 调度器把"已过期"与"回调已触发"同等对待。

PollingAlarmBackend 把注册保存在内存中, 由 main_loop 定期检查并投递到期的 payload。
注册不落盘: 进程重启后由 ReminderManager.schedule_all_reminders() 重新注册。
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from remindly.logger import logger
from remindly.utils import Clock, ensure_utc, format_utc_min, now_utc

__all__ = ["Alarm", "AlarmBackend", "PollingAlarmBackend", "Deliver"]

Deliver = Callable[[str], Awaitable[None]]


@dataclass(frozen=True)
class Alarm:
    identity: str
    fires_at: datetime
    payload: str


class AlarmBackend(ABC):
    @abstractmethod
    def register(self, identity: str, fires_at: datetime, payload: str) -> None:
        """注册一次性回调; 同一标识再次注册时替换原有注册"""

    @abstractmethod
    def cancel(self, identity: str) -> None:
        """取消注册, 标识不存在时什么也不做"""


class PollingAlarmBackend(AlarmBackend):
    def __init__(self, clock: Clock = now_utc, poll_seconds: float = 5.0) -> None:
        self._clock = clock
        self._poll_seconds = poll_seconds
        self._alarms: dict[str, Alarm] = {}
        # 已取出但尚未投递的闹钟, 投递期间被取消或重新注册的不再投递
        self._in_flight: dict[str, Alarm] = {}
        self._running = False
        self._last_check_at_epoch: float | None = None

    def register(self, identity: str, fires_at: datetime, payload: str) -> None:
        self._in_flight.pop(identity, None)
        self._alarms[identity] = Alarm(identity=identity, fires_at=ensure_utc(fires_at), payload=payload)
        logger.debug(f"注册闹钟: {identity} @ {format_utc_min(fires_at)} UTC")

    def cancel(self, identity: str) -> None:
        self._in_flight.pop(identity, None)
        if self._alarms.pop(identity, None) is not None:
            logger.debug(f"取消闹钟: {identity}")

    def pending(self) -> list[Alarm]:
        return sorted(self._alarms.values(), key=lambda a: a.fires_at)

    def pop_due(self) -> list[Alarm]:
        """取出所有已到期的注册, 按到期时间排序"""
        now = self._clock()
        due = [a for a in self._alarms.values() if a.fires_at <= now]
        for alarm in due:
            del self._alarms[alarm.identity]
        return sorted(due, key=lambda a: a.fires_at)

    async def deliver_due(self, deliver: Deliver) -> int:
        due = self.pop_due()
        self._in_flight.update((a.identity, a) for a in due)
        delivered = 0
        for alarm in due:
            if self._in_flight.pop(alarm.identity, None) is not alarm:
                logger.debug(f"闹钟在投递前已被取消或替换: {alarm.identity}")
                continue
            try:
                await deliver(alarm.payload)
                delivered += 1
            except Exception as e:
                # 单个投递失败不能让闹钟循环停止
                logger.opt(exception=e).error(f"投递闹钟失败: {alarm.identity}")
        return delivered

    def get_status(self) -> dict[str, object]:
        return {
            "running": self._running,
            "last_check_at_epoch": self._last_check_at_epoch,
            "pending": len(self._alarms),
        }

    async def main_loop(self, shutdown_event: asyncio.Event, deliver: Deliver) -> None:
        self._running = True
        logger.info("闹钟主循环已启动")
        try:
            while not shutdown_event.is_set():
                self._last_check_at_epoch = time.time()
                await self.deliver_due(deliver)
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self._poll_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("闹钟主循环已关闭")
