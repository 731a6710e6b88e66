"""提醒列表变更通知

每次成功写回后发出一次 E.REMINDERS_CHANGED。
同时在同一事务中置位粘性标记 remindersUpdated, 变更发生时未在监听的观察者
(例如当前未打开的列表界面) 可以在下次激活时通过 is_dirty() 发现自己错过了更新。
清除标记与消费信号互相独立, 且都是幂等的。
"""

from __future__ import annotations

import aiosqlite

from remindly.events import Bus, E
from remindly.logger import logger
from remindly.storage.db_config import KEY_REMINDERS_UPDATED, read_value, write_value
from remindly.storage.gate import ExclusiveAccessGate

__all__ = ["ChangeNotifier"]


class ChangeNotifier:
    def __init__(self, gate: ExclusiveAccessGate, bus: Bus) -> None:
        self._gate = gate
        self._bus = bus
        gate.add_write_hook(self._mark_dirty)
        gate.add_commit_hook(self.notify_changed)

    def notify_changed(self) -> None:
        logger.trace("提醒列表已变更")
        self._bus.emit(E.REMINDERS_CHANGED)

    async def is_dirty(self) -> bool:
        async def fn(conn: aiosqlite.Connection) -> bool:
            return await read_value(conn, KEY_REMINDERS_UPDATED) == "1"

        return await self._gate.run_locked(fn)

    async def clear_dirty(self) -> None:
        async def fn(conn: aiosqlite.Connection) -> None:
            await write_value(conn, KEY_REMINDERS_UPDATED, "0")

        await self._gate.run_locked(fn)

    @staticmethod
    async def _mark_dirty(conn: aiosqlite.Connection) -> None:
        await write_value(conn, KEY_REMINDERS_UPDATED, "1")
