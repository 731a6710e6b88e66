"""事件总线模块, 定义了事件总线类 Bus 及事件名集合 E

提醒存储本身不依赖总线的具体订阅者: 存储只负责在写入成功后发出 REMINDERS_CHANGED,
列表界面 / Admin API / 日志等观察者自行订阅。
"""

from __future__ import annotations

from typing import Any, Callable

from pyee.asyncio import AsyncIOEventEmitter

from remindly.logger import logger

Handler = Callable[..., Any]


# 事件名集中定义
class E:
    REMINDERS_CHANGED = "reminders.changed"
    REMINDER_ADDED = "reminder.added"
    REMINDER_NOTIFIED = "reminder.notified"
    REMINDER_DONE = "reminder.done"
    NOTIFICATION_PRESENTED = "notification.presented"
    NOTIFICATION_WITHDRAWN = "notification.withdrawn"


class Bus(AsyncIOEventEmitter):
    def on(self, event: str) -> Callable[[Handler], Handler]:
        """注册事件处理器装饰器"""
        def decorator(handler: Handler) -> Handler:
            logger.debug(f"注册事件处理器: {event} -> {handler.__name__}")
            self.add_listener(event, handler)
            return handler

        return decorator


bus = Bus()

__all__ = ["Bus", "bus", "E"]
