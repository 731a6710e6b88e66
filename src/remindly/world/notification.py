"""通知呈现

核心只发出"请呈现这条提醒"的请求, 不关心是否真的展示成功。
通知被划掉时, 呈现端把 on_dismissed_payload 交还给 ReminderManager.on_due_payload(),
即 MarkDone 动作; 点开通知则由呈现端按 on_opened 打开编辑入口。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from remindly.datamodel import MarkDone, Reminder, action_to_payload, callback_identity
from remindly.events import Bus, E
from remindly.logger import logger
from remindly.utils import utc_to_user_local_min

__all__ = ["NotificationRequest", "NotificationPresenter", "BusNotificationPresenter"]


@dataclass(frozen=True)
class NotificationRequest:
    reminder_id: int
    text: str
    due_at: datetime
    on_dismissed_identity: str
    on_dismissed_payload: str
    on_opened: str
    silent: bool = False

    @classmethod
    def for_reminder(cls, reminder: Reminder, silent: bool = False) -> "NotificationRequest":
        mark_done = MarkDone(reminder_id=reminder.id)
        return cls(
            reminder_id=reminder.id,
            text=reminder.text,
            due_at=reminder.due_at,
            on_dismissed_identity=callback_identity(mark_done),
            on_dismissed_payload=action_to_payload(mark_done),
            on_opened=f"edit:{reminder.id}",
            silent=silent,
        )


class NotificationPresenter(ABC):
    @abstractmethod
    def present(self, request: NotificationRequest) -> None:
        """呈现通知; 同一提醒再次呈现时替换之前的通知"""

    @abstractmethod
    def withdraw(self, reminder_id: int) -> None:
        """撤回通知, 不存在时什么也不做"""


class BusNotificationPresenter(NotificationPresenter):
    """记录当前活动的通知并通过事件总线广播, 由具体的呈现端订阅"""

    def __init__(self, bus: Bus, user_timezone: str = "UTC") -> None:
        self._bus = bus
        self._user_timezone = user_timezone
        self._active: dict[int, NotificationRequest] = {}

    def present(self, request: NotificationRequest) -> None:
        self._active[request.reminder_id] = request
        due_local = utc_to_user_local_min(request.due_at, self._user_timezone)
        if request.silent:
            logger.debug(f"静默重新呈现提醒 [{request.reminder_id}] {request.text} (due {due_local})")
        else:
            logger.info(f"提醒到期 [{request.reminder_id}] {request.text} (due {due_local})")
        self._bus.emit(E.NOTIFICATION_PRESENTED, request)

    def withdraw(self, reminder_id: int) -> None:
        if self._active.pop(reminder_id, None) is not None:
            logger.debug(f"撤回通知: reminder_id={reminder_id}")
            self._bus.emit(E.NOTIFICATION_WITHDRAWN, reminder_id)

    def active(self) -> list[NotificationRequest]:
        return sorted(self._active.values(), key=lambda r: r.due_at)

    def get(self, reminder_id: int) -> NotificationRequest | None:
        return self._active.get(reminder_id)
