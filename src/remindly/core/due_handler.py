"""到期回调处理

由闹钟投递触发, 或由调度器在发现提醒已过期时直接调用。
状态转换都在独占访问门内以"检查并设置"的方式完成, 且不经过 reschedule,
以免撤回刚刚发出的通知。

回调指向的提醒可能已被删除 (闹钟的取消不保证与删除同步), 此时只记录日志并忽略。
"""

from __future__ import annotations

import dataclasses
from typing import Union

from remindly.datamodel import MarkDone, Nag, Notify, ReminderStatus
from remindly.errors import NotFoundError
from remindly.events import Bus, E
from remindly.logger import logger
from remindly.metrics import runtime_metrics
from remindly.storage.reminder import ReminderStore
from remindly.utils import Clock, now_utc
from remindly.world.notification import NotificationPresenter, NotificationRequest

from .scheduler import Scheduler

__all__ = ["DueReminderHandler"]


class DueReminderHandler:
    def __init__(
        self,
        store: ReminderStore,
        scheduler: Scheduler,
        presenter: NotificationPresenter,
        bus: Bus,
        clock: Clock = now_utc,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._presenter = presenter
        self._bus = bus
        self._clock = clock

    async def handle(self, action: Union[Notify, Nag, MarkDone]) -> None:
        if isinstance(action, Notify):
            await self._notify(action)
        elif isinstance(action, Nag):
            await self._nag(action)
        elif isinstance(action, MarkDone):
            await self._mark_done(action)
        else:
            raise TypeError(f"未知的提醒动作: {action!r}")

    async def _notify(self, action: Notify) -> None:
        # 只有真正到期的提醒才能进入 NOTIFIED, 编辑后迟到的旧回调在这里被挡下
        now = self._clock()
        updated = await self._store.update_where(
            lambda r: r.id == action.reminder_id and r.status is ReminderStatus.SCHEDULED and r.due_at <= now,
            lambda r: dataclasses.replace(r, status=ReminderStatus.NOTIFIED),
        )
        if not updated:
            self._ignore_stale(action)
            return

        reminder = updated[0]
        self._presenter.present(NotificationRequest.for_reminder(reminder))
        runtime_metrics.record_notified()
        self._bus.emit(E.REMINDER_NOTIFIED, reminder)
        if reminder.is_nagging:
            self._scheduler.arm_nag(reminder)
        await self._recheck_presented(reminder.id)

    async def _nag(self, action: Nag) -> None:
        try:
            reminder = await self._store.get(action.reminder_id)
        except NotFoundError:
            self._ignore_stale(action)
            return

        if reminder.status is not ReminderStatus.NOTIFIED or not reminder.is_nagging:
            self._ignore_stale(action)
            return

        # 替换之前的通知, 状态保持 NOTIFIED
        self._presenter.present(NotificationRequest.for_reminder(reminder))
        runtime_metrics.record_nagged()
        self._scheduler.arm_nag(reminder)
        await self._recheck_presented(reminder.id)

    async def _mark_done(self, action: MarkDone) -> None:
        updated = await self._store.update_where(
            lambda r: r.id == action.reminder_id and r.status is not ReminderStatus.DONE,
            lambda r: dataclasses.replace(r, status=ReminderStatus.DONE),
        )
        # 在写入之后取消, 同时清掉写入期间并发的催促重新注册的闹钟与通知
        self._scheduler.cancel(action.reminder_id)
        if not updated:
            self._ignore_stale(action)
            return

        runtime_metrics.record_done()
        self._bus.emit(E.REMINDER_DONE, updated[0])

    async def _recheck_presented(self, reminder_id: int) -> None:
        """通知在门外呈现; 期间提醒被删除, 完成或编辑时撤回刚发出的通知"""
        try:
            current = await self._store.get(reminder_id)
        except NotFoundError:
            current = None

        if current is None or current.status is ReminderStatus.DONE:
            self._scheduler.cancel(reminder_id)
        elif current.status is ReminderStatus.SCHEDULED:
            # 编辑已重新注册了闹钟, 只撤回通知
            self._presenter.withdraw(reminder_id)
        else:
            return
        logger.debug(f"呈现后提醒状态已变化, 撤回通知: reminder_id={reminder_id}")

    @staticmethod
    def _ignore_stale(action: Union[Notify, Nag, MarkDone]) -> None:
        runtime_metrics.record_stale_callback()
        logger.warning(f"忽略过期回调: {action.kind}, reminder_id={action.reminder_id} (提醒已删除或状态已变化)")
