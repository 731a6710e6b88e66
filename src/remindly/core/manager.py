"""ReminderManager: 提醒核心对外暴露的全部操作

界面 / Admin API / 启动流程 / 闹钟投递都只通过这里访问提醒:
- 存储的修改全部经由 ExclusiveAccessGate;
- 每次修改后按需调用调度器重新排期;
- 闹钟或通知投递回来的 payload 交给 DueReminderHandler。
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

import aiosqlite

from remindly.datamodel import MarkDone, Nag, Notify, Reminder, ReminderDraft, ReminderStatus, action_from_payload
from remindly.errors import NotFoundError
from remindly.events import Bus, E
from remindly.logger import logger
from remindly.metrics import runtime_metrics
from remindly.storage.gate import ExclusiveAccessGate
from remindly.storage.reminder import ReminderStore
from remindly.utils import Clock, now_utc
from remindly.world.alarm import AlarmBackend
from remindly.world.notification import NotificationPresenter

from .change_notifier import ChangeNotifier
from .due_handler import DueReminderHandler
from .scheduler import Scheduler

__all__ = ["ReminderManager", "build_manager"]

_UNSET = object()


class ReminderManager:
    def __init__(
        self,
        store: ReminderStore,
        change_notifier: ChangeNotifier,
        alarms: AlarmBackend,
        presenter: NotificationPresenter,
        bus: Bus,
        clock: Clock = now_utc,
    ) -> None:
        self.store = store
        self.change_notifier = change_notifier
        self.alarms = alarms
        self.presenter = presenter
        self.bus = bus
        self.scheduler = Scheduler(alarms, presenter, on_due=self.on_due_callback, clock=clock)
        self.due_handler = DueReminderHandler(store, self.scheduler, presenter, bus, clock=clock)

    # ------------------------------------------------------------------
    # 新建
    # ------------------------------------------------------------------
    async def add_reminder(
        self,
        text: str,
        due_at: datetime,
        nagging_repeat_interval: Optional[int] = None,
    ) -> Reminder:
        """新建并排期; 到期时间已过的提醒立即按到期处理, 返回处理后的状态"""
        draft = ReminderDraft(text=text, due_at=due_at, nagging_repeat_interval=nagging_repeat_interval)
        reminder = await self.store.add(draft)
        runtime_metrics.record_added()
        self.bus.emit(E.REMINDER_ADDED, reminder)
        logger.info(f"新建提醒: reminder_id={reminder.id}, nagging={reminder.nagging_repeat_interval}")

        is_future = self.scheduler.is_future(reminder)
        await self.scheduler.schedule(reminder)
        if is_future:
            return reminder
        try:
            return await self.store.get(reminder.id)
        except NotFoundError:
            # 投递期间已被删除
            return reminder

    # ------------------------------------------------------------------
    # 修改
    # ------------------------------------------------------------------
    async def update_reminder(self, reminder: Reminder, reschedule: bool) -> None:
        """替换 ID 相同的提醒; reschedule 为真时先取消, 仅当 SCHEDULED 且未到期时重新注册"""
        await self.store.update(reminder)
        if reschedule:
            await self.scheduler.reschedule(reminder)

    async def update_reminders(self, reminders: Iterable[Reminder], reschedule: bool) -> None:
        reminders = list(reminders)
        await self.store.update_many(reminders)
        if reschedule:
            for reminder in reminders:
                await self.scheduler.reschedule(reminder)

    async def update_reminders_by_id(
        self,
        reminder_ids: set[int],
        transform: Callable[[Reminder], Reminder],
        reschedule: bool,
    ) -> list[Reminder]:
        """多选操作: 对给定 ID 的提醒应用变换, 不存在的 ID 被忽略"""
        updated = await self.store.update_where(lambda r: r.id in reminder_ids, transform)
        if reschedule:
            for reminder in updated:
                await self.scheduler.reschedule(reminder)
        return updated

    async def mark_done(self, reminder_ids: set[int]) -> list[Reminder]:
        updated = await self.store.update_where(
            lambda r: r.id in reminder_ids and r.status is not ReminderStatus.DONE,
            lambda r: dataclasses.replace(r, status=ReminderStatus.DONE),
        )
        for reminder in updated:
            await self.scheduler.reschedule(reminder)
            runtime_metrics.record_done()
            self.bus.emit(E.REMINDER_DONE, reminder)
        return updated

    async def edit_reminder(
        self,
        reminder_id: int,
        *,
        text: Optional[str] = None,
        due_at: Optional[datetime] = None,
        nagging_repeat_interval: Union[Optional[int], object] = _UNSET,
    ) -> Reminder:
        """编辑提醒内容并重新排期, 保留原 ID, 状态重置为 SCHEDULED"""
        current = await self.store.get(reminder_id)
        draft = ReminderDraft(
            text=current.text if text is None else text,
            due_at=current.due_at if due_at is None else due_at,
            nagging_repeat_interval=(
                current.nagging_repeat_interval
                if nagging_repeat_interval is _UNSET
                else nagging_repeat_interval
            ),
        )

        updated = await self.store.update_fields(
            {reminder_id},
            text=draft.text,
            due_at=draft.due_at,
            nagging_repeat_interval=draft.nagging_repeat_interval,
            status=ReminderStatus.SCHEDULED,
        )
        if not updated:
            raise NotFoundError(reminder_id)

        edited = updated[0]
        logger.info(f"编辑提醒: reminder_id={reminder_id}")
        self.scheduler.cancel(reminder_id)
        await self.scheduler.schedule(edited)
        return await self.store.get(reminder_id)

    async def reschedule_reminder(self, reminder_id: int, due_at: datetime) -> Reminder:
        return await self.edit_reminder(reminder_id, due_at=due_at)

    # ------------------------------------------------------------------
    # 删除
    # ------------------------------------------------------------------
    async def remove_reminders(self, reminder_ids: set[int]) -> int:
        removed = await self.store.remove(reminder_ids)
        for reminder_id in reminder_ids:
            self.scheduler.cancel(reminder_id)
        runtime_metrics.record_removed(removed)
        if removed:
            logger.info(f"删除提醒: reminder_ids={sorted(reminder_ids)}")
        return removed

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    async def get_reminder(self, reminder_id: int) -> Reminder:
        return await self.store.get(reminder_id)

    async def list_reminders(self) -> list[Reminder]:
        reminders = await self.store.list()
        return sorted(reminders, key=lambda r: (r.due_at, r.id))

    async def is_dirty(self) -> bool:
        return await self.change_notifier.is_dirty()

    async def clear_dirty(self) -> None:
        await self.change_notifier.clear_dirty()

    # ------------------------------------------------------------------
    # 调度
    # ------------------------------------------------------------------
    async def schedule_all_reminders(self) -> None:
        """进程启动时调用一次"""
        await self.scheduler.schedule_all(await self.store.list())

    async def on_due_callback(self, action: Union[Notify, Nag, MarkDone]) -> None:
        logger.debug(f"处理回调: {action.kind}, reminder_id={action.reminder_id}")
        await self.due_handler.handle(action)

    async def on_due_payload(self, payload: Union[str, bytes]) -> None:
        """闹钟或通知投递的原始 payload"""
        await self.on_due_callback(action_from_payload(payload))


def build_manager(
    conn: aiosqlite.Connection,
    alarms: AlarmBackend,
    presenter: NotificationPresenter,
    bus: Bus,
    clock: Clock = now_utc,
) -> ReminderManager:
    """按依赖顺序组装 门 -> 变更通知 -> 存储 -> 管理器"""
    gate = ExclusiveAccessGate(conn)
    change_notifier = ChangeNotifier(gate, bus)
    store = ReminderStore(gate)
    return ReminderManager(store, change_notifier, alarms, presenter, bus, clock=clock)
