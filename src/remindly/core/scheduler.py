"""调度器: 把提醒的生命周期映射为闹钟的注册与取消

每个提醒在调度器看来只有两种状态: 未注册 -> 已注册 (schedule) -> 未注册 (触发或 cancel)。
所有更新路径 (编辑, 标记完成, 删除) 都走同一条规则: 先 cancel, 再视情况重新注册,
不判断"排期是否真的变了", cancel 与 reschedule 都是幂等的。
"""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable, Union

from remindly.datamodel import MarkDone, Nag, Notify, Reminder, ReminderStatus, action_to_payload, callback_identity
from remindly.logger import logger
from remindly.utils import Clock, format_utc_min, now_utc
from remindly.world.alarm import AlarmBackend
from remindly.world.notification import NotificationPresenter, NotificationRequest

__all__ = ["Scheduler", "DueCallback"]

DueCallback = Callable[[Union[Notify, Nag, MarkDone]], Awaitable[None]]


class Scheduler:
    def __init__(
        self,
        alarms: AlarmBackend,
        presenter: NotificationPresenter,
        on_due: DueCallback,
        clock: Clock = now_utc,
    ) -> None:
        self._alarms = alarms
        self._presenter = presenter
        self._on_due = on_due
        self._clock = clock

    def is_future(self, reminder: Reminder) -> bool:
        return reminder.due_at > self._clock()

    async def schedule(self, reminder: Reminder) -> None:
        """到期时间在未来则注册 Notify, 否则立即按到期处理"""
        if self.is_future(reminder):
            self._register(Notify(reminder_id=reminder.id), reminder)
        else:
            logger.debug(f"提醒已过期, 立即投递: reminder_id={reminder.id}")
            await self._on_due(Notify(reminder_id=reminder.id))

    def cancel(self, reminder_id: int) -> None:
        """取消已注册的回调并撤回通知, 重复调用无副作用"""
        self._alarms.cancel(callback_identity(Notify(reminder_id=reminder_id)))
        self._presenter.withdraw(reminder_id)

    async def reschedule(self, reminder: Reminder) -> None:
        self.cancel(reminder.id)
        if reminder.status is ReminderStatus.SCHEDULED and self.is_future(reminder):
            self._register(Notify(reminder_id=reminder.id), reminder)

    def arm_nag(self, reminder: Reminder) -> None:
        """在 now + 催促间隔 处注册下一次 Nag, 替换同一提醒已有的注册"""
        fires_at = self._clock() + reminder.nagging_repeat_delta
        action = Nag(reminder_id=reminder.id)
        self._alarms.register(callback_identity(action), fires_at, action_to_payload(action))
        logger.debug(f"预约催促: reminder_id={reminder.id} @ {format_utc_min(fires_at)} UTC")

    async def schedule_all(self, reminders: Iterable[Reminder]) -> None:
        """启动时调用: 补投进程未运行期间到期的提醒, 其余重新注册"""
        scheduled = delivered = reshown = 0
        for reminder in reminders:
            if reminder.status is ReminderStatus.SCHEDULED:
                if self.is_future(reminder):
                    self._register(Notify(reminder_id=reminder.id), reminder)
                    scheduled += 1
                else:
                    await self._on_due(Notify(reminder_id=reminder.id))
                    delivered += 1
            elif reminder.status is ReminderStatus.NOTIFIED:
                # 已通知的提醒静默重新呈现, 催促型提醒继续催促
                self._presenter.present(NotificationRequest.for_reminder(reminder, silent=True))
                if reminder.is_nagging:
                    self.arm_nag(reminder)
                reshown += 1
        logger.info(f"全部提醒已重新排期: scheduled={scheduled}, delivered={delivered}, reshown={reshown}")

    def _register(self, action: Notify, reminder: Reminder) -> None:
        self._alarms.register(callback_identity(action), reminder.due_at, action_to_payload(action))
