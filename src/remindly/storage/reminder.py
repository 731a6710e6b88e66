"""提醒存储

提醒的唯一数据源。所有修改都经由 ExclusiveAccessGate 以整表重写的方式持久化,
不存在增量写入, 中途失败不会留下半成品状态。
"""

from __future__ import annotations

import dataclasses
from typing import Callable, Iterable

from remindly.datamodel import Reminder, ReminderDraft
from remindly.errors import AlreadyExistsError, NotFoundError
from remindly.logger import logger
from remindly.storage.gate import ExclusiveAccessGate, StateEditor

__all__ = ["ReminderStore"]


class ReminderStore:
    def __init__(self, gate: ExclusiveAccessGate) -> None:
        self.gate = gate

    async def add(self, draft: ReminderDraft) -> Reminder:
        """分配新 ID 并添加提醒, ID 计数器与提醒列表在同一事务中写回"""
        def operation(editor: StateEditor) -> Reminder:
            reminder = draft.build(editor.allocate_id())
            _append_new(editor, reminder)
            return reminder

        reminder = await self.gate.with_exclusive_access(operation)
        logger.trace(f"创建提醒: reminder_id={reminder.id}, due_at={reminder.due_at.isoformat()}")
        return reminder

    async def add_with_id(self, reminder: Reminder) -> Reminder:
        """添加已带 ID 的提醒, ID 已存在时抛出 AlreadyExistsError"""
        def operation(editor: StateEditor) -> Reminder:
            _append_new(editor, reminder)
            # 计数器只增不减, 保证之后分配的 ID 不与其冲突
            if editor.next_id <= reminder.id:
                editor.next_id = reminder.id + 2
            return reminder

        await self.gate.with_exclusive_access(operation)
        logger.trace(f"导入提醒: reminder_id={reminder.id}")
        return reminder

    async def get(self, reminder_id: int) -> Reminder:
        def operation(editor: StateEditor) -> Reminder:
            reminder = editor.find(reminder_id)
            if reminder is None:
                raise NotFoundError(reminder_id)
            return reminder

        return await self.gate.read(operation)

    async def list(self) -> list[Reminder]:
        return await self.gate.read(lambda editor: list(editor.reminders))

    async def update(self, reminder: Reminder) -> None:
        """替换 ID 相同的提醒, 不存在时抛出 NotFoundError"""
        await self.update_many([reminder])

    async def update_many(self, reminders: Iterable[Reminder]) -> None:
        """批量替换; 任一 ID 不存在则整批不生效"""
        replacements = {r.id: r for r in reminders}

        def operation(editor: StateEditor) -> None:
            existing = {r.id for r in editor.reminders}
            for reminder_id in replacements:
                if reminder_id not in existing:
                    raise NotFoundError(reminder_id)
            editor.reminders = [replacements.get(r.id, r) for r in editor.reminders]

        await self.gate.with_exclusive_access(operation)
        logger.trace(f"更新提醒: reminder_ids={sorted(replacements)}")

    async def update_where(
        self,
        predicate: Callable[[Reminder], bool],
        transform: Callable[[Reminder], Reminder],
    ) -> list[Reminder]:
        """对所有满足条件的提醒应用变换, 返回变换后的提醒"""
        def operation(editor: StateEditor) -> list[Reminder]:
            updated: list[Reminder] = []
            result: list[Reminder] = []
            for reminder in editor.reminders:
                if predicate(reminder):
                    transformed = transform(reminder)
                    if transformed.id != reminder.id:
                        raise ValueError(f"变换不得修改提醒 ID: {reminder.id} -> {transformed.id}")
                    updated.append(transformed)
                    result.append(transformed)
                else:
                    result.append(reminder)
            editor.reminders = result
            return updated

        updated = await self.gate.with_exclusive_access(operation)
        if updated:
            logger.trace(f"条件更新提醒: reminder_ids={[r.id for r in updated]}")
        return updated

    async def update_fields(self, reminder_ids: set[int], **changes) -> list[Reminder]:
        """按 ID 批量修改字段, 不存在的 ID 被忽略"""
        return await self.update_where(
            lambda r: r.id in reminder_ids,
            lambda r: dataclasses.replace(r, **changes),
        )

    async def remove(self, reminder_ids: set[int]) -> int:
        """删除给定 ID 的提醒, 返回实际删除的数量"""
        def operation(editor: StateEditor) -> int:
            before = len(editor.reminders)
            editor.reminders = [r for r in editor.reminders if r.id not in reminder_ids]
            return before - len(editor.reminders)

        removed = await self.gate.with_exclusive_access(operation)
        logger.trace(f"删除提醒: reminder_ids={sorted(reminder_ids)}, removed={removed}")
        return removed


def _append_new(editor: StateEditor, reminder: Reminder) -> None:
    if editor.find(reminder.id) is not None:
        raise AlreadyExistsError(reminder.id)
    editor.reminders.append(reminder)
