"""提醒状态的独占访问门

所有对提醒列表的 读取 -> 计算 -> 写回 都必须在 with_exclusive_access 内完成:
- 进程内: 一把 asyncio.Lock 串行化所有协程 (闹钟投递, Admin API 请求, 启动时的重新排期);
- 进程间: 锁内再开启 SQLite `BEGIN IMMEDIATE` 事务, 共享同一数据库文件的其他进程同样被排斥。

操作函数本身是同步的, 只在内存中修改 StateEditor; 有变更时由门统一写回并提交,
操作抛出任何异常都会回滚, 持久化状态保持调用前的样子。
一旦开始执行, 修改不会被调用方的取消打断。
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Awaitable, Callable, Optional, TypeVar

import aiosqlite

from remindly.datamodel import Reminder
from remindly.errors import PersistenceError
from remindly.logger import logger
from remindly.metrics import runtime_metrics
from remindly.storage.db_config import KEY_NEXT_ID, KEY_REMINDERS, read_value, write_value
from remindly.storage.records import decode_reminders, encode_reminders

__all__ = ["StateEditor", "ExclusiveAccessGate"]

T = TypeVar("T")

WriteHook = Callable[[aiosqlite.Connection], Awaitable[None]]
CommitHook = Callable[[], None]


class StateEditor:
    """一次独占操作看到的一致快照, 修改只作用于内存副本"""

    def __init__(self, reminders: list[Reminder], next_id: int) -> None:
        self._original_reminders = list(reminders)
        self._original_next_id = next_id
        self.reminders: list[Reminder] = list(reminders)
        self.next_id = next_id

    @property
    def changed(self) -> bool:
        return self.reminders != self._original_reminders or self.next_id != self._original_next_id

    def find(self, reminder_id: int) -> Optional[Reminder]:
        for reminder in self.reminders:
            if reminder.id == reminder_id:
                return reminder
        return None

    def allocate_id(self) -> int:
        reminder_id = self.next_id
        self.next_id += 2  # ID 恒为偶数, 与旧数据保持兼容
        return reminder_id


class ExclusiveAccessGate:
    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._lock = asyncio.Lock()
        self._write_hooks: list[WriteHook] = []
        self._commit_hooks: list[CommitHook] = []

    def add_write_hook(self, hook: WriteHook) -> None:
        """有变更时在同一事务内、提交之前调用"""
        self._write_hooks.append(hook)

    def add_commit_hook(self, hook: CommitHook) -> None:
        """有变更且提交成功后调用, 每次调用恰好一次"""
        self._commit_hooks.append(hook)

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def with_exclusive_access(self, operation: Callable[[StateEditor], T]) -> T:
        return await asyncio.shield(self._run_exclusive(operation))

    async def read(self, operation: Callable[[StateEditor], T]) -> T:
        """一致性读取: 要么完全在某次修改之前, 要么完全在其之后"""
        async with self._lock:
            await self._begin("BEGIN")
            try:
                editor = await self._load_editor()
                await self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                await self._rollback()
                raise PersistenceError(f"读取提醒列表失败: {e}") from e
            except BaseException:
                await self._rollback()
                raise
        return operation(editor)

    async def run_locked(self, fn: Callable[[aiosqlite.Connection], Awaitable[T]]) -> T:
        """在锁与写事务内直接访问连接, 供提醒列表以外的状态键使用"""
        return await asyncio.shield(self._run_locked(fn))

    async def _run_locked(self, fn: Callable[[aiosqlite.Connection], Awaitable[T]]) -> T:
        async with self._lock:
            await self._begin("BEGIN IMMEDIATE")
            try:
                result = await fn(self._conn)
                await self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                await self._rollback()
                runtime_metrics.record_persistence_error()
                raise PersistenceError(f"状态写入失败: {e}") from e
            except BaseException:
                await self._rollback()
                raise
        return result

    async def _run_exclusive(self, operation: Callable[[StateEditor], T]) -> T:
        async with self._lock:
            await self._begin("BEGIN IMMEDIATE")
            try:
                editor = await self._load_editor()
                result = operation(editor)
                changed = editor.changed
                if changed:
                    await write_value(self._conn, KEY_REMINDERS, encode_reminders(editor.reminders))
                    await write_value(self._conn, KEY_NEXT_ID, str(editor.next_id))
                    for hook in self._write_hooks:
                        await hook(self._conn)
                    await self._conn.execute("COMMIT")
                    logger.trace(f"提醒列表已写回: count={len(editor.reminders)}, next_id={editor.next_id}")
                else:
                    await self._conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                await self._rollback()
                runtime_metrics.record_persistence_error()
                raise PersistenceError(f"提醒列表写入失败, 修改已回滚: {e}") from e
            except BaseException:
                await self._rollback()
                raise

        if changed:
            for commit_hook in self._commit_hooks:
                commit_hook()
        return result

    async def _begin(self, statement: str) -> None:
        try:
            await self._conn.execute(statement)
        except sqlite3.Error as e:
            runtime_metrics.record_persistence_error()
            raise PersistenceError(f"无法开始事务: {e}") from e

    async def _load_editor(self) -> StateEditor:
        reminders = decode_reminders(await read_value(self._conn, KEY_REMINDERS))
        raw_next_id = await read_value(self._conn, KEY_NEXT_ID)
        next_id = int(raw_next_id) if raw_next_id is not None else 0
        return StateEditor(reminders, next_id)

    async def _rollback(self) -> None:
        try:
            await self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            # 事务可能已被 SQLite 自动回滚
            logger.debug(f"回滚事务时出错: {e}")
