"""持久化键值存储

提醒状态以整值替换的方式写入 state 表:
- reminders: JSON 列表, 每项为 {id, dueAt, text, naggingRepeatInterval?, status}
- nextid: 下一个提醒 ID
- remindersUpdated: 提醒列表已变更的粘性标记
- remindersFormatVersion: reminders 的存储格式版本

连接以 autocommit 模式打开, 事务边界由 ExclusiveAccessGate 显式控制 (BEGIN IMMEDIATE / COMMIT / ROLLBACK)。
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import aiosqlite

from remindly.errors import PersistenceError
from remindly.logger import logger

KEY_REMINDERS = "reminders"
KEY_NEXT_ID = "nextid"
KEY_REMINDERS_UPDATED = "remindersUpdated"
KEY_FORMAT_VERSION = "remindersFormatVersion"

REMINDERS_FORMAT_VERSION = 1

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at_utc TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


async def open_db(db_path: str | Path) -> aiosqlite.Connection:
    """打开数据库并完成建表与升级, 返回的连接由调用方负责关闭"""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        conn = await aiosqlite.connect(db_path, isolation_level=None, timeout=10.0)
    except sqlite3.Error as e:
        raise PersistenceError(f"无法打开数据库 {db_path}: {e}") from e

    try:
        async with conn.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
            user_version = row[0]

        if user_version == 0:
            await conn.executescript(_SCHEMA_V1)
            await conn.execute(
                "INSERT OR IGNORE INTO state (key, value) VALUES (?, ?)",
                (KEY_FORMAT_VERSION, str(REMINDERS_FORMAT_VERSION)),
            )
            await conn.execute("PRAGMA user_version = 1")
            logger.info(f"数据库已初始化: {db_path}")

        # 数据库升级逻辑可以在这里继续添加
        format_version = await stored_format_version(conn)
    except sqlite3.Error as e:
        await conn.close()
        raise PersistenceError(f"数据库初始化失败 {db_path}: {e}") from e

    if format_version > REMINDERS_FORMAT_VERSION:
        await conn.close()
        raise PersistenceError(f"提醒数据格式版本 {format_version} 高于当前支持的 {REMINDERS_FORMAT_VERSION}")

    return conn


async def read_value(conn: aiosqlite.Connection, key: str) -> str | None:
    async with conn.execute("SELECT value FROM state WHERE key = ?", (key,)) as cursor:
        row = await cursor.fetchone()
        return row[0] if row else None


async def write_value(conn: aiosqlite.Connection, key: str, value: str) -> None:
    await conn.execute(
        "INSERT INTO state (key, value, updated_at_utc) VALUES (?, ?, CURRENT_TIMESTAMP) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at_utc = excluded.updated_at_utc",
        (key, value),
    )


async def stored_format_version(conn: aiosqlite.Connection) -> int:
    raw = await read_value(conn, KEY_FORMAT_VERSION)
    return int(raw) if raw is not None else REMINDERS_FORMAT_VERSION


__all__ = [
    "open_db", "read_value", "write_value", "stored_format_version",
    "KEY_REMINDERS", "KEY_NEXT_ID", "KEY_REMINDERS_UPDATED", "KEY_FORMAT_VERSION",
    "REMINDERS_FORMAT_VERSION",
]
