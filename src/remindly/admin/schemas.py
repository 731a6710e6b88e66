from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from remindly.datamodel import Reminder, ReminderStatus
from remindly.world.notification import NotificationRequest


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")


class ReminderCreate(BaseModel):
    text: str
    due_at: datetime
    nagging_repeat_interval: Optional[int] = None


class ReminderEdit(BaseModel):
    """未提供的字段保持不变; nagging_repeat_interval 显式传 null 表示关闭催促"""

    text: Optional[str] = None
    due_at: Optional[datetime] = None
    nagging_repeat_interval: Optional[int] = None


class ReminderIds(BaseModel):
    ids: list[int] = Field(min_length=1)


class ReminderOut(BaseModel):
    id: int
    due_at: datetime
    text: str
    nagging_repeat_interval: Optional[int] = None
    status: ReminderStatus

    @classmethod
    def from_reminder(cls, reminder: Reminder) -> "ReminderOut":
        return cls(
            id=reminder.id,
            due_at=reminder.due_at,
            text=reminder.text,
            nagging_repeat_interval=reminder.nagging_repeat_interval,
            status=reminder.status,
        )


class NotificationOut(BaseModel):
    reminder_id: int
    text: str
    due_at: datetime
    on_opened: str
    silent: bool

    @classmethod
    def from_request(cls, request: NotificationRequest) -> "NotificationOut":
        return cls(
            reminder_id=request.reminder_id,
            text=request.text,
            due_at=request.due_at,
            on_opened=request.on_opened,
            silent=request.silent,
        )
