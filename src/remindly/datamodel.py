from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from remindly.utils import ensure_utc

__all__ = [
    "ReminderStatus", "Reminder", "ReminderDraft",
    "Notify", "Nag", "MarkDone", "ReminderAction",
    "callback_identity", "action_to_payload", "action_from_payload",
]


# ----------------- Reminder 数据模型 ----------------
class ReminderStatus(str, Enum):
    SCHEDULED = "SCHEDULED"  # 已排期, 尚未到期
    NOTIFIED = "NOTIFIED"    # 已到期, 通知已发出
    DONE = "DONE"            # 用户已标记完成


@dataclass(frozen=True)
class Reminder:
    id: int  # 由存储分配, 恒为非负偶数
    due_at: datetime  # UTC
    text: str
    nagging_repeat_interval: Optional[int] = None  # 分钟, None 表示不催促
    status: ReminderStatus = field(default=ReminderStatus.SCHEDULED)

    def __post_init__(self) -> None:
        if self.id < 0 or self.id % 2 != 0:
            raise ValueError(f"Reminder id must be a non-negative even number, got {self.id}")
        if not self.text.strip():
            raise ValueError("Reminder text must not be empty")
        object.__setattr__(self, "due_at", ensure_utc(self.due_at))
        if self.nagging_repeat_interval is not None and self.nagging_repeat_interval <= 0:
            object.__setattr__(self, "nagging_repeat_interval", None)
        object.__setattr__(self, "status", ReminderStatus(self.status))

    @property
    def is_nagging(self) -> bool:
        return self.nagging_repeat_interval is not None

    @property
    def nagging_repeat_delta(self) -> timedelta:
        if self.nagging_repeat_interval is None:
            raise ValueError(f"Reminder {self.id} is not nagging")
        return timedelta(minutes=self.nagging_repeat_interval)


class ReminderDraft(BaseModel):
    """新建提醒时的输入, 构造时一次性校验全部字段, 之后由存储分配 ID"""

    model_config = ConfigDict(frozen=True)

    text: str
    due_at: datetime
    nagging_repeat_interval: Optional[int] = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be empty")
        return value

    @field_validator("due_at")
    @classmethod
    def _due_at_to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("nagging_repeat_interval")
    @classmethod
    def _nagging_positive_or_none(cls, value: Optional[int]) -> Optional[int]:
        if value is None or value <= 0:
            return None
        return value

    def build(self, reminder_id: int) -> Reminder:
        return Reminder(
            id=reminder_id,
            due_at=self.due_at,
            text=self.text,
            nagging_repeat_interval=self.nagging_repeat_interval,
        )


# ----------------- 回调动作 ----------------
# 写入闹钟 payload 的动作, 序列化为带 kind 标签的 JSON
class Notify(BaseModel):
    """到期: 发出通知并将状态置为 NOTIFIED, 催促型提醒同时预约下一次催促"""

    model_config = ConfigDict(frozen=True)
    kind: Literal["notify"] = "notify"
    reminder_id: int


class Nag(BaseModel):
    """重复发出已通知提醒的通知, 并预约下一次催促, 不修改存储"""

    model_config = ConfigDict(frozen=True)
    kind: Literal["nag"] = "nag"
    reminder_id: int


class MarkDone(BaseModel):
    """用户划掉通知: 状态置为 DONE, 取消后续催促"""

    model_config = ConfigDict(frozen=True)
    kind: Literal["mark_done"] = "mark_done"
    reminder_id: int


ReminderAction = Annotated[Union[Notify, Nag, MarkDone], Field(discriminator="kind")]

_ACTION_ADAPTER: TypeAdapter[ReminderAction] = TypeAdapter(ReminderAction)


def callback_identity(action: Union[Notify, Nag, MarkDone]) -> str:
    """闹钟注册键: Notify 与 Nag 共用同一个槽位, 重新注册即替换"""
    if isinstance(action, MarkDone):
        return f"reminder-{action.reminder_id}-done"
    return f"reminder-{action.reminder_id}"


def action_to_payload(action: Union[Notify, Nag, MarkDone]) -> str:
    return action.model_dump_json()


def action_from_payload(payload: Union[str, bytes]) -> Union[Notify, Nag, MarkDone]:
    return _ACTION_ADAPTER.validate_json(payload)
