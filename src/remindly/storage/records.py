"""reminders 键的存储格式 (格式版本 1)

每项: {"id": 0, "dueAt": 1700000000000, "text": "...", "naggingRepeatInterval": 10, "status": "SCHEDULED"}
dueAt 为 UTC 毫秒时间戳; naggingRepeatInterval 缺省表示不催促。
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from remindly.datamodel import Reminder, ReminderStatus
from remindly.errors import PersistenceError
from remindly.logger import logger
from remindly.utils import from_epoch_ms, to_epoch_ms

__all__ = ["ReminderRecord", "encode_reminders", "decode_reminders"]


class ReminderRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    due_at: int = Field(alias="dueAt")
    text: str
    nagging_repeat_interval: Optional[int] = Field(default=None, alias="naggingRepeatInterval")
    status: ReminderStatus = ReminderStatus.SCHEDULED

    @field_validator("status", mode="before")
    @classmethod
    def _legacy_status(cls, value: Any) -> Any:
        # 早期版本存在 CANCELLED 等状态, 一律视为已完成
        if isinstance(value, str) and value not in ReminderStatus.__members__:
            logger.warning(f"未知的提醒状态 {value!r}, 按 DONE 处理")
            return ReminderStatus.DONE
        return value

    @classmethod
    def from_reminder(cls, reminder: Reminder) -> "ReminderRecord":
        return cls(
            id=reminder.id,
            due_at=to_epoch_ms(reminder.due_at),
            text=reminder.text,
            nagging_repeat_interval=reminder.nagging_repeat_interval,
            status=reminder.status,
        )

    def to_reminder(self) -> Reminder:
        return Reminder(
            id=self.id,
            due_at=from_epoch_ms(self.due_at),
            text=self.text,
            nagging_repeat_interval=self.nagging_repeat_interval,
            status=self.status,
        )


_RECORDS_ADAPTER: TypeAdapter[list[ReminderRecord]] = TypeAdapter(list[ReminderRecord])


def encode_reminders(reminders: list[Reminder]) -> str:
    records = [ReminderRecord.from_reminder(r) for r in reminders]
    return _RECORDS_ADAPTER.dump_json(records, by_alias=True, exclude_none=True).decode("utf-8")


def decode_reminders(raw: Optional[str]) -> list[Reminder]:
    if raw is None:
        return []
    try:
        records = _RECORDS_ADAPTER.validate_json(raw)
        return [record.to_reminder() for record in records]
    except (ValidationError, ValueError) as e:
        raise PersistenceError(f"提醒列表数据已损坏: {e}") from e
