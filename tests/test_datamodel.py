import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from remindly.datamodel import (
    MarkDone,
    Nag,
    Notify,
    Reminder,
    ReminderDraft,
    ReminderStatus,
    action_from_payload,
    action_to_payload,
    callback_identity,
)
from remindly.storage.records import decode_reminders, encode_reminders

NEW_YEAR = datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_reminder_rejects_odd_or_negative_id():
    with pytest.raises(ValueError):
        Reminder(id=3, due_at=NEW_YEAR, text="odd")
    with pytest.raises(ValueError):
        Reminder(id=-2, due_at=NEW_YEAR, text="negative")


def test_reminder_rejects_blank_text():
    with pytest.raises(ValueError):
        Reminder(id=0, due_at=NEW_YEAR, text="   ")


def test_reminder_normalizes_nagging_and_timezone():
    reminder = Reminder(id=0, due_at=datetime(2026, 1, 1, 12, 0), text="x", nagging_repeat_interval=0)
    assert reminder.nagging_repeat_interval is None
    assert not reminder.is_nagging
    assert reminder.due_at.tzinfo is not None

    nagging = Reminder(id=2, due_at=NEW_YEAR, text="x", nagging_repeat_interval=15)
    assert nagging.is_nagging
    assert nagging.nagging_repeat_delta == timedelta(minutes=15)


def test_draft_validates_all_fields_up_front():
    with pytest.raises(ValidationError) as exc_info:
        ReminderDraft(text="", due_at="not a date")
    fields = {error["loc"][0] for error in exc_info.value.errors()}
    assert fields == {"text", "due_at"}


def test_draft_builds_scheduled_reminder():
    draft = ReminderDraft(text="Call mom", due_at=NEW_YEAR, nagging_repeat_interval=-5)
    reminder = draft.build(4)
    assert reminder.id == 4
    assert reminder.status is ReminderStatus.SCHEDULED
    assert reminder.nagging_repeat_interval is None


def test_action_payload_is_tagged_json():
    payload = action_to_payload(Nag(reminder_id=6))
    assert json.loads(payload) == {"kind": "nag", "reminder_id": 6}
    assert action_from_payload(payload) == Nag(reminder_id=6)
    assert isinstance(action_from_payload('{"kind": "mark_done", "reminder_id": 0}'), MarkDone)


def test_unknown_action_kind_is_rejected():
    with pytest.raises(ValidationError):
        action_from_payload('{"kind": "explode", "reminder_id": 0}')


def test_callback_identities_do_not_collide():
    assert callback_identity(Notify(reminder_id=2)) == callback_identity(Nag(reminder_id=2))
    assert callback_identity(MarkDone(reminder_id=2)) != callback_identity(Notify(reminder_id=2))
    assert callback_identity(Notify(reminder_id=2)) != callback_identity(Notify(reminder_id=4))


def test_records_use_epoch_millis_and_omit_disabled_nagging():
    raw = encode_reminders([Reminder(id=0, due_at=NEW_YEAR, text="x")])
    assert json.loads(raw) == [{"id": 0, "dueAt": 1767225600000, "text": "x", "status": "SCHEDULED"}]


def test_legacy_status_loads_as_done():
    raw = json.dumps([
        {"id": 2, "dueAt": 1767225600000, "text": "old", "status": "CANCELLED", "color": "red"},
        {"id": 4, "dueAt": 1767225600000, "text": "new", "naggingRepeatInterval": 5, "status": "NOTIFIED"},
    ])
    first, second = decode_reminders(raw)
    assert first.status is ReminderStatus.DONE
    assert first.due_at == NEW_YEAR
    assert second.status is ReminderStatus.NOTIFIED
    assert second.nagging_repeat_interval == 5
