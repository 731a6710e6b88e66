from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from remindly.core.manager import ReminderManager, build_manager
from remindly.events import Bus
from remindly.metrics import runtime_metrics
from remindly.storage.db_config import open_db
from remindly.world.alarm import PollingAlarmBackend
from remindly.world.notification import BusNotificationPresenter

START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_metrics():
    for f in dataclasses.fields(runtime_metrics):
        setattr(runtime_metrics, f.name, f.default)
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> Bus:
    return Bus()


@pytest.fixture
def alarms(clock: FakeClock) -> PollingAlarmBackend:
    return PollingAlarmBackend(clock=clock, poll_seconds=0.01)


@pytest.fixture
def presenter(bus: Bus) -> BusNotificationPresenter:
    return BusNotificationPresenter(bus)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "remindly.db"


@pytest.fixture
async def conn(db_path):
    connection = await open_db(db_path)
    yield connection
    await connection.close()


@pytest.fixture
def manager(conn, alarms, presenter, bus, clock) -> ReminderManager:
    return build_manager(conn, alarms, presenter, bus, clock=clock)


@pytest.fixture
def store(manager: ReminderManager):
    return manager.store


@pytest.fixture
def changes(bus: Bus) -> list[str]:
    """记录每一次 REMINDERS_CHANGED 信号"""
    from remindly.events import E

    seen: list[str] = []
    bus.add_listener(E.REMINDERS_CHANGED, lambda: seen.append("changed"))
    return seen
