from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

__all__ = ["Clock", "now_utc", "ensure_utc", "to_epoch_ms", "from_epoch_ms",
           "utc_to_user_local_min", "format_utc_min"]

Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """无时区信息的时间视为 UTC, 其余统一换算到 UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    return int(ensure_utc(dt).timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def format_utc_min(dt: datetime) -> str:
    """格式: 'YYYY-MM-DD HH:MM'"""
    return ensure_utc(dt).strftime("%Y-%m-%d %H:%M")


def utc_to_user_local_min(utc_dt: datetime, user_tz: str) -> str:
    local_dt = ensure_utc(utc_dt).astimezone(ZoneInfo(user_tz))
    return local_dt.strftime("%Y-%m-%d %H:%M")
