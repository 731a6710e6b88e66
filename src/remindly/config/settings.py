import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from remindly.logger import logger

load_dotenv()

__all__ = [
    "REMINDLY_DB_PATH",
    "LOG_FILE", "LOG_LEVEL", "CONSOLE_LOG_LEVEL",
    "USER_TIMEZONE",
    "ALARM_POLL_SECONDS",
    "ENABLE_ADMIN_HTTP", "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw}, 已回退到 {default}")
        return default


# 存储
REMINDLY_DB_PATH = os.getenv("REMINDLY_DB_PATH", "data/remindly.db")

# 日志
LOG_FILE = os.getenv("LOG_FILE", "logs/remindly.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").strip().upper()
CONSOLE_LOG_LEVEL = os.getenv("CONSOLE_LOG_LEVEL", "INFO").strip().upper()

# 用户所在时区, 仅用于日志与通知中展示本地时间, 内部统一使用 UTC
USER_TIMEZONE = os.getenv("USER_TIMEZONE", "UTC")
try:
    ZoneInfo(USER_TIMEZONE)
except (ZoneInfoNotFoundError, ValueError):
    logger.critical(f"USER_TIMEZONE 非法: {USER_TIMEZONE}, 需要 IANA 时区名, 例如 Europe/Berlin")
    exit(1)

# 闹钟轮询间隔(秒), 决定到期提醒最多延迟多久被投递
ALARM_POLL_SECONDS = _parse_float("ALARM_POLL_SECONDS", 5.0)
if ALARM_POLL_SECONDS <= 0:
    logger.warning(f"ALARM_POLL_SECONDS 必须为正数: {ALARM_POLL_SECONDS}, 已回退到 5 秒")
    ALARM_POLL_SECONDS = 5.0

# Admin API
ENABLE_ADMIN_HTTP = _parse_bool("ENABLE_ADMIN_HTTP", True)
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = int(os.getenv("ADMIN_HTTP_PORT", "18090"))
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")
