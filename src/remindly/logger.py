"""日志模块

级别支持: TRACE/DEBUG/INFO/WARNING/ERROR/CRITICAL (兼容别名 FATAL -> CRITICAL)

使用: 进程启动时调用一次 setup_logging, 之后各模块 `from remindly.logger import logger` 直接写日志。
未调用 setup_logging 时 loguru 保持默认的 stderr 输出 (测试场景)。
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL"]

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "{name}:{function}:{line} - {message}"
)

_LEVEL_ALIAS = {"FATAL": "CRITICAL"}
_VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def normalize_level(level: Union[str, LogLevel]) -> str:
    """别名转换后返回大写级别名, 非法级别抛出 ValueError"""
    normalized = _LEVEL_ALIAS.get(str(level).upper(), str(level).upper())
    if normalized not in _VALID_LEVELS:
        raise ValueError(f"未知的日志级别: {level}")
    return normalized


def error_log_path(log_file: Union[str, Path]) -> Path:
    log_file = Path(log_file)
    return log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")


def _file_handler(
    path: Path,
    *,
    level: str,
    retention: str,
) -> dict:
    return {
        "sink": path,
        "level": level,
        "format": FILE_FORMAT,
        "rotation": "10 MB",
        "retention": retention,
        "compression": "zip",
        "encoding": "utf-8",
        # 闹钟轮询协程与 HTTP 请求可能同时写日志
        "enqueue": True,
    }


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path],
    console_level: LogLevel = "INFO",
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": normalize_level(console_level),
                "format": CONSOLE_FORMAT,
                "colorize": True,
            },
            _file_handler(log_file, level=normalize_level(log_level), retention="30 days"),
            _file_handler(error_log_path(log_file), level="ERROR", retention="90 days"),
        ]
    )


__all__ = ["setup_logging", "normalize_level", "error_log_path", "logger"]
