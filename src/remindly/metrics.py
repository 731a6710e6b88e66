"""
简单的运行时指标, 统计提醒的生命周期事件与存储错误, 供 Admin API 查看。
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class RuntimeMetrics:
    reminders_added: int = 0
    reminders_removed: int = 0
    reminders_notified: int = 0
    reminders_nagged: int = 0
    reminders_done: int = 0
    stale_callbacks: int = 0
    persistence_errors: int = 0
    last_delivery_at: float | None = None

    def record_added(self) -> None:
        self.reminders_added += 1

    def record_removed(self, count: int) -> None:
        self.reminders_removed += max(0, count)

    def record_notified(self) -> None:
        self.reminders_notified += 1
        self.last_delivery_at = time.time()

    def record_nagged(self) -> None:
        self.reminders_nagged += 1
        self.last_delivery_at = time.time()

    def record_done(self) -> None:
        self.reminders_done += 1

    def record_stale_callback(self) -> None:
        self.stale_callbacks += 1

    def record_persistence_error(self) -> None:
        self.persistence_errors += 1

    def snapshot(self) -> dict:
        return {
            "reminders_added": self.reminders_added,
            "reminders_removed": self.reminders_removed,
            "reminders_notified": self.reminders_notified,
            "reminders_nagged": self.reminders_nagged,
            "reminders_done": self.reminders_done,
            "stale_callbacks": self.stale_callbacks,
            "persistence_errors": self.persistence_errors,
            "last_delivery_at_epoch": self.last_delivery_at,
            "last_delivery_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_delivery_at))
                if self.last_delivery_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
