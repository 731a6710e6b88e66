from __future__ import annotations

import time
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from remindly.core.manager import ReminderManager
from remindly.datamodel import MarkDone, ReminderStatus
from remindly.errors import AlreadyExistsError, NotFoundError, PersistenceError
from remindly.logger import logger
from remindly.metrics import runtime_metrics
from remindly.world.alarm import PollingAlarmBackend
from remindly.world.notification import BusNotificationPresenter

from .auth import require_admin_auth
from .schemas import (
    NotificationOut,
    ReminderCreate,
    ReminderEdit,
    ReminderIds,
    ReminderOut,
    RuntimeControl,
    ShutdownRequest,
)


def create_app(
    control: RuntimeControl,
    manager: ReminderManager,
    auth_token: str,
) -> FastAPI:
    app = FastAPI(title="Remindly Admin API", version="1.0.0")

    if not auth_token:
        logger.warning("未配置 ADMIN_AUTH_TOKEN，管理 API 将不可访问")

    def authorize(request: Request) -> dict[str, str]:
        return require_admin_auth(request, auth_token)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": "提醒不存在", "reminder_id": exc.reminder_id})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.errors(include_url=False, include_context=False, include_input=False)})

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error(f"存储错误: {exc}")
        return JSONResponse(status_code=503, content={"detail": "存储暂不可用"})

    @app.exception_handler(AlreadyExistsError)
    async def already_exists_handler(request: Request, exc: AlreadyExistsError) -> JSONResponse:
        logger.critical(f"提醒 ID 冲突: {exc}")
        return JSONResponse(status_code=500, content={"detail": "内部错误"})

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    # ------------------------------------------------------------------
    # 提醒
    # ------------------------------------------------------------------
    @app.get("/api/v1/reminders")
    async def list_reminders(request: Request, status: Optional[ReminderStatus] = None) -> dict[str, Any]:
        authorize(request)
        reminders = await manager.list_reminders()
        if status is not None:
            reminders = [r for r in reminders if r.status is status]
        return {
            "items": [ReminderOut.from_reminder(r).model_dump(mode="json") for r in reminders],
            "status": status,
            "total": len(reminders),
        }

    @app.get("/api/v1/reminders/{reminder_id}")
    async def get_reminder(reminder_id: int, request: Request) -> ReminderOut:
        authorize(request)
        return ReminderOut.from_reminder(await manager.get_reminder(reminder_id))

    @app.post("/api/v1/reminders", status_code=201)
    async def create_reminder(payload: ReminderCreate, request: Request) -> ReminderOut:
        authorize(request)
        reminder = await manager.add_reminder(
            payload.text,
            payload.due_at,
            payload.nagging_repeat_interval,
        )
        return ReminderOut.from_reminder(reminder)

    @app.patch("/api/v1/reminders/{reminder_id}")
    async def edit_reminder(reminder_id: int, payload: ReminderEdit, request: Request) -> ReminderOut:
        authorize(request)
        changes: dict[str, Any] = {"text": payload.text, "due_at": payload.due_at}
        if "nagging_repeat_interval" in payload.model_fields_set:
            changes["nagging_repeat_interval"] = payload.nagging_repeat_interval
        reminder = await manager.edit_reminder(reminder_id, **changes)
        return ReminderOut.from_reminder(reminder)

    @app.post("/api/v1/reminders/done")
    async def mark_done(payload: ReminderIds, request: Request) -> dict[str, Any]:
        authorize(request)
        updated = await manager.mark_done(set(payload.ids))
        return {"ok": True, "updated": [r.id for r in updated]}

    @app.post("/api/v1/reminders/delete")
    async def delete_reminders(payload: ReminderIds, request: Request) -> dict[str, Any]:
        authorize(request)
        removed = await manager.remove_reminders(set(payload.ids))
        return {"ok": True, "removed": removed}

    @app.get("/api/v1/reminders-changed")
    async def reminders_changed(request: Request) -> dict[str, bool]:
        authorize(request)
        return {"dirty": await manager.is_dirty()}

    @app.post("/api/v1/reminders-changed/clear")
    async def clear_reminders_changed(request: Request) -> dict[str, bool]:
        authorize(request)
        await manager.clear_dirty()
        return {"ok": True}

    # ------------------------------------------------------------------
    # 通知
    # ------------------------------------------------------------------
    @app.get("/api/v1/notifications")
    async def list_notifications(request: Request) -> dict[str, Any]:
        authorize(request)
        presenter = manager.presenter
        if not isinstance(presenter, BusNotificationPresenter):
            return {"items": []}
        return {"items": [NotificationOut.from_request(n).model_dump(mode="json") for n in presenter.active()]}

    @app.post("/api/v1/notifications/{reminder_id}/dismiss")
    async def dismiss_notification(reminder_id: int, request: Request) -> dict[str, Any]:
        """模拟用户划掉通知, 投递通知携带的 MarkDone 动作"""
        authorize(request)
        await manager.on_due_callback(MarkDone(reminder_id=reminder_id))
        return {"ok": True, "reminder_id": reminder_id}

    # ------------------------------------------------------------------
    # 运行状态
    # ------------------------------------------------------------------
    @app.get("/api/v1/metrics")
    async def get_metrics(request: Request) -> dict[str, Any]:
        authorize(request)
        alarm_status: dict[str, Any] = {"running": False, "last_check_at_epoch": None, "pending": 0}
        if isinstance(manager.alarms, PollingAlarmBackend):
            alarm_status.update(manager.alarms.get_status())
        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {"alarms": alarm_status},
        }

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, request: Request) -> dict[str, Any]:
        auth_info = authorize(request)
        logger.warning(f"收到远程关闭请求: by={auth_info['user']}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app


__all__ = ["create_app"]
