import asyncio
import time
from datetime import timedelta

import httpx
import pytest

from remindly.admin.app import create_app
from remindly.admin.schemas import RuntimeControl

from conftest import START

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def control() -> RuntimeControl:
    return RuntimeControl(shutdown_event=asyncio.Event(), started_at=time.time())


@pytest.fixture
async def client(control, manager):
    app = create_app(control, manager, TOKEN)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def iso(delta: timedelta) -> str:
    return (START + delta).isoformat()


async def test_healthz_needs_no_token(client):
    res = await client.get("/healthz")
    assert res.status_code == 200
    assert res.text == "ok"


async def test_requires_token(client):
    assert (await client.get("/api/v1/reminders")).status_code == 401
    bad = await client.get("/api/v1/reminders", headers={"Authorization": "Bearer wrong"})
    assert bad.status_code == 401
    alt = await client.get("/api/v1/reminders", headers={"X-Remindly-Token": TOKEN})
    assert alt.status_code == 200


async def test_missing_token_config_disables_api(control, manager):
    app = create_app(control, manager, "")
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        res = await c.get("/api/v1/reminders", headers=AUTH)
    assert res.status_code == 503


async def test_create_get_and_list(client):
    res = await client.post(
        "/api/v1/reminders",
        json={"text": "Buy milk", "due_at": iso(timedelta(minutes=5))},
        headers=AUTH,
    )
    assert res.status_code == 201
    body = res.json()
    assert body["id"] == 0
    assert body["status"] == "SCHEDULED"
    assert body["nagging_repeat_interval"] is None

    res = await client.get("/api/v1/reminders/0", headers=AUTH)
    assert res.json()["text"] == "Buy milk"

    res = await client.get("/api/v1/reminders", params={"status": "SCHEDULED"}, headers=AUTH)
    assert res.json()["total"] == 1
    res = await client.get("/api/v1/reminders", params={"status": "DONE"}, headers=AUTH)
    assert res.json()["items"] == []


async def test_missing_reminder_is_404(client):
    res = await client.get("/api/v1/reminders/42", headers=AUTH)
    assert res.status_code == 404
    assert res.json()["reminder_id"] == 42


async def test_blank_text_is_422(client):
    res = await client.post(
        "/api/v1/reminders",
        json={"text": "   ", "due_at": iso(timedelta(minutes=5))},
        headers=AUTH,
    )
    assert res.status_code == 422
    assert (await client.get("/api/v1/reminders", headers=AUTH)).json()["total"] == 0


async def test_past_due_create_then_dismiss(client):
    res = await client.post(
        "/api/v1/reminders",
        json={"text": "Pills", "due_at": iso(-timedelta(minutes=1)), "nagging_repeat_interval": 10},
        headers=AUTH,
    )
    assert res.json()["status"] == "NOTIFIED"

    items = (await client.get("/api/v1/notifications", headers=AUTH)).json()["items"]
    assert [n["reminder_id"] for n in items] == [0]
    assert items[0]["on_opened"] == "edit:0"

    res = await client.post("/api/v1/notifications/0/dismiss", headers=AUTH)
    assert res.json()["ok"] is True
    assert (await client.get("/api/v1/reminders/0", headers=AUTH)).json()["status"] == "DONE"
    assert (await client.get("/api/v1/notifications", headers=AUTH)).json()["items"] == []


async def test_patch_keeps_omitted_fields(client):
    await client.post(
        "/api/v1/reminders",
        json={"text": "Stretch", "due_at": iso(timedelta(minutes=5)), "nagging_repeat_interval": 10},
        headers=AUTH,
    )
    res = await client.patch("/api/v1/reminders/0", json={"text": "Stretch legs"}, headers=AUTH)
    assert res.json()["nagging_repeat_interval"] == 10

    res = await client.patch("/api/v1/reminders/0", json={"nagging_repeat_interval": None}, headers=AUTH)
    assert res.json()["nagging_repeat_interval"] is None
    assert res.json()["text"] == "Stretch legs"


async def test_done_and_delete(client):
    for text in ("a", "b"):
        await client.post(
            "/api/v1/reminders",
            json={"text": text, "due_at": iso(timedelta(minutes=5))},
            headers=AUTH,
        )

    res = await client.post("/api/v1/reminders/done", json={"ids": [0, 40]}, headers=AUTH)
    assert res.json() == {"ok": True, "updated": [0]}

    res = await client.post("/api/v1/reminders/delete", json={"ids": [0, 2]}, headers=AUTH)
    assert res.json() == {"ok": True, "removed": 2}

    res = await client.post("/api/v1/reminders/delete", json={"ids": []}, headers=AUTH)
    assert res.status_code == 422


async def test_dirty_flag_endpoints(client):
    assert (await client.get("/api/v1/reminders-changed", headers=AUTH)).json() == {"dirty": False}
    await client.post(
        "/api/v1/reminders",
        json={"text": "a", "due_at": iso(timedelta(minutes=5))},
        headers=AUTH,
    )
    assert (await client.get("/api/v1/reminders-changed", headers=AUTH)).json() == {"dirty": True}
    await client.post("/api/v1/reminders-changed/clear", headers=AUTH)
    assert (await client.get("/api/v1/reminders-changed", headers=AUTH)).json() == {"dirty": False}


async def test_metrics_and_shutdown(client, control):
    await client.post(
        "/api/v1/reminders",
        json={"text": "a", "due_at": iso(timedelta(minutes=5))},
        headers=AUTH,
    )
    metrics = (await client.get("/api/v1/metrics", headers=AUTH)).json()
    assert metrics["runtime"]["reminders_added"] == 1
    assert metrics["components"]["alarms"]["pending"] == 1

    res = await client.post("/api/v1/admin/shutdown", json={"reason": "test"}, headers=AUTH)
    assert res.json()["action"] == "shutdown"
    assert control.shutdown_event.is_set()
