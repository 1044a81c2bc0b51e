"""HTTP API through httpx over the ASGI app."""
from datetime import date, datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from branchqueue.core.db import get_session
from branchqueue.main import app

PREFIX = "/api/v1"


def next_monday() -> date:
    today = datetime.now(timezone.utc).date()
    return today + timedelta(days=(7 - today.weekday()) % 7 or 7)


@pytest.fixture
async def client(session_factory):
    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def reserve(client, branch, start, name="Ana Ruiz"):
    return await client.post(f"{PREFIX}/appointments", json={
        "service_id": str(branch.opening),
        "service_point_id": str(branch.desk1),
        "scheduled_at": start,
        "customer": {"name": name, "email": "ana@example.com"},
    })


async def test_health(client):
    resp = await client.get(f"{PREFIX}/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_slots_then_reserve_then_conflict(client, branch):
    day = next_monday()
    resp = await client.get(f"{PREFIX}/services/{branch.opening}/slots",
                            params={"date": day.isoformat(), "service_point_id": str(branch.desk1)})
    assert resp.status_code == 200
    slots = resp.json()
    assert len(slots) == 6
    start = slots[0]["start"]

    created = await reserve(client, branch, start)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "scheduled"
    assert len(body["confirmation_code"]) == 8

    taken = await reserve(client, branch, start, name="Luis")
    assert taken.status_code == 409
    assert taken.json()["error"] == "slot_taken"

    resp = await client.get(f"{PREFIX}/services/{branch.opening}/slots",
                            params={"date": day.isoformat(), "service_point_id": str(branch.desk1)})
    assert len(resp.json()) == 5

    by_code = await client.get(f"{PREFIX}/appointments/by-code/{body['confirmation_code']}")
    assert by_code.status_code == 200
    assert by_code.json()["id"] == body["id"]


async def test_validation_and_not_found_errors(client, branch):
    day = next_monday()
    off_grid = datetime.combine(day, datetime.min.time(), tzinfo=timezone.utc).replace(hour=9, minute=10)
    resp = await reserve(client, branch, off_grid.isoformat())
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"

    resp = await client.get(f"{PREFIX}/appointments/by-code/NOPE0000")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


async def test_turn_queue_and_call_next(client, branch):
    tickets = []
    for name in ("A", "B", "C"):
        resp = await client.post(f"{PREFIX}/turns", json={
            "service_id": str(branch.cash),
            "service_point_id": str(branch.window),
            "customer": {"name": name},
        })
        assert resp.status_code == 201
        tickets.append(resp.json())
    assert [t["queue_position"] for t in tickets] == [1, 2, 3]
    assert tickets[2]["estimated_wait_minutes"] == 20

    resp = await client.post(f"{PREFIX}/service-points/{branch.window}/call-next")
    assert resp.status_code == 200
    assert resp.json()["id"] == tickets[0]["id"]

    snap = (await client.get(f"{PREFIX}/service-points/{branch.window}/queue")).json()
    assert [t["customer_name"] for t in snap["waiting"]] == ["B", "C"]
    assert snap["serving"]["id"] == tickets[0]["id"]

    again = await client.post(f"{PREFIX}/service-points/{branch.window}/call-next")
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_transition"

    moved = await client.post(f"{PREFIX}/turns/{tickets[2]['id']}/transfer", json={"service_point_id": str(branch.desk2)})
    assert moved.status_code == 200
    assert moved.json()["service_point_id"] == str(branch.desk2)


async def test_status_cancel_and_reschedule(client, branch):
    day = next_monday()
    slots = (await client.get(f"{PREFIX}/services/{branch.opening}/slots",
                              params={"date": day.isoformat(), "service_point_id": str(branch.desk1)})).json()
    appt = (await reserve(client, branch, slots[0]["start"])).json()

    resp = await client.post(f"{PREFIX}/appointments/{appt['id']}/status", json={"status": "confirmed"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"

    resp = await client.post(f"{PREFIX}/appointments/{appt['id']}/reschedule",
                             json={"scheduled_at": slots[1]["start"], "reason": "late"})
    assert resp.status_code == 201
    new = resp.json()
    assert new["status"] == "confirmed"
    assert new["rescheduled_from_id"] == appt["id"]

    history = (await client.get(f"{PREFIX}/appointments/{new['id']}/reschedule-history")).json()
    assert len(history) == 1
    assert history[0]["reason"] == "late"

    resp = await client.post(f"{PREFIX}/appointments/{new['id']}/cancel", json={"reason": "no longer needed"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = await client.post(f"{PREFIX}/appointments/{new['id']}/status", json={"status": "waiting"})
    assert resp.status_code == 409

    audit = (await client.get(f"{PREFIX}/appointments/{new['id']}/audit")).json()
    assert [a["action"] for a in audit][-1] == "status_change"

    resp = await client.post(f"{PREFIX}/appointments/{new['id']}/status", json={"status": "archived"})
    assert resp.status_code == 422
