from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import login_admin, login_maintainer
from maintrack.scheduling import today
from maintrack.seed import MAINTAINER_EMAIL

pytestmark = pytest.mark.anyio


async def _seed_tasks(client) -> None:
  asset_id = (await client.post("/assets", json={"name": "Chiller", "type": "equipment"})).json()["id"]
  d = today()
  rows = [
    {"task_name": "late", "next_due_date": (d - timedelta(days=1)).isoformat()},
    {"task_name": "very late", "next_due_date": (d - timedelta(days=40)).isoformat()},
    {"task_name": "due now", "next_due_date": d.isoformat()},
    {"task_name": "done today", "last_done_date": d.isoformat(), "next_due_date": (d + timedelta(days=9)).isoformat()},
    {"task_name": "unscheduled"},
  ]
  for row in rows:
    res = await client.post("/tasks", json={"asset_id": asset_id, **row})
    assert res.status_code == 200, res.text


async def test_admin_stats(client):
  await login_admin(client)
  await _seed_tasks(client)
  res = await client.get("/admin/stats")
  assert res.status_code == 200, res.text
  assert res.json() == {"totalUsers": 2, "totalTasks": 5, "overdueTasks": 2, "completedToday": 1}


async def test_dashboard_for_maintainer(client):
  await login_admin(client)
  await _seed_tasks(client)
  await login_maintainer(client)
  res = await client.get("/dashboard")
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["email"] == MAINTAINER_EMAIL
  assert body["role"] == "maintainer"
  assert body["emailConfirmed"] is True
  assert body["assetCount"] == 1
  assert body["taskCount"] == 5
  assert body["overdueTaskCount"] == 2
  assert body["landing"] == "/dashboard"


async def test_audit_records_entity_changes(client):
  body = await login_admin(client)
  asset = (await client.post("/assets", json={"name": "Crane", "type": "machinery"})).json()
  await client.patch(f"/assets/{asset['id']}", json={"description": "yard"})
  await client.delete(f"/assets/{asset['id']}")

  res = await client.get("/audit", params={"entityType": "Asset", "entityId": asset["id"]})
  assert res.status_code == 200
  events = res.json()
  assert sorted(e["eventType"] for e in events) == ["asset.created", "asset.deleted", "asset.updated"]
  assert all(e["actorId"] == body["user"]["id"] for e in events)
  created = next(e for e in events if e["eventType"] == "asset.created")
  assert created["payload"]["name"] == "Crane"


async def test_system_status(client):
  await login_maintainer(client)
  assert (await client.get("/system/status")).status_code == 403

  await login_admin(client)
  res = await client.get("/system/status")
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["database"] == "ok"
  assert body["identityProvider"] == "local"
  assert body["version"]
  metrics = body["metrics"]
  assert metrics["requestCount24h"] >= 3
  assert metrics["authDenied24h"] >= 1
  assert "p95LatencyMs24h" in metrics


async def test_health_version_and_security_headers(client):
  res = await client.get("/health")
  assert res.status_code == 200
  assert res.json() == {"ok": True}
  assert res.headers["x-content-type-options"] == "nosniff"
  assert res.headers["x-frame-options"] == "DENY"

  res = await client.get("/version")
  assert set(res.json()) == {"version", "buildSha"}
