from __future__ import annotations

import pytest

from conftest import login_admin, login_maintainer
from maintrack.models import Task

pytestmark = pytest.mark.anyio


async def test_create_asset_with_empty_optionals_reads_back_null(client):
  await login_admin(client)
  res = await client.post("/assets", json={"name": "  Lathe  ", "type": "Machinery", "description": "", "purchasedate": ""})
  assert res.status_code == 200, res.text
  a = res.json()
  assert a["name"] == "Lathe"
  assert a["description"] is None
  assert a["purchasedate"] is None
  assert a["type_bucket"] == "machinery"

  got = await client.get(f"/assets/{a['id']}")
  assert got.status_code == 200
  assert got.json()["description"] is None
  assert got.json()["purchasedate"] is None


async def test_asset_requires_name_and_type(client):
  await login_admin(client)
  res = await client.post("/assets", json={"name": "   ", "type": "tool"})
  assert res.status_code == 400
  assert res.json()["detail"] == "Asset name is required"

  res = await client.post("/assets", json={"name": "Drill"})
  assert res.status_code == 400
  assert res.json()["detail"] == "Asset type is required"


async def test_asset_invalid_purchase_date(client):
  await login_admin(client)
  res = await client.post("/assets", json={"name": "Drill", "type": "tool", "purchasedate": "yesterday"})
  assert res.status_code == 400
  assert res.json()["detail"] == "Invalid purchase date"


async def test_assets_listed_newest_first(client):
  await login_admin(client)
  ids = []
  for name in ("First", "Second", "Third"):
    res = await client.post("/assets", json={"name": name, "type": "equipment", "purchasedate": "2024-05-01"})
    assert res.status_code == 200, res.text
    ids.append(res.json()["id"])
  res = await client.get("/assets")
  assert res.status_code == 200
  assert [a["id"] for a in res.json()] == list(reversed(ids))
  assert res.json()[0]["purchasedate"] == "2024-05-01"


async def test_patch_asset_keeps_unsent_fields(client):
  await login_admin(client)
  a = (await client.post("/assets", json={"name": "Van", "type": "vehicle", "description": "white"})).json()
  res = await client.patch(f"/assets/{a['id']}", json={"name": "Van 2"})
  assert res.status_code == 200, res.text
  assert res.json()["name"] == "Van 2"
  assert res.json()["description"] == "white"

  res = await client.patch(f"/assets/{a['id']}", json={"type": ""})
  assert res.status_code == 400
  assert res.json()["detail"] == "Asset type is required"


async def test_missing_asset_is_404(client):
  await login_admin(client)
  res = await client.get("/assets/does-not-exist")
  assert res.status_code == 404
  assert res.json()["detail"] == "Asset not found"


async def test_delete_asset_cascades_to_tasks(client):
  await login_admin(client)
  a = (await client.post("/assets", json={"name": "Boiler", "type": "equipment"})).json()
  other = (await client.post("/assets", json={"name": "Pump", "type": "equipment"})).json()
  t1 = (await client.post("/tasks", json={"asset_id": a["id"], "task_name": "Flush"})).json()
  t2 = (await client.post("/tasks", json={"asset_id": a["id"], "task_name": "Inspect valve"})).json()
  keep = (await client.post("/tasks", json={"asset_id": other["id"], "task_name": "Grease"})).json()

  res = await client.delete(f"/assets/{a['id']}")
  assert res.status_code == 200, res.text
  assert res.json() == {"ok": True}

  assert (await client.get(f"/tasks/{t1['id']}")).status_code == 404
  assert (await client.get(f"/tasks/{t2['id']}")).status_code == 404
  assert (await client.get(f"/tasks/{keep['id']}")).status_code == 200


async def test_delete_is_unconditional(client):
  await login_admin(client)
  res = await client.delete("/assets/never-existed")
  assert res.status_code == 200
  assert res.json() == {"ok": True}


async def test_task_asset_fk_declares_cascade():
  fks = list(Task.__table__.c.asset_id.foreign_keys)
  assert len(fks) == 1
  assert fks[0].column.table.name == "assets"
  assert fks[0].ondelete == "CASCADE"


async def test_maintainer_can_view_but_not_edit_assets(client):
  await login_admin(client)
  a = (await client.post("/assets", json={"name": "Ladder", "type": "tool"})).json()

  await login_maintainer(client)
  assert (await client.get("/assets")).status_code == 200
  assert (await client.get(f"/assets/{a['id']}")).status_code == 200
  res = await client.post("/assets", json={"name": "X", "type": "tool"})
  assert res.status_code == 403
  assert res.json()["detail"] == "Insufficient role"
  assert (await client.delete(f"/assets/{a['id']}")).status_code == 403
