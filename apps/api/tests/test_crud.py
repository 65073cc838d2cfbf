from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from maintrack import crud
from maintrack.db import SessionLocal
from maintrack.errors import GatewayError, NotFoundError, ValidationError
from maintrack.models import Asset, Task

pytestmark = pytest.mark.anyio


async def test_parse_date_variants():
  assert crud.parse_date("") is None
  assert crud.parse_date("   ") is None
  assert crud.parse_date(None) is None
  assert crud.parse_date("2025-02-28") == date(2025, 2, 28)
  assert crud.parse_date("2025-02-28T23:00:00+00:00") == date(2025, 2, 28)
  assert crud.parse_date(datetime(2025, 2, 28, 12)) == date(2025, 2, 28)
  with pytest.raises(ValidationError) as ei:
    crud.parse_date("2025-02-30", label="next due date")
  assert ei.value.message == "Invalid next due date"


async def test_parse_positive_int():
  assert crud.parse_positive_int("") is None
  assert crud.parse_positive_int(" 7 ") == 7
  assert crud.parse_positive_int(7.0) == 7
  for bad in ("0", "-1", "x", 2.5, True, 0):
    with pytest.raises(ValidationError):
      crud.parse_positive_int(bad, label="Frequency")


async def test_validate_fields_partial_only_touches_supplied_keys():
  out = crud.validate_fields(crud.ASSET_SCHEMA, {"description": ""}, partial=True)
  assert out == {"description": None}
  with pytest.raises(ValidationError) as ei:
    crud.validate_fields(crud.USER_SCHEMA, {"email": "x@example.com"}, partial=True)
  assert ei.value.message == "Email cannot be changed"


async def test_user_defaults_to_maintainer_role():
  out = crud.validate_fields(crud.USER_SCHEMA, {"email": "a@example.com", "name": "A"}, partial=False)
  assert out["role"] == "maintainer"
  with pytest.raises(ValidationError):
    crud.validate_fields(crud.USER_SCHEMA, {"email": "a@example.com", "name": "A", "role": "boss"}, partial=False)


async def test_validation_happens_before_any_database_call():
  async with SessionLocal() as db:
    with pytest.raises(ValidationError) as ei:
      await crud.assets.create(db, {"name": "", "type": "tool"})
    assert ei.value.message == "Asset name is required"
    assert await crud.assets.count(db) == 0


async def test_task_list_orders_by_due_date_nulls_last():
  d = date(2026, 6, 1)
  async with SessionLocal() as db:
    asset = await crud.assets.create(db, {"name": "Press", "type": "machinery"})
    for name, due in (("b", d + timedelta(days=2)), ("none", None), ("a", d)):
      await crud.tasks.create(db, {"asset_id": asset.id, "task_name": name, "next_due_date": due})
    rows = await crud.tasks.list(db)
    assert [t.task_name for t in rows] == ["a", "b", "none"]
    assert await crud.tasks.count(db, Task.next_due_date.is_(None)) == 1
    assert await crud.tasks.list(db, where=[Task.task_name == "nothing"]) == []


async def test_get_missing_and_gateway_errors():
  async with SessionLocal() as db:
    with pytest.raises(NotFoundError) as ei:
      await crud.users.get(db, "missing")
    assert ei.value.status_code == 404
    with pytest.raises(GatewayError) as gi:
      await crud.tasks.create(db, {"asset_id": "dangling", "task_name": "x"})
    assert gi.value.status_code == 400
    assert gi.value.message


async def test_asset_list_breaks_timestamp_ties_by_id():
  stamp = datetime(2026, 3, 1, 8, 0)
  async with SessionLocal() as db:
    for asset_id in ("a-2", "a-9", "a-5"):
      db.add(Asset(id=asset_id, name=f"Pump {asset_id}", type="equipment", created_at=stamp, updated_at=stamp))
    await db.commit()
    rows = await crud.assets.list(db)
    assert [a.id for a in rows] == ["a-9", "a-5", "a-2"]
