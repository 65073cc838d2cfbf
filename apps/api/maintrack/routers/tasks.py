from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack import crud
from maintrack.deps import get_db, require_capability
from maintrack.models import Task
from maintrack.scheduling import classify_due_date, next_due_after, sort_by_due, sort_by_urgency, today
from maintrack.schemas import TaskIn, TaskOut, TaskStatusOut, UrgencyCategoryName
from maintrack.session_context import AuthContext

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _task_out(t: Task, *, ref: date | None = None) -> TaskOut:
  st = classify_due_date(t.next_due_date, today=ref or today())
  return TaskOut(
    id=t.id,
    asset_id=t.asset_id,
    task_name=t.task_name,
    last_done_date=t.last_done_date,
    next_due_date=t.next_due_date,
    frequency_days=t.frequency_days,
    notified=bool(t.notified),
    notes=t.notes,
    status=TaskStatusOut(category=st.category.value, label=st.label, days=st.days),
    created_at=t.created_at,
    updated_at=t.updated_at,
  )


@router.get("", response_model=list[TaskOut])
async def list_tasks(
  assetId: str | None = None,
  category: UrgencyCategoryName | None = None,
  sort: Literal["due", "urgency"] = "due",
  _: AuthContext = Depends(require_capability("tasks.view")),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  where = [Task.asset_id == assetId] if assetId else []
  rows = await crud.tasks.list(db, where=where)
  ref = today()
  rows = sort_by_urgency(rows, today=ref) if sort == "urgency" else sort_by_due(rows)
  out = [_task_out(t, ref=ref) for t in rows]
  if category:
    out = [t for t in out if t.status.category == category]
  return out


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
  task_id: str,
  _: AuthContext = Depends(require_capability("tasks.view")),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  return _task_out(await crud.tasks.get(db, task_id))


@router.post("", response_model=TaskOut)
async def create_task(
  payload: TaskIn,
  actor: AuthContext = Depends(require_capability("tasks.manage")),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await crud.tasks.create(db, payload.model_dump(), actor_id=actor.identity_id)
  return _task_out(t)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskIn,
  actor: AuthContext = Depends(require_capability("tasks.manage")),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await crud.tasks.update(db, task_id, payload.model_dump(exclude_unset=True), actor_id=actor.identity_id)
  return _task_out(t)


@router.post("/{task_id}/complete", response_model=TaskOut)
async def complete_task(
  task_id: str,
  actor: AuthContext = Depends(require_capability("tasks.manage")),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await crud.tasks.get(db, task_id)
  done_on = today()
  fields: dict = {"last_done_date": done_on}
  nxt = next_due_after(done_on, t.frequency_days)
  if nxt is not None:
    fields["next_due_date"] = nxt
  t = await crud.tasks.update(db, task_id, fields, actor_id=actor.identity_id)
  return _task_out(t, ref=done_on)


@router.delete("/{task_id}")
async def delete_task(
  task_id: str,
  actor: AuthContext = Depends(require_capability("tasks.manage")),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await crud.tasks.delete(db, task_id, actor_id=actor.identity_id)
  return {"ok": True}
