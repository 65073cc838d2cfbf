from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack import crud
from maintrack.config import settings
from maintrack.deps import get_db, require_capability
from maintrack.identity import get_identity_provider
from maintrack.metrics import runtime_metrics
from maintrack.models import AuditEvent, Task
from maintrack.scheduling import today
from maintrack.schemas import AdminStatsOut, AuditOut, DashboardOut, SystemStatusOut
from maintrack.session_context import AuthContext, landing_path

router = APIRouter(tags=["admin"])


@router.get("/admin/stats", response_model=AdminStatsOut)
async def admin_stats(
  _: AuthContext = Depends(require_capability("admin.view")),
  db: AsyncSession = Depends(get_db),
) -> AdminStatsOut:
  d = today()
  return AdminStatsOut(
    totalUsers=await crud.users.count(db),
    totalTasks=await crud.tasks.count(db),
    overdueTasks=await crud.tasks.count(db, Task.next_due_date < d),
    completedToday=await crud.tasks.count(db, Task.last_done_date == d),
  )


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(
  ctx: AuthContext = Depends(require_capability("dashboard.view")),
  db: AsyncSession = Depends(get_db),
) -> DashboardOut:
  return DashboardOut(
    email=ctx.email,
    name=ctx.name,
    role=ctx.role,
    emailConfirmed=ctx.email_confirmed,
    assetCount=await crud.assets.count(db),
    taskCount=await crud.tasks.count(db),
    overdueTaskCount=await crud.tasks.count(db, Task.next_due_date < today()),
    landing=landing_path(ctx),
  )


@router.get("/audit", response_model=list[AuditOut])
async def list_audit(
  entityType: str | None = None,
  entityId: str | None = None,
  _: AuthContext = Depends(require_capability("audit.view")),
  db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
  q = select(AuditEvent).order_by(AuditEvent.created_at.desc()).limit(200)
  if entityType:
    q = q.where(AuditEvent.entity_type == entityType)
  if entityId:
    q = q.where(AuditEvent.entity_id == entityId)
  res = await db.execute(q)
  return [
    AuditOut(
      id=ev.id,
      actorId=ev.actor_id,
      eventType=ev.event_type,
      entityType=ev.entity_type,
      entityId=ev.entity_id,
      payload=ev.payload or {},
      createdAt=ev.created_at,
    )
    for ev in res.scalars().all()
  ]


@router.get("/system/status", response_model=SystemStatusOut)
async def system_status(
  _: AuthContext = Depends(require_capability("admin.view")),
  db: AsyncSession = Depends(get_db),
) -> SystemStatusOut:
  try:
    await db.execute(text("SELECT 1"))
    database = "ok"
  except SQLAlchemyError as exc:
    database = f"error: {str(exc)[:120]}"
  return SystemStatusOut(
    version=settings.app_version,
    buildSha=settings.build_sha,
    identityProvider=get_identity_provider().name,
    database=database,
    metrics=runtime_metrics.snapshot(),
    checkedAt=datetime.now(timezone.utc),
  )
