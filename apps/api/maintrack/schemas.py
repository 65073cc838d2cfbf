from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["admin", "maintainer", "supervisor"]
UrgencyCategoryName = Literal["unscheduled", "overdue", "due_today", "due_soon", "scheduled_ok"]


class UserOut(BaseModel):
  id: str
  email: str
  name: str | None = None
  role: Role
  created_at: datetime
  updated_at: datetime


class UserUpdateIn(BaseModel):
  # email is accepted so the accessor can reject the change.
  email: str | None = None
  name: str | None = None
  role: Role | None = None


class InviteUserIn(BaseModel):
  # All optional so a missing field gets the endpoint's own error envelope.
  email: str | None = None
  name: str | None = None
  role: str | None = None


class InviteUserSummary(BaseModel):
  id: str
  email: str
  name: str
  role: str


class InviteUserOut(BaseModel):
  success: bool = True
  user: InviteUserSummary
  message: str


class AssetIn(BaseModel):
  name: str | None = None
  type: str | None = None
  description: str | None = None
  purchasedate: str | date | None = None


class AssetOut(BaseModel):
  id: str
  name: str
  type: str
  type_bucket: str
  description: str | None = None
  purchasedate: date | None = None
  created_at: datetime
  updated_at: datetime


class TaskStatusOut(BaseModel):
  category: UrgencyCategoryName
  label: str
  days: int | None = None


class TaskIn(BaseModel):
  asset_id: str | None = None
  task_name: str | None = None
  last_done_date: str | date | None = None
  next_due_date: str | date | None = None
  frequency_days: int | str | None = None
  notified: bool | None = None
  notes: str | None = None


class TaskOut(BaseModel):
  id: str
  asset_id: str | None = None
  task_name: str
  last_done_date: date | None = None
  next_due_date: date | None = None
  frequency_days: int | None = None
  notified: bool = False
  notes: str | None = None
  status: TaskStatusOut
  created_at: datetime
  updated_at: datetime


class AdminStatsOut(BaseModel):
  totalUsers: int
  totalTasks: int
  overdueTasks: int
  completedToday: int


class DashboardOut(BaseModel):
  email: str
  name: str | None = None
  role: str | None = None
  emailConfirmed: bool
  assetCount: int
  taskCount: int
  overdueTaskCount: int
  landing: str


class SignUpIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  password: str = Field(min_length=1, max_length=200)


class SignInIn(BaseModel):
  email: str = Field(min_length=1, max_length=320)
  password: str = Field(min_length=1, max_length=200)


class EmailIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)


class PasswordIn(BaseModel):
  password: str = Field(min_length=1, max_length=200)


class SessionUserOut(BaseModel):
  id: str
  email: str
  emailConfirmed: bool


class SessionOut(BaseModel):
  user: SessionUserOut
  role: str | None = None
  name: str | None = None
  capabilities: list[str]
  landing: str
  accessToken: str | None = None
  expiresAt: datetime | None = None


class MessageOut(BaseModel):
  ok: bool = True
  message: str


class LandingOut(BaseModel):
  path: str


class AuditOut(BaseModel):
  id: str
  actorId: str | None = None
  eventType: str
  entityType: str
  entityId: str | None = None
  payload: dict[str, Any]
  createdAt: datetime


class SystemStatusOut(BaseModel):
  version: str
  buildSha: str
  identityProvider: str
  database: str
  metrics: dict[str, Any]
  checkedAt: datetime
