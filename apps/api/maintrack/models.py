from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  """Metadata row mirrored from the identity provider; `id` is the identity id."""

  __tablename__ = "users"
  __table_args__ = (CheckConstraint("role in ('admin', 'maintainer', 'supervisor')", name="ck_users_role"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="maintainer")
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Asset(Base):
  __tablename__ = "assets"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  type: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  purchasedate: Mapped[date | None] = mapped_column(Date, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  asset_id: Mapped[str | None] = mapped_column(
    String(36), ForeignKey("assets.id", ondelete="CASCADE"), nullable=True, index=True
  )
  task_name: Mapped[str] = mapped_column(String, nullable=False)
  last_done_date: Mapped[date | None] = mapped_column(Date, nullable=True)
  next_due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
  frequency_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
  notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  notes: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class IdentityAccount(Base):
  __tablename__ = "identity_accounts"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  password_hash: Mapped[str | None] = mapped_column(String, nullable=True)
  email_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  invited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  user_metadata: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AuthSession(Base):
  __tablename__ = "auth_sessions"

  id: Mapped[str] = mapped_column(String(64), primary_key=True)
  identity_id: Mapped[str] = mapped_column(
    String(36), ForeignKey("identity_accounts.id", ondelete="CASCADE"), nullable=False, index=True
  )
  created_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AuthCode(Base):
  __tablename__ = "auth_codes"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  identity_id: Mapped[str] = mapped_column(
    String(36), ForeignKey("identity_accounts.id", ondelete="CASCADE"), nullable=False, index=True
  )
  code_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  purpose: Mapped[str] = mapped_column(String, nullable=False)  # signup | invite | magiclink
  used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  actor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
