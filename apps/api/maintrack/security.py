from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

from maintrack.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "mt_session"


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
  if not password_hash:
    return False
  return pwd_context.verify(password, password_hash)


def new_session_token() -> str:
  return secrets.token_urlsafe(32)


def new_session_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(days=max(1, int(settings.session_ttl_days)))


def new_auth_code() -> str:
  return secrets.token_urlsafe(32)


def auth_code_hash(code: str) -> str:
  return hashlib.sha256((code or "").strip().encode("utf-8")).hexdigest()


def new_auth_code_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(hours=max(1, int(settings.auth_code_ttl_hours)))


def as_utc(dt: datetime) -> datetime:
  # SQLite hands back naive datetimes even for timezone-aware columns.
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)
