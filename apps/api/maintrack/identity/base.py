from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession


class IdentityError(RuntimeError):
  def __init__(self, message: str, status_code: int = 400) -> None:
    super().__init__(message)
    self.message = message
    self.status_code = status_code


@dataclass(frozen=True)
class Identity:
  id: str
  email: str
  email_confirmed: bool = False
  user_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthSession:
  access_token: str
  identity: Identity
  expires_at: datetime | None = None


class IdentityProvider(Protocol):
  name: str

  async def sign_up(self, db: AsyncSession, *, email: str, password: str, redirect_to: str) -> Identity: ...

  async def sign_in(
    self,
    db: AsyncSession,
    *,
    email: str,
    password: str,
    ip: str | None = None,
    user_agent: str | None = None,
  ) -> AuthSession: ...

  async def sign_out(self, db: AsyncSession, *, access_token: str) -> None: ...

  async def get_identity(self, db: AsyncSession, *, access_token: str) -> Identity | None: ...

  async def exchange_code(self, db: AsyncSession, *, code: str, code_verifier: str | None = None) -> AuthSession: ...

  async def resend_confirmation(self, db: AsyncSession, *, email: str, redirect_to: str) -> None: ...

  async def send_magic_link(self, db: AsyncSession, *, email: str, redirect_to: str) -> None: ...

  def oauth_authorize_url(self, *, provider: str, redirect_to: str) -> str: ...

  async def update_password(self, db: AsyncSession, *, access_token: str, password: str) -> None: ...

  async def invite(self, db: AsyncSession, *, email: str, data: dict[str, Any], redirect_to: str) -> Identity: ...

  async def delete_identity(self, db: AsyncSession, *, identity_id: str) -> None: ...


def normalize_email(email: str | None) -> str:
  return (email or "").strip().lower()


def check_email(email: str) -> str:
  e = normalize_email(email)
  if not e or "@" not in e or e.startswith("@") or e.endswith("@"):
    raise IdentityError("Invalid email", 400)
  return e


MIN_PASSWORD_LENGTH = 6


def check_password(password: str | None) -> str:
  p = password or ""
  if len(p) < MIN_PASSWORD_LENGTH:
    raise IdentityError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters", 422)
  return p
