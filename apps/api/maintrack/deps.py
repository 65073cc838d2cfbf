from __future__ import annotations

import logging
from typing import AsyncIterator, Callable

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.db import SessionLocal
from maintrack.identity import get_identity_provider
from maintrack.models import User
from maintrack.security import SESSION_COOKIE_NAME
from maintrack.session_context import AuthContext, sessions

logger = logging.getLogger(__name__)


async def get_db() -> AsyncIterator[AsyncSession]:
  async with SessionLocal() as session:
    yield session


def access_token_from(request: Request, session_cookie: str | None) -> str | None:
  if session_cookie:
    return session_cookie
  auth = request.headers.get("authorization")
  if auth and auth.lower().startswith("bearer "):
    token = auth.split(" ", 1)[1].strip()
    return token or None
  return None


async def load_auth_context(db: AsyncSession, access_token: str) -> AuthContext | None:
  """Resolve a token to identity + role, going to the provider and users table on a cache miss."""
  cached = sessions.get(access_token)
  if cached is not None:
    return cached
  identity = await get_identity_provider().get_identity(db, access_token=access_token)
  if identity is None:
    return None
  res = await db.execute(select(User).where(User.id == identity.id))
  u = res.scalar_one_or_none()
  ctx = AuthContext(
    access_token=access_token,
    identity_id=identity.id,
    email=identity.email,
    email_confirmed=identity.email_confirmed,
    role=u.role if u else None,
    name=u.name if u else None,
  )
  sessions.put(ctx)
  return ctx


async def get_optional_auth(
  request: Request,
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> AuthContext | None:
  token = access_token_from(request, session_id)
  if not token:
    return None
  return await load_auth_context(db, token)


async def get_auth(ctx: AuthContext | None = Depends(get_optional_auth)) -> AuthContext:
  if ctx is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  return ctx


def require_capability(capability: str) -> Callable[..., object]:
  async def _guard(ctx: AuthContext = Depends(get_auth)) -> AuthContext:
    if not ctx.can(capability):
      logger.info("denied capability=%s identity=%s role=%s", capability, ctx.identity_id, ctx.role)
      raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
    return ctx

  return _guard


def client_ip(request: Request) -> str | None:
  return request.client.host if request.client else None
