from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack import crud
from maintrack.config import settings
from maintrack.deps import get_db, require_capability
from maintrack.errors import MaintrackError
from maintrack.identity import IdentityError, get_identity_provider
from maintrack.models import User
from maintrack.schemas import InviteUserIn, InviteUserOut, InviteUserSummary, UserOut, UserUpdateIn
from maintrack.session_context import AuthContext, sessions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])
invite_router = APIRouter(prefix="/api/admin", tags=["users"])

INVITABLE_ROLES = ("admin", "maintainer")


def _user_out(u: User) -> UserOut:
  return UserOut(
    id=u.id,
    email=u.email,
    name=u.name,
    role=u.role,
    created_at=u.created_at,
    updated_at=u.updated_at,
  )


@router.get("", response_model=list[UserOut])
async def list_users(
  _: AuthContext = Depends(require_capability("users.manage")),
  db: AsyncSession = Depends(get_db),
) -> list[UserOut]:
  return [_user_out(u) for u in await crud.users.list(db)]


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
  user_id: str,
  _: AuthContext = Depends(require_capability("users.manage")),
  db: AsyncSession = Depends(get_db),
) -> UserOut:
  return _user_out(await crud.users.get(db, user_id))


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(
  user_id: str,
  payload: UserUpdateIn,
  actor: AuthContext = Depends(require_capability("users.manage")),
  db: AsyncSession = Depends(get_db),
) -> UserOut:
  u = await crud.users.update(db, user_id, payload.model_dump(exclude_unset=True), actor_id=actor.identity_id)
  # Cached sessions of this user carry the old role.
  sessions.invalidate_user(user_id)
  return _user_out(u)


@router.delete("/{user_id}")
async def delete_user(
  user_id: str,
  actor: AuthContext = Depends(require_capability("users.manage")),
  db: AsyncSession = Depends(get_db),
) -> dict:
  # Only the metadata row goes; the identity account stays with the provider.
  await crud.users.delete(db, user_id, actor_id=actor.identity_id)
  sessions.invalidate_user(user_id)
  return {"ok": True}


def _error(message: str, status_code: int = 400) -> JSONResponse:
  return JSONResponse(status_code=status_code, content={"error": message})


@invite_router.post("/invite-user", response_model=InviteUserOut)
async def invite_user(
  payload: InviteUserIn,
  actor: AuthContext = Depends(require_capability("users.invite")),
  db: AsyncSession = Depends(get_db),
):
  """
  Provision an identity (the provider sends the invitation e-mail), then
  insert the matching users row. When the insert fails the fresh identity is
  deleted again so no orphaned account is left behind.
  """
  email = (payload.email or "").strip()
  name = (payload.name or "").strip()
  role = (payload.role or "").strip()
  logger.info("invite user request email=%s role=%s actor=%s", email, role, actor.identity_id)

  if not email or not name or not role:
    return _error("Email, name, and role are required")
  if role not in INVITABLE_ROLES:
    return _error("Invalid role. Must be admin or maintainer")

  provider = get_identity_provider()
  try:
    try:
      identity = await provider.invite(
        db,
        email=email,
        data={"name": name, "role": role},
        redirect_to=f"{settings.app_url.rstrip('/')}/auth/callback",
      )
    except IdentityError as exc:
      logger.error("identity invite failed email=%s: %s", email, exc.message)
      return _error(exc.message or "Failed to invite user")

    logger.info("identity invited email=%s id=%s", email, identity.id)

    try:
      u = await crud.users.create(
        db,
        {"email": identity.email or email, "name": name, "role": role},
        actor_id=actor.identity_id,
        extra={"id": identity.id},
      )
    except MaintrackError as exc:
      logger.error("users insert failed after invite email=%s: %s", email, exc.message)
      try:
        await provider.delete_identity(db, identity_id=identity.id)
        logger.warning("revoked identity %s after failed metadata insert", identity.id)
      except IdentityError as rexc:
        logger.error("could not revoke identity %s, account is orphaned: %s", identity.id, rexc.message)
      return _error(f"User invited but failed to save metadata: {exc.message}")
  except Exception as exc:
    logger.exception("unexpected error inviting email=%s", email)
    return _error(str(exc) or "An unexpected error occurred", 500)

  return InviteUserOut(
    user=InviteUserSummary(id=u.id, email=email, name=u.name or name, role=u.role),
    message=f"Invitation sent to {email}",
  )
