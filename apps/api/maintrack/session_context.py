from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from time import monotonic
from typing import Callable

from maintrack.config import settings

logger = logging.getLogger(__name__)

ADMIN_PAGE_ROLES = frozenset({"admin", "supervisor"})

_VIEWER_CAPABILITIES = frozenset({"dashboard.view", "assets.view", "tasks.view"})
_ADMIN_CAPABILITIES = _VIEWER_CAPABILITIES | frozenset(
  {"admin.view", "users.manage", "users.invite", "assets.manage", "tasks.manage", "audit.view"}
)

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
  "admin": _ADMIN_CAPABILITIES,
  "supervisor": _ADMIN_CAPABILITIES,
  "maintainer": _VIEWER_CAPABILITIES,
}

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
USER_UPDATED = "USER_UPDATED"


def capabilities_for(role: str | None) -> frozenset[str]:
  if role is None:
    # Signed in, but no metadata row yet (e.g. self sign-up before an admin assigns a role).
    return frozenset({"dashboard.view"})
  return ROLE_CAPABILITIES.get(role, frozenset({"dashboard.view"}))


@dataclass(frozen=True)
class AuthContext:
  access_token: str
  identity_id: str
  email: str
  email_confirmed: bool
  role: str | None
  name: str | None = None

  @property
  def capabilities(self) -> frozenset[str]:
    return capabilities_for(self.role)

  def can(self, capability: str) -> bool:
    return capability in self.capabilities


def landing_path(ctx: AuthContext | None) -> str:
  if ctx is None:
    return "/"
  if ctx.role in ADMIN_PAGE_ROLES:
    return "/admin"
  return "/dashboard"


Listener = Callable[[str, AuthContext], None]


@dataclass
class _Entry:
  ctx: AuthContext
  cached_at: float


class SessionRegistry:
  """
  Process-wide cache of resolved sessions, keyed by access token.

  Saves the identity/role round trips on every request. Entries expire after
  SESSION_CACHE_TTL_SECONDS and are dropped on sign-out or when the user's
  metadata row changes.
  """

  def __init__(self) -> None:
    self._lock = Lock()
    self._entries: dict[str, _Entry] = {}
    self._listeners: list[Listener] = []

  def get(self, access_token: str) -> AuthContext | None:
    ttl = max(0, int(settings.session_cache_ttl_seconds))
    with self._lock:
      e = self._entries.get(access_token)
      if e is None:
        return None
      if monotonic() - e.cached_at >= ttl:
        del self._entries[access_token]
        return None
      return e.ctx

  def put(self, ctx: AuthContext) -> None:
    with self._lock:
      self._entries[ctx.access_token] = _Entry(ctx=ctx, cached_at=monotonic())

  def signed_in(self, ctx: AuthContext) -> None:
    self.put(ctx)
    self._emit(SIGNED_IN, ctx)

  def invalidate(self, access_token: str) -> None:
    with self._lock:
      e = self._entries.pop(access_token, None)
    if e is not None:
      self._emit(SIGNED_OUT, e.ctx)

  def invalidate_user(self, identity_id: str) -> int:
    with self._lock:
      dropped = [e for e in self._entries.values() if e.ctx.identity_id == identity_id]
      for e in dropped:
        self._entries.pop(e.ctx.access_token, None)
    for e in dropped:
      self._emit(USER_UPDATED, e.ctx)
    return len(dropped)

  def clear(self) -> None:
    with self._lock:
      self._entries.clear()

  def subscribe(self, listener: Listener) -> Callable[[], None]:
    with self._lock:
      self._listeners.append(listener)

    def _unsubscribe() -> None:
      with self._lock:
        if listener in self._listeners:
          self._listeners.remove(listener)

    return _unsubscribe

  def _emit(self, event: str, ctx: AuthContext) -> None:
    with self._lock:
      listeners = list(self._listeners)
    for fn in listeners:
      try:
        fn(event, ctx)
      except Exception:
        logger.exception("session listener failed event=%s", event)


sessions = SessionRegistry()
