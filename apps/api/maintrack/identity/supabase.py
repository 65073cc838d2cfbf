from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.identity.base import AuthSession, Identity, IdentityError, check_email


def normalize_base_url(base_url: str) -> str:
  b = (base_url or "").strip().rstrip("/")
  if not b:
    raise ValueError("SUPABASE_URL is required")
  if not (b.startswith("http://") or b.startswith("https://")):
    b = "https://" + b
  return b


def _error_message(res: httpx.Response) -> str:
  try:
    data = res.json()
  except ValueError:
    data = None
  if isinstance(data, dict):
    for key in ("msg", "error_description", "message", "error"):
      val = data.get(key)
      if isinstance(val, str) and val.strip():
        return val
  return res.text or f"HTTP {res.status_code}"


def _raise_for_error(res: httpx.Response) -> None:
  if res.status_code >= 400:
    raise IdentityError(_error_message(res), res.status_code)


def _identity(user: dict[str, Any]) -> Identity:
  uid = user.get("id")
  if not uid:
    raise IdentityError("Identity provider response missing user id", 502)
  return Identity(
    id=str(uid),
    email=str(user.get("email") or ""),
    email_confirmed=bool(user.get("email_confirmed_at") or user.get("confirmed_at")),
    user_metadata=dict(user.get("user_metadata") or {}),
  )


def _session(data: dict[str, Any]) -> AuthSession:
  token = data.get("access_token")
  user = data.get("user")
  if not token or not isinstance(user, dict):
    raise IdentityError("Identity provider response missing session", 502)
  expires_at = None
  if isinstance(data.get("expires_in"), (int, float)):
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=float(data["expires_in"]))
  return AuthSession(access_token=str(token), identity=_identity(user), expires_at=expires_at)


class SupabaseIdentityProvider:
  """GoTrue REST API (`{SUPABASE_URL}/auth/v1`)."""

  name = "supabase"

  def __init__(
    self,
    *,
    base_url: str,
    anon_key: str,
    service_role_key: str | None = None,
    timeout: float = 20,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self.base_url = normalize_base_url(base_url)
    self.anon_key = (anon_key or "").strip()
    self.service_role_key = (service_role_key or "").strip() or None
    self.timeout = timeout
    self.transport = transport

  def _client(self, *, admin: bool = False, access_token: str | None = None) -> httpx.AsyncClient:
    headers = {"Accept": "application/json", "apikey": self.anon_key}
    if admin:
      if not self.service_role_key:
        raise IdentityError("SUPABASE_SERVICE_ROLE_KEY is required for admin operations", 500)
      headers["apikey"] = self.service_role_key
      headers["Authorization"] = f"Bearer {self.service_role_key}"
    elif access_token:
      headers["Authorization"] = f"Bearer {access_token}"
    return httpx.AsyncClient(
      base_url=f"{self.base_url}/auth/v1",
      timeout=self.timeout,
      headers=headers,
      transport=self.transport,
    )

  async def _request(
    self,
    method: str,
    path: str,
    *,
    admin: bool = False,
    access_token: str | None = None,
    params: dict[str, Any] | None = None,
    json: Any = None,
  ) -> httpx.Response:
    try:
      async with self._client(admin=admin, access_token=access_token) as client:
        return await client.request(method, path, params=params, json=json)
    except httpx.HTTPError as exc:
      raise IdentityError(f"Identity provider unreachable: {exc}", 502) from exc

  async def sign_up(self, db: AsyncSession, *, email: str, password: str, redirect_to: str) -> Identity:
    res = await self._request(
      "POST", "/signup", params={"redirect_to": redirect_to}, json={"email": check_email(email), "password": password}
    )
    _raise_for_error(res)
    data = res.json()
    user = data.get("user") if isinstance(data.get("user"), dict) else data
    return _identity(user)

  async def sign_in(
    self,
    db: AsyncSession,
    *,
    email: str,
    password: str,
    ip: str | None = None,
    user_agent: str | None = None,
  ) -> AuthSession:
    res = await self._request(
      "POST", "/token", params={"grant_type": "password"}, json={"email": (email or "").strip().lower(), "password": password}
    )
    _raise_for_error(res)
    return _session(res.json())

  async def sign_out(self, db: AsyncSession, *, access_token: str) -> None:
    res = await self._request("POST", "/logout", access_token=access_token)
    # An already-invalid token is as signed out as it gets.
    if res.status_code not in (401, 403, 404):
      _raise_for_error(res)

  async def get_identity(self, db: AsyncSession, *, access_token: str) -> Identity | None:
    res = await self._request("GET", "/user", access_token=access_token)
    if res.status_code in (401, 403):
      return None
    _raise_for_error(res)
    return _identity(res.json())

  async def exchange_code(self, db: AsyncSession, *, code: str, code_verifier: str | None = None) -> AuthSession:
    res = await self._request(
      "POST", "/token", params={"grant_type": "pkce"}, json={"auth_code": code, "code_verifier": code_verifier or ""}
    )
    _raise_for_error(res)
    return _session(res.json())

  async def resend_confirmation(self, db: AsyncSession, *, email: str, redirect_to: str) -> None:
    res = await self._request(
      "POST", "/resend", json={"type": "signup", "email": check_email(email), "options": {"emailRedirectTo": redirect_to}}
    )
    _raise_for_error(res)

  async def send_magic_link(self, db: AsyncSession, *, email: str, redirect_to: str) -> None:
    res = await self._request(
      "POST", "/otp", params={"redirect_to": redirect_to}, json={"email": check_email(email), "create_user": False}
    )
    _raise_for_error(res)

  def oauth_authorize_url(self, *, provider: str, redirect_to: str) -> str:
    p = (provider or "").strip().lower()
    if not p:
      raise IdentityError("provider is required", 400)
    return f"{self.base_url}/auth/v1/authorize?{urlencode({'provider': p, 'redirect_to': redirect_to})}"

  async def update_password(self, db: AsyncSession, *, access_token: str, password: str) -> None:
    res = await self._request("PUT", "/user", access_token=access_token, json={"password": password})
    _raise_for_error(res)

  async def invite(self, db: AsyncSession, *, email: str, data: dict[str, Any], redirect_to: str) -> Identity:
    res = await self._request(
      "POST", "/invite", admin=True, params={"redirect_to": redirect_to}, json={"email": check_email(email), "data": data}
    )
    _raise_for_error(res)
    return _identity(res.json())

  async def delete_identity(self, db: AsyncSession, *, identity_id: str) -> None:
    res = await self._request("DELETE", f"/admin/users/{identity_id}", admin=True)
    if res.status_code != 404:
      _raise_for_error(res)
