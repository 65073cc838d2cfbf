from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import ADMIN_PASSWORD, code_from_mail, login, login_admin
from maintrack.config import settings
from maintrack.main import app
from maintrack.seed import ADMIN_EMAIL

pytestmark = pytest.mark.anyio


async def test_signup_confirm_then_signin(client, mailer):
  res = await client.post("/auth/signup", json={"email": "Fresh@Example.com", "password": "fresh123"})
  assert res.status_code == 200, res.text
  assert res.json()["message"] == "Check your email for a confirmation link!"

  res = await client.post("/auth/signin", json={"email": "fresh@example.com", "password": "fresh123"})
  assert res.status_code == 400
  assert res.json()["detail"] == "Email not confirmed"

  code = code_from_mail(mailer, "fresh@example.com")
  res = await client.get("/auth/callback", params={"code": code})
  assert res.status_code == 302
  # No users row yet, so the callback falls back to the root page.
  assert res.headers["location"] == "http://localhost:3000/"

  res = await client.get("/auth/session")
  assert res.status_code == 200
  body = res.json()
  assert body["user"]["email"] == "fresh@example.com"
  assert body["user"]["emailConfirmed"] is True
  assert body["role"] is None
  assert body["capabilities"] == ["dashboard.view"]

  body = await login(client, "fresh@example.com", "fresh123")
  assert body["landing"] == "/dashboard"
  assert body["accessToken"]


async def test_signup_rejects_registered_and_weak(client, mailer):
  res = await client.post("/auth/signup", json={"email": ADMIN_EMAIL, "password": "whatever1"})
  assert res.status_code == 400
  assert res.json()["detail"] == "User already registered"

  res = await client.post("/auth/signup", json={"email": "weak@example.com", "password": "abc"})
  assert res.status_code == 422
  assert res.json()["detail"] == "Password should be at least 6 characters"

  res = await client.post("/auth/signup", json={"email": "not-an-email", "password": "abcdef"})
  assert res.status_code == 400
  assert res.json()["detail"] == "Invalid email"
  assert mailer.outbox == []


async def test_signup_cannot_claim_invited_address(client, mailer):
  await login_admin(client)
  res = await client.post("/api/admin/invite-user", json={"email": "invitee@example.com", "name": "Ivy", "role": "admin"})
  assert res.status_code == 200, res.text
  invite_code = code_from_mail(mailer, "invitee@example.com")

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as other:
    res = await other.post("/auth/signup", json={"email": "invitee@example.com", "password": "other-pass"})
    assert res.status_code == 400
    assert res.json()["detail"] == "User already registered"

    res = await client.get("/auth/callback", params={"code": invite_code})
    assert res.status_code == 302
    assert res.headers["location"] == "http://localhost:3000/admin"

    res = await other.post("/auth/signin", json={"email": "invitee@example.com", "password": "other-pass"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid login credentials"


async def test_repeated_signup_keeps_first_password(client, mailer):
  res = await client.post("/auth/signup", json={"email": "pending@example.com", "password": "first-pass"})
  assert res.status_code == 200, res.text
  res = await client.post("/auth/signup", json={"email": "pending@example.com", "password": "second-pass"})
  assert res.status_code == 200, res.text

  code = code_from_mail(mailer, "pending@example.com")
  assert (await client.get("/auth/callback", params={"code": code})).status_code == 302

  res = await client.post("/auth/signin", json={"email": "pending@example.com", "password": "second-pass"})
  assert res.status_code == 400
  await login(client, "pending@example.com", "first-pass")


async def test_signin_bad_credentials(client):
  res = await client.post("/auth/signin", json={"email": ADMIN_EMAIL, "password": "wrong-password"})
  assert res.status_code == 400
  assert res.json()["detail"] == "Invalid login credentials"


async def test_signout_ends_session(client):
  await login_admin(client)
  assert (await client.get("/auth/session")).status_code == 200
  res = await client.post("/auth/signout")
  assert res.status_code == 200
  assert res.json()["message"] == "Signed out"
  assert (await client.get("/auth/session")).status_code == 401


async def test_bearer_token_is_accepted(client):
  body = await login_admin(client)
  token = body["accessToken"]
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as bare:
    res = await bare.get("/auth/session", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json()["role"] == "admin"
    assert (await bare.get("/auth/session", headers={"Authorization": "Bearer nope"})).status_code == 401


async def test_resend_confirmation_is_silent_for_unknown(client, mailer):
  res = await client.post("/auth/resend-confirmation", json={"email": "ghost@example.com"})
  assert res.status_code == 200
  assert mailer.outbox == []

  await client.post("/auth/signup", json={"email": "slow@example.com", "password": "slow1234"})
  first = code_from_mail(mailer, "slow@example.com")
  res = await client.post("/auth/resend-confirmation", json={"email": "slow@example.com"})
  assert res.status_code == 200
  second = code_from_mail(mailer, "slow@example.com")
  assert first != second

  # only the newest confirmation code is valid
  res = await client.get("/auth/callback", params={"code": first})
  assert "set-cookie" not in res.headers
  res = await client.get("/auth/callback", params={"code": second})
  assert "mt_session=" in res.headers.get("set-cookie", "")


async def test_magic_link_signs_in(client, mailer):
  res = await client.post("/auth/magic-link", json={"email": "nobody@example.com"})
  assert res.status_code == 200
  assert mailer.outbox == []

  res = await client.post("/auth/magic-link", json={"email": ADMIN_EMAIL})
  assert res.status_code == 200
  code = code_from_mail(mailer, ADMIN_EMAIL)
  res = await client.get("/auth/callback", params={"code": code})
  assert res.headers["location"] == "http://localhost:3000/admin"
  assert (await client.get("/auth/session")).json()["role"] == "admin"


async def test_callback_without_code_goes_home(client):
  res = await client.get("/auth/callback")
  assert res.status_code == 302
  assert res.headers["location"] == "http://localhost:3000/"


async def test_oauth_unavailable_with_local_provider(client):
  res = await client.get("/auth/oauth/github")
  assert res.status_code == 400
  assert "OAuth" in res.json()["detail"]


async def test_password_change_requires_session(client):
  res = await client.post("/auth/password", json={"password": "newpass1"})
  assert res.status_code == 401

  await login_admin(client)
  res = await client.post("/auth/password", json={"password": "x"})
  assert res.status_code == 422
  res = await client.post("/auth/password", json={"password": "rotated99"})
  assert res.status_code == 200
  await login(client, ADMIN_EMAIL, "rotated99")
  res = await client.post("/auth/signin", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
  assert res.status_code == 400


async def test_signin_rate_limited(client):
  orig_ip = settings.rate_limit_signin_ip_per_minute
  orig_email = settings.rate_limit_signin_email_per_minute
  settings.rate_limit_signin_ip_per_minute = 3
  settings.rate_limit_signin_email_per_minute = 3
  try:
    for _ in range(3):
      r = await client.post("/auth/signin", json={"email": "nobody@example.com", "password": "bad"})
      assert r.status_code == 400, r.text
    r = await client.post("/auth/signin", json={"email": "nobody@example.com", "password": "bad"})
    assert r.status_code == 429, r.text
    assert r.headers.get("retry-after")
  finally:
    settings.rate_limit_signin_ip_per_minute = orig_ip
    settings.rate_limit_signin_email_per_minute = orig_email


async def test_resend_rate_limited(client):
  orig = settings.rate_limit_resend_per_minute
  settings.rate_limit_resend_per_minute = 2
  try:
    for _ in range(2):
      r = await client.post("/auth/resend-confirmation", json={"email": "nobody@example.com"})
      assert r.status_code == 200, r.text
    r = await client.post("/auth/resend-confirmation", json={"email": "nobody@example.com"})
    assert r.status_code == 429
  finally:
    settings.rate_limit_resend_per_minute = orig
