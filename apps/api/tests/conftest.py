from __future__ import annotations

import os
import re
import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select, update

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{ROOT / 'maintrack_test.db'}")
os.environ.setdefault("IDENTITY_PROVIDER", "local")
os.environ.setdefault("MAILER", "log")
os.environ.setdefault("APP_URL", "http://localhost:3000")

from maintrack.config import settings
from maintrack.db import SessionLocal, engine
from maintrack.identity import set_identity_provider
from maintrack.mailer import LogMailer, set_mailer
from maintrack.main import app
from maintrack.metrics import runtime_metrics
from maintrack.models import Asset, AuditEvent, AuthCode, AuthSession, Base, IdentityAccount, Task, User
from maintrack.rate_limit import limiter
from maintrack.security import hash_password
from maintrack.seed import ADMIN_EMAIL, MAINTAINER_EMAIL, ensure_user
from maintrack.session_context import sessions

ADMIN_PASSWORD = "admin1234"
MAINTAINER_PASSWORD = "maint1234"

SEEDED = {
  ADMIN_EMAIL: ("Admin", "admin", ADMIN_PASSWORD),
  MAINTAINER_EMAIL: ("Maintainer", "maintainer", MAINTAINER_PASSWORD),
}

_SEEDED_HASHES = {email: hash_password(pw) for email, (_, _, pw) in SEEDED.items()}

_CODE_RE = re.compile(r"[?&]code=([^\s&]+)")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  sessions.clear()
  set_identity_provider(None)
  runtime_metrics.reset()
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    await db.execute(delete(AuditEvent))
    await db.execute(delete(Task))
    await db.execute(delete(Asset))
    await db.execute(delete(AuthSession))
    await db.execute(delete(AuthCode))
    keep = list(SEEDED)
    await db.execute(delete(User).where(User.email.notin_(keep)))
    await db.execute(delete(IdentityAccount).where(IdentityAccount.email.notin_(keep)))
    for email, (name, role, password) in SEEDED.items():
      await ensure_user(db, email=email, name=name, role=role, password=password)
      await db.execute(update(User).where(User.email == email).values(name=name, role=role))
      await db.execute(
        update(IdentityAccount).where(IdentityAccount.email == email).values(password_hash=_SEEDED_HASHES[email])
      )
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. maintrack_test.db)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
def mailer() -> LogMailer:
  m = LogMailer()
  set_mailer(m)
  yield m
  set_mailer(None)


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def login(client: AsyncClient, email: str, password: str) -> dict:
  res = await client.post("/auth/signin", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "mt_session=" in cookie
  return res.json()


async def login_admin(client: AsyncClient) -> dict:
  return await login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


async def login_maintainer(client: AsyncClient) -> dict:
  return await login(client, MAINTAINER_EMAIL, MAINTAINER_PASSWORD)


async def create_user(email: str, *, name: str, role: str, password: str = "secret123") -> str:
  async with SessionLocal() as db:
    u, _ = await ensure_user(db, email=email, name=name, role=role, password=password)
    await db.commit()
    return u.id


async def seeded_user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one().id


def code_from_mail(mailer: LogMailer, to: str) -> str:
  msgs = [m for m in mailer.outbox if m.to == to]
  assert msgs, f"no mail sent to {to}"
  m = _CODE_RE.search(msgs[-1].body)
  assert m, msgs[-1].body
  return m.group(1)
