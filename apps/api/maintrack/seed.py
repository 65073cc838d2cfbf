from __future__ import annotations

import asyncio
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.config import settings
from maintrack.db import SessionLocal
from maintrack.logging_setup import setup_logging
from maintrack.models import Asset, IdentityAccount, Task, User
from maintrack.scheduling import today
from maintrack.security import hash_password

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "admin@maintrack.local"
MAINTAINER_EMAIL = "maintainer@maintrack.local"


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def ensure_user(db: AsyncSession, *, email: str, name: str, role: str, password: str) -> tuple[User, bool]:
  """Confirmed local identity plus its users row; existing accounts are left alone."""
  res = await db.execute(select(IdentityAccount).where(IdentityAccount.email == email))
  account = res.scalar_one_or_none()
  created = False
  if account is None:
    account = IdentityAccount(
      email=email,
      password_hash=hash_password(password),
      email_confirmed_at=datetime.now(timezone.utc),
      user_metadata={"name": name, "role": role},
    )
    db.add(account)
    await db.flush()
    created = True

  ures = await db.execute(select(User).where(User.id == account.id))
  user = ures.scalar_one_or_none()
  if user is None:
    user = User(id=account.id, email=email, name=name, role=role)
    db.add(user)
    await db.flush()
  return user, created


async def _seed_demo_assets(db: AsyncSession) -> None:
  res = await db.execute(select(Asset.id).limit(1))
  if res.scalar_one_or_none() is not None:
    return
  d = today()
  samples = [
    ("Forklift #2", "vehicle", "Warehouse forklift", [("Hydraulic check", -3, 30), ("Battery service", 0, 90)]),
    ("Air compressor", "machinery", None, [("Replace intake filter", 4, 60), ("Drain tank", 20, 7)]),
    ("Main building", "building", "HQ", [("Fire extinguisher inspection", None, 365)]),
  ]
  for name, type_, description, tasks in samples:
    asset = Asset(name=name, type=type_, description=description, purchasedate=d - timedelta(days=400))
    db.add(asset)
    await db.flush()
    for task_name, offset, frequency in tasks:
      db.add(
        Task(
          asset_id=asset.id,
          task_name=task_name,
          next_due_date=(d + timedelta(days=offset)) if offset is not None else None,
          frequency_days=frequency,
        )
      )


async def seed() -> None:
  async with SessionLocal() as db:
    admin_password, admin_generated = _bootstrap_password("SEED_ADMIN_PASSWORD")
    maintainer_password, maintainer_generated = _bootstrap_password("SEED_MAINTAINER_PASSWORD")
    boot_lines: list[str] = []

    _, created = await ensure_user(db, email=ADMIN_EMAIL, name="Admin", role="admin", password=admin_password)
    if created:
      boot_lines.append(f"{ADMIN_EMAIL}={admin_password} (generated={str(admin_generated).lower()})")
    _, created = await ensure_user(
      db, email=MAINTAINER_EMAIL, name="Maintainer", role="maintainer", password=maintainer_password
    )
    if created:
      boot_lines.append(f"{MAINTAINER_EMAIL}={maintainer_password} (generated={str(maintainer_generated).lower()})")

    if os.getenv("SEED_DEMO_ASSETS", "").strip().lower() in ("1", "true", "yes", "y"):
      await _seed_demo_assets(db)

    await db.commit()

  if boot_lines:
    out_dir = Path(os.getenv("BOOTSTRAP_CREDENTIALS_DIR", "data"))
    out_dir.mkdir(parents=True, exist_ok=True)
    out_file = out_dir / "bootstrap_credentials.txt"
    stamp = datetime.now(timezone.utc).isoformat()
    out_file.write_text(f"[{stamp}]\n" + "\n".join(boot_lines) + "\n", encoding="utf-8")
    logger.warning("seed credentials created for %s, saved to %s", ", ".join(ln.split("=", 1)[0] for ln in boot_lines), out_file)


def main() -> None:
  setup_logging(settings.log_level)
  asyncio.run(seed())


if __name__ == "__main__":
  main()
