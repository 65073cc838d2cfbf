from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.identity.base import AuthSession, Identity, IdentityError, check_email, check_password, normalize_email
from maintrack.mailer import MailMessage, get_mailer
from maintrack.models import AuthCode, AuthSession as DbAuthSession, IdentityAccount
from maintrack.security import (
  as_utc,
  auth_code_hash,
  hash_password,
  new_auth_code,
  new_auth_code_expires_at,
  new_session_expires_at,
  new_session_token,
  verify_password,
)

logger = logging.getLogger(__name__)


def _identity(a: IdentityAccount) -> Identity:
  return Identity(
    id=a.id,
    email=a.email,
    email_confirmed=a.email_confirmed_at is not None,
    user_metadata=dict(a.user_metadata or {}),
  )


def _link(redirect_to: str, code: str) -> str:
  base = (redirect_to or "").strip()
  sep = "&" if "?" in base else "?"
  return f"{base}{sep}{urlencode({'code': code})}"


class LocalIdentityProvider:
  """
  Accounts, sessions and one-time codes kept in the application database.

  Mirrors the hosted provider's behaviour closely enough that the routers do
  not care which one is configured.
  """

  name = "local"

  async def _account_by_email(self, db: AsyncSession, email: str) -> IdentityAccount | None:
    res = await db.execute(select(IdentityAccount).where(IdentityAccount.email == normalize_email(email)))
    return res.scalar_one_or_none()

  async def _issue_code(self, db: AsyncSession, account: IdentityAccount, purpose: str) -> str:
    # Only the newest code of a given purpose stays valid.
    await db.execute(
      delete(AuthCode).where(
        AuthCode.identity_id == account.id,
        AuthCode.purpose == purpose,
        AuthCode.used_at.is_(None),
      )
    )
    code = new_auth_code()
    db.add(
      AuthCode(
        identity_id=account.id,
        code_hash=auth_code_hash(code),
        purpose=purpose,
        expires_at=new_auth_code_expires_at(),
      )
    )
    return code

  async def _new_session(
    self,
    db: AsyncSession,
    account: IdentityAccount,
    *,
    ip: str | None = None,
    user_agent: str | None = None,
  ) -> AuthSession:
    token = new_session_token()
    expires = new_session_expires_at()
    db.add(DbAuthSession(id=token, identity_id=account.id, created_ip=ip, user_agent=user_agent, expires_at=expires))
    return AuthSession(access_token=token, identity=_identity(account), expires_at=expires)

  async def sign_up(self, db: AsyncSession, *, email: str, password: str, redirect_to: str) -> Identity:
    e = check_email(email)
    p = check_password(password)
    account = await self._account_by_email(db, e)
    if account is not None and (account.email_confirmed_at is not None or account.invited_at is not None):
      raise IdentityError("User already registered", 400)
    if account is None:
      account = IdentityAccount(email=e, password_hash=hash_password(p), user_metadata={})
      db.add(account)
      await db.flush()
    # A pending signup keeps its first password; repeating it only resends the link.
    code = await self._issue_code(db, account, "signup")
    await db.commit()
    await get_mailer().send(
      MailMessage(
        to=e,
        subject="Confirm your signup",
        body=f"Follow this link to confirm your account:\n{_link(redirect_to, code)}\n",
      )
    )
    return _identity(account)

  async def sign_in(
    self,
    db: AsyncSession,
    *,
    email: str,
    password: str,
    ip: str | None = None,
    user_agent: str | None = None,
  ) -> AuthSession:
    account = await self._account_by_email(db, email)
    if account is None or not verify_password(password or "", account.password_hash):
      raise IdentityError("Invalid login credentials", 400)
    if account.email_confirmed_at is None:
      raise IdentityError("Email not confirmed", 400)
    session = await self._new_session(db, account, ip=ip, user_agent=user_agent)
    await db.commit()
    return session

  async def sign_out(self, db: AsyncSession, *, access_token: str) -> None:
    await db.execute(delete(DbAuthSession).where(DbAuthSession.id == access_token))
    await db.commit()

  async def get_identity(self, db: AsyncSession, *, access_token: str) -> Identity | None:
    res = await db.execute(select(DbAuthSession).where(DbAuthSession.id == access_token))
    s = res.scalar_one_or_none()
    if s is None:
      return None
    if as_utc(s.expires_at) <= datetime.now(timezone.utc):
      await db.execute(delete(DbAuthSession).where(DbAuthSession.id == s.id))
      await db.commit()
      return None
    ares = await db.execute(select(IdentityAccount).where(IdentityAccount.id == s.identity_id))
    account = ares.scalar_one_or_none()
    if account is None:
      return None
    return _identity(account)

  async def exchange_code(self, db: AsyncSession, *, code: str, code_verifier: str | None = None) -> AuthSession:
    res = await db.execute(select(AuthCode).where(AuthCode.code_hash == auth_code_hash(code)))
    ac = res.scalar_one_or_none()
    now = datetime.now(timezone.utc)
    if ac is None or ac.used_at is not None or as_utc(ac.expires_at) <= now:
      raise IdentityError("Invalid or expired code", 400)
    ares = await db.execute(select(IdentityAccount).where(IdentityAccount.id == ac.identity_id))
    account = ares.scalar_one_or_none()
    if account is None:
      raise IdentityError("Invalid or expired code", 400)
    ac.used_at = now
    if account.email_confirmed_at is None:
      account.email_confirmed_at = now
    session = await self._new_session(db, account)
    await db.commit()
    return session

  async def resend_confirmation(self, db: AsyncSession, *, email: str, redirect_to: str) -> None:
    account = await self._account_by_email(db, email)
    # Unknown or already-confirmed addresses get the same silent success.
    if account is None or account.email_confirmed_at is not None:
      return
    code = await self._issue_code(db, account, "signup")
    await db.commit()
    await get_mailer().send(
      MailMessage(
        to=account.email,
        subject="Confirm your signup",
        body=f"Follow this link to confirm your account:\n{_link(redirect_to, code)}\n",
      )
    )

  async def send_magic_link(self, db: AsyncSession, *, email: str, redirect_to: str) -> None:
    account = await self._account_by_email(db, email)
    if account is None:
      return
    code = await self._issue_code(db, account, "magiclink")
    await db.commit()
    await get_mailer().send(
      MailMessage(to=account.email, subject="Your sign-in link", body=f"Sign in with this link:\n{_link(redirect_to, code)}\n")
    )

  def oauth_authorize_url(self, *, provider: str, redirect_to: str) -> str:
    raise IdentityError("OAuth sign-in is not available with the local identity provider", 400)

  async def update_password(self, db: AsyncSession, *, access_token: str, password: str) -> None:
    identity = await self.get_identity(db, access_token=access_token)
    if identity is None:
      raise IdentityError("Not authenticated", 401)
    p = check_password(password)
    res = await db.execute(select(IdentityAccount).where(IdentityAccount.id == identity.id))
    account = res.scalar_one()
    account.password_hash = hash_password(p)
    await db.commit()

  async def invite(self, db: AsyncSession, *, email: str, data: dict[str, Any], redirect_to: str) -> Identity:
    e = check_email(email)
    if await self._account_by_email(db, e) is not None:
      raise IdentityError("A user with this email address has already been registered", 422)
    account = IdentityAccount(email=e, password_hash=None, invited_at=datetime.now(timezone.utc), user_metadata=dict(data or {}))
    db.add(account)
    await db.flush()
    code = await self._issue_code(db, account, "invite")
    await db.commit()
    await get_mailer().send(
      MailMessage(
        to=e,
        subject="You have been invited",
        body=f"You have been invited to the maintenance tracker. Accept the invitation:\n{_link(redirect_to, code)}\n",
      )
    )
    logger.info("local identity invited email=%s id=%s", e, account.id)
    return _identity(account)

  async def delete_identity(self, db: AsyncSession, *, identity_id: str) -> None:
    await db.execute(delete(DbAuthSession).where(DbAuthSession.identity_id == identity_id))
    await db.execute(delete(AuthCode).where(AuthCode.identity_id == identity_id))
    await db.execute(delete(IdentityAccount).where(IdentityAccount.id == identity_id))
    await db.commit()
