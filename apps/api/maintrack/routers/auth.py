from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.config import settings
from maintrack.deps import access_token_from, client_ip, get_auth, get_db, get_optional_auth, load_auth_context
from maintrack.identity import AuthSession, IdentityError, get_identity_provider
from maintrack.rate_limit import rate_limit_or_429
from maintrack.schemas import EmailIn, LandingOut, MessageOut, PasswordIn, SessionOut, SessionUserOut, SignInIn, SignUpIn
from maintrack.security import SESSION_COOKIE_NAME
from maintrack.session_context import AuthContext, landing_path, sessions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _callback_url() -> str:
  return f"{settings.app_url.rstrip('/')}/auth/callback"


def _set_session_cookie(response: Response, session: AuthSession) -> None:
  max_age = None
  if session.expires_at is not None:
    max_age = max(1, int((session.expires_at - datetime.now(timezone.utc)).total_seconds()))
  response.set_cookie(
    SESSION_COOKIE_NAME,
    session.access_token,
    httponly=True,
    samesite="lax",
    secure=bool(settings.cookie_secure),
    domain=settings.cookie_domain,
    max_age=max_age,
    path="/",
  )


def _session_out(ctx: AuthContext, *, expires_at=None, include_token: bool = False) -> SessionOut:
  return SessionOut(
    user=SessionUserOut(id=ctx.identity_id, email=ctx.email, emailConfirmed=ctx.email_confirmed),
    role=ctx.role,
    name=ctx.name,
    capabilities=sorted(ctx.capabilities),
    landing=landing_path(ctx),
    accessToken=ctx.access_token if include_token else None,
    expiresAt=expires_at,
  )


async def _start_session(db: AsyncSession, session: AuthSession) -> AuthContext:
  ctx = await load_auth_context(db, session.access_token)
  if ctx is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session could not be resolved")
  sessions.signed_in(ctx)
  return ctx


@router.post("/signup", response_model=MessageOut)
async def sign_up(payload: SignUpIn, request: Request, db: AsyncSession = Depends(get_db)) -> MessageOut:
  ip = client_ip(request) or "unknown"
  rate_limit_or_429(key=f"auth:signup:ip:{ip}", limit=int(settings.rate_limit_signin_ip_per_minute))
  await get_identity_provider().sign_up(db, email=payload.email, password=payload.password, redirect_to=_callback_url())
  return MessageOut(message="Check your email for a confirmation link!")


@router.post("/signin", response_model=SessionOut)
async def sign_in(payload: SignInIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> SessionOut:
  ip = client_ip(request) or "unknown"
  email_key = (payload.email or "").strip().lower()
  rate_limit_or_429(key=f"auth:signin:ip:{ip}", limit=int(settings.rate_limit_signin_ip_per_minute))
  if email_key:
    rate_limit_or_429(key=f"auth:signin:email:{email_key}", limit=int(settings.rate_limit_signin_email_per_minute))

  session = await get_identity_provider().sign_in(
    db,
    email=payload.email,
    password=payload.password,
    ip=client_ip(request),
    user_agent=request.headers.get("user-agent"),
  )
  ctx = await _start_session(db, session)
  _set_session_cookie(response, session)
  return _session_out(ctx, expires_at=session.expires_at, include_token=True)


@router.post("/signout", response_model=MessageOut)
async def sign_out(
  request: Request,
  response: Response,
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> MessageOut:
  token = access_token_from(request, session_id)
  if token:
    sessions.invalidate(token)
    await get_identity_provider().sign_out(db, access_token=token)
  response.delete_cookie(SESSION_COOKIE_NAME, path="/", domain=settings.cookie_domain)
  return MessageOut(message="Signed out")


@router.post("/resend-confirmation", response_model=MessageOut)
async def resend_confirmation(payload: EmailIn, db: AsyncSession = Depends(get_db)) -> MessageOut:
  email_key = (payload.email or "").strip().lower()
  rate_limit_or_429(key=f"auth:resend:email:{email_key}", limit=int(settings.rate_limit_resend_per_minute))
  await get_identity_provider().resend_confirmation(db, email=payload.email, redirect_to=_callback_url())
  return MessageOut(message="Confirmation email sent!")


@router.post("/magic-link", response_model=MessageOut)
async def magic_link(payload: EmailIn, db: AsyncSession = Depends(get_db)) -> MessageOut:
  email_key = (payload.email or "").strip().lower()
  rate_limit_or_429(key=f"auth:magic:email:{email_key}", limit=int(settings.rate_limit_resend_per_minute))
  await get_identity_provider().send_magic_link(db, email=payload.email, redirect_to=_callback_url())
  return MessageOut(message="Check your email for a sign-in link!")


@router.get("/session", response_model=SessionOut)
async def current_session(ctx: AuthContext = Depends(get_auth)) -> SessionOut:
  return _session_out(ctx)


@router.get("/landing", response_model=LandingOut)
async def landing(ctx: AuthContext | None = Depends(get_optional_auth)) -> LandingOut:
  return LandingOut(path=landing_path(ctx))


@router.get("/oauth/{provider}")
async def oauth_start(provider: str) -> RedirectResponse:
  url = get_identity_provider().oauth_authorize_url(provider=provider, redirect_to=_callback_url())
  return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/callback")
async def auth_callback(
  code: str | None = None,
  code_verifier: str | None = None,
  db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
  """Exchange a confirmation, invitation or OAuth code and send the browser to its landing page."""
  target = "/"
  session: AuthSession | None = None
  if code:
    try:
      session = await get_identity_provider().exchange_code(db, code=code, code_verifier=code_verifier)
    except IdentityError as exc:
      logger.info("auth callback code exchange failed: %s", exc.message)
      session = None
  if session is not None:
    ctx = await _start_session(db, session)
    # The callback only redirects to role pages for users that have a metadata row.
    if ctx.role is not None:
      target = landing_path(ctx)
  resp = RedirectResponse(f"{settings.app_url.rstrip('/')}{target}", status_code=status.HTTP_302_FOUND)
  if session is not None:
    _set_session_cookie(resp, session)
  return resp


@router.post("/password", response_model=MessageOut)
async def set_password(
  payload: PasswordIn,
  ctx: AuthContext = Depends(get_auth),
  db: AsyncSession = Depends(get_db),
) -> MessageOut:
  await get_identity_provider().update_password(db, access_token=ctx.access_token, password=payload.password)
  return MessageOut(message="Password updated")
