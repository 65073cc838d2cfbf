from __future__ import annotations

import logging
from datetime import datetime, timezone
from time import monotonic

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import delete
from starlette.middleware.trustedhost import TrustedHostMiddleware

from maintrack.config import settings
from maintrack.db import SessionLocal
from maintrack.errors import MaintrackError
from maintrack.identity import IdentityError
from maintrack.logging_setup import setup_logging
from maintrack.metrics import runtime_metrics
from maintrack.models import AuthCode, AuthSession as DbSession
from maintrack.routers.admin import router as admin_router
from maintrack.routers.assets import router as assets_router
from maintrack.routers.auth import router as auth_router
from maintrack.routers.tasks import router as tasks_router
from maintrack.routers.users import invite_router
from maintrack.routers.users import router as users_router
from maintrack.session_context import AuthContext, sessions

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
  title="Maintenance Tracker API",
  version=settings.app_version,
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(MaintrackError)
async def _maintrack_error_handler(_, exc: MaintrackError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(IdentityError)
async def _identity_error_handler(_, exc: IdentityError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(invite_router)
app.include_router(assets_router)
app.include_router(tasks_router)
app.include_router(admin_router)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  response = await call_next(request)
  elapsed_ms = (monotonic() - start) * 1000.0
  runtime_metrics.observe_request(request.method, response.status_code, elapsed_ms)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


def _log_session_event(event: str, ctx: AuthContext) -> None:
  logger.debug("session %s identity=%s role=%s", event, ctx.identity_id, ctx.role)


sessions.subscribe(_log_session_event)


def _is_test_db() -> bool:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  return "test" in db_name


async def _purge_expired_credentials() -> None:
  now = datetime.now(timezone.utc)
  async with SessionLocal() as db:
    res_sessions = await db.execute(delete(DbSession).where(DbSession.expires_at < now))
    res_codes = await db.execute(delete(AuthCode).where(AuthCode.expires_at < now))
    await db.commit()
  logger.info("purged expired credentials sessions=%s codes=%s", res_sessions.rowcount, res_codes.rowcount)


@app.on_event("startup")
async def _startup() -> None:
  logger.info(
    "starting maintenance tracker version=%s identity=%s mailer=%s",
    settings.app_version,
    settings.identity_provider,
    settings.mailer,
  )
  if _is_test_db():
    return
  if (settings.identity_provider or "local").strip().lower() == "local":
    await _purge_expired_credentials()
