from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://maintrack:maintrack@db:5432/maintrack"
  app_version: str = "v2026-10-17"
  build_sha: str = "dev"
  api_docs_enabled: bool = True
  log_level: str = "INFO"

  cookie_secure: bool = False
  cookie_domain: str | None = None

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web,test"

  # Base URL of the web front-end; invitation and confirmation links land on {app_url}/auth/callback.
  app_url: str = "http://localhost:3000"

  identity_provider: str = "local"  # local | supabase
  supabase_url: str | None = None
  supabase_anon_key: str | None = None
  supabase_service_role_key: str | None = None

  session_ttl_days: int = 14
  session_cache_ttl_seconds: int = 60
  auth_code_ttl_hours: int = 24

  mailer: str = "log"  # log | smtp
  smtp_host: str | None = None
  smtp_port: int = 587
  smtp_username: str | None = None
  smtp_password: str | None = None
  smtp_from: str | None = None
  smtp_starttls: bool = True

  schedule_timezone: str = "UTC"
  due_soon_days: int = 7

  rate_limit_signin_ip_per_minute: int = 60
  rate_limit_signin_email_per_minute: int = 20
  rate_limit_resend_per_minute: int = 5

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()
