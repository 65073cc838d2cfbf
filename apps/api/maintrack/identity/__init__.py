from __future__ import annotations

from maintrack.config import settings
from maintrack.identity.base import AuthSession, Identity, IdentityError, IdentityProvider
from maintrack.identity.local import LocalIdentityProvider
from maintrack.identity.supabase import SupabaseIdentityProvider

__all__ = [
  "AuthSession",
  "Identity",
  "IdentityError",
  "IdentityProvider",
  "get_identity_provider",
  "set_identity_provider",
]

_provider: IdentityProvider | None = None


def get_identity_provider() -> IdentityProvider:
  global _provider
  if _provider is None:
    name = (settings.identity_provider or "local").strip().lower()
    if name == "supabase":
      if not settings.supabase_url or not settings.supabase_anon_key:
        raise RuntimeError("IDENTITY_PROVIDER=supabase requires SUPABASE_URL and SUPABASE_ANON_KEY")
      _provider = SupabaseIdentityProvider(
        base_url=settings.supabase_url,
        anon_key=settings.supabase_anon_key,
        service_role_key=settings.supabase_service_role_key,
      )
    elif name == "local":
      _provider = LocalIdentityProvider()
    else:
      raise RuntimeError(f"Unknown IDENTITY_PROVIDER: {name}")
  return _provider


def set_identity_provider(provider: IdentityProvider | None) -> None:
  global _provider
  _provider = provider
