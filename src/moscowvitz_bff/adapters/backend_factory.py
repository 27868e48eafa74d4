"""Factory for selecting content store and identity provider adapters."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from moscowvitz_bff.adapters.sqlite_content_store import SQLiteContentStore
from moscowvitz_bff.adapters.sqlite_identity_provider import SQLiteIdentityProvider
from moscowvitz_bff.adapters.supabase_content_store import SupabaseContentStore
from moscowvitz_bff.adapters.supabase_http import SupabaseHttp
from moscowvitz_bff.adapters.supabase_identity_provider import SupabaseIdentityProvider
from moscowvitz_bff.config import BffSettings
from moscowvitz_bff.domain.ports import ContentStorePort, IdentityProviderPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backends:
    """Adapters one application instance talks to."""

    store: ContentStorePort
    identity_provider: IdentityProviderPort


def create_backends(
    settings: BffSettings, *, transport: httpx.BaseTransport | None = None
) -> Backends:
    """Build the configured backend pair."""
    if settings.backend == "sqlite":
        store = SQLiteContentStore(db_path=settings.db_path)
        logger.info("backends.sqlite db_path=%s", settings.db_path)
        return Backends(
            store=store,
            identity_provider=SQLiteIdentityProvider(settings.db_path, profiles=store),
        )
    http = SupabaseHttp(
        base_url=settings.supabase_url,
        api_key=settings.supabase_anon_key,
        timeout_seconds=settings.http_timeout_seconds,
        transport=transport,
    )
    logger.info("backends.supabase url=%s", settings.supabase_url)
    return Backends(
        store=SupabaseContentStore(http),
        identity_provider=SupabaseIdentityProvider(http),
    )
