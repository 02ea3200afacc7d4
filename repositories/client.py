"""
Supabase client initialization.

This module contains *only* the database connection setup and exposes a
single cached `supabase.Client` for the repository classes to share.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)

Optional:
- DB_TIMEOUT_SECONDS: PostgREST request timeout (default 10)

The client is created lazily so that importing repositories never needs
credentials; the first request that touches the datastore does.
"""

from __future__ import annotations

from functools import lru_cache

from supabase import Client, ClientOptions, create_client

from settings import get_settings


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    settings = get_settings()

    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    # Every datastore call has a caller-enforced timeout.
    options = ClientOptions(postgrest_client_timeout=settings.db_timeout_seconds)
    return create_client(settings.supabase_url, settings.supabase_key, options=options)


__all__ = ["get_supabase_client"]
