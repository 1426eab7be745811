"""Supabase client for the document store."""

import logging
from functools import lru_cache
from supabase import create_client, Client
from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Get cached Supabase client instance.

    Returns:
        Supabase Client instance if configured, None otherwise.
        Note: This does not test the connection - actual queries may fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None


# Expected schema, one table per collection:
#
# create table events      (id text primary key, revision integer not null, data jsonb not null);
# create table assignments (id text primary key, revision integer not null, data jsonb not null);
# create table logs        (id text primary key, revision integer not null, data jsonb not null);
#
# create index assignments_event_idx on assignments using gin (data jsonb_path_ops);
# create index logs_event_idx on logs using gin (data jsonb_path_ops);
