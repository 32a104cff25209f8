from __future__ import annotations

from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from notes_client.config import settings
from notes_client.utils.logging import get_logger

logger = get_logger(__name__)


def create_request_supabase_client(bearer_token: str | None = None) -> Client:
    """Create a session-scoped Supabase client using the anon key.

    If a JWT is provided, set it as the PostgREST bearer so that RLS policies
    are enforced for all table/rpc operations made with this client. Token
    refresh and persistence belong to the session collaborator, so both are off.
    """
    logger.debug("Creating session-scoped Supabase client")
    if not settings.supabase_url:
        raise RuntimeError("supabase_url is required for the supabase backend")
    anon_key = settings.supabase_anon_key
    if not anon_key:
        raise RuntimeError("supabase_anon_key is required for the supabase backend")

    client = create_client(
        settings.supabase_url,
        anon_key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )
    if bearer_token:
        client.postgrest.auth(bearer_token)
    return client
