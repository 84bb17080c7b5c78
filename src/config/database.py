"""
Database client construction.

The Supabase client is shared by the catalog store, the vector retriever
and analytics persistence. One is created per search stack.
"""

from supabase import Client, create_client


class SupabaseClientError(Exception):
    """Raised when Supabase client cannot be created."""
    pass


def create_supabase_client(url: str, key: str) -> Client:
    """
    Create a Supabase client.

    Args:
        url: Supabase project URL
        key: Service role key

    Returns:
        Client: The Supabase client instance

    Raises:
        SupabaseClientError: If credentials are missing or the client fails
    """
    if not url or not key:
        raise SupabaseClientError("SUPABASE_URL / SUPABASE_SERVICE_KEY not set")
    try:
        return create_client(url, key)
    except Exception as e:
        raise SupabaseClientError(f"Failed to create Supabase client: {e}") from e
