from .remote_backend import RemoteBackend, SupabaseBackend
from .supabase_client import create_supabase_client, close_supabase_client

__all__ = [
    "RemoteBackend",
    "SupabaseBackend",
    "create_supabase_client",
    "close_supabase_client",
]
