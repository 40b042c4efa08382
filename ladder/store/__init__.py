# ladder/store/__init__.py
"""
Record store backends for the league collections.

SqliteRecordStore is the local default; SupabaseRecordStore talks to the
hosted project when LADDER_STORE=supabase.
"""

from .base import TABLES, Filter, Order, RecordStore, Row
from .sqlite_store import SqliteRecordStore


def open_store(settings) -> RecordStore:
    """Build the store selected by settings.store."""
    if settings.store == "sqlite":
        return SqliteRecordStore(settings.db_path)
    if settings.store == "supabase":
        from .supabase_store import SupabaseRecordStore
        return SupabaseRecordStore(settings.supabase_url, settings.supabase_key)
    raise ValueError(f"Unknown store '{settings.store}' (expected 'sqlite' or 'supabase')")


__all__ = [
    'TABLES',
    'Filter',
    'Order',
    'RecordStore',
    'Row',
    'SqliteRecordStore',
    'open_store',
]
