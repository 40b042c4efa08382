# ladder/store/supabase_store.py

from typing import Any, List, Optional

from supabase import Client, create_client

from ladder.errors import StoreError, StoreWriteError
from ladder.store.base import Filter, RecordStore, Row


class SupabaseRecordStore(RecordStore):
    """
    Record store backed by a hosted Supabase (PostgREST) project.

    Each call is its own HTTP request, so there are no multi-statement
    transactions: a failure after a delete leaves the table partially
    rewritten. Foreign keys on the server are expected to cascade deletes
    from players to leaderboard_stats and mvp_entries.
    """

    supports_transactions = False

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None, client: Optional[Client] = None):
        if client is None:
            if not (url and key):
                raise StoreError("SUPABASE_URL and SUPABASE_KEY are required for the supabase store")
            client = create_client(url, key)
        self.client = client

    @staticmethod
    def _apply(query: Any, where: Optional[Filter], with_ordering: bool = False) -> Any:
        if where is None:
            return query
        for column, value in where.equals:
            query = query.is_(column, "null") if value is None else query.eq(column, value)
        for column, value in where.not_equals:
            query = query.not_.is_(column, "null") if value is None else query.neq(column, value)
        if with_ordering:
            for order in where.ordering:
                query = query.order(order.column, desc=order.descending)
            if where.max_rows is not None:
                query = query.limit(where.max_rows)
        return query

    def select(self, table: str, where: Optional[Filter] = None) -> List[Row]:
        try:
            query = self._apply(self.client.table(table).select("*"), where, with_ordering=True)
            return list(query.execute().data or [])
        except Exception as e:
            raise StoreError(f"Failed to read {table}: {e}") from e

    def insert(self, table: str, rows: List[Row]) -> List[Row]:
        if not rows:
            return []
        try:
            result = self.client.table(table).insert(rows).execute()
        except Exception as e:
            raise StoreWriteError(f"Failed to insert into {table}: {e}") from e
        inserted = list(result.data or [])
        if len(inserted) != len(rows):
            raise StoreWriteError(
                f"Failed to insert into {table}: expected {len(rows)} rows back, got {len(inserted)}"
            )
        return inserted

    def update(self, table: str, where: Filter, patch: Row) -> List[Row]:
        try:
            query = self._apply(self.client.table(table).update(patch), where)
            return list(query.execute().data or [])
        except Exception as e:
            raise StoreWriteError(f"Failed to update {table}: {e}") from e

    def delete(self, table: str, where: Filter) -> List[Row]:
        if not (where.equals or where.not_equals):
            # PostgREST refuses unfiltered deletes.
            raise StoreWriteError(f"Refusing to delete from {table} without a filter")
        try:
            query = self._apply(self.client.table(table).delete(), where)
            return list(query.execute().data or [])
        except Exception as e:
            raise StoreWriteError(f"Failed to delete from {table}: {e}") from e
