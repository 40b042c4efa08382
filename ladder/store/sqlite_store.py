# ladder/store/sqlite_store.py

import logging
import os
import sqlite3
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ladder.config import DEFAULT_DB_PATH, DEFAULT_DIVISIONS, resolve_db_path
from ladder.errors import StoreError, StoreWriteError
from ladder.store.base import TABLES, Filter, RecordStore, Row

logger = logging.getLogger(__name__)


class SqliteRecordStore(RecordStore):
    """Local record store backed by a single SQLite file."""

    supports_transactions = True

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = resolve_db_path(db_path)
        self.conn = None
        self._columns: Dict[str, set] = {}
        self._tx_depth = 0
        self.init_database()

    def init_database(self):
        """Create tables if they don't exist and seed the known divisions."""
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                try:
                    os.makedirs(db_dir, exist_ok=True)
                except OSError as e:
                    raise StoreError(f"Failed to create database directory '{db_dir}': {e}")

            # The web app serves requests from a worker thread.
            self.conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA busy_timeout = 30000")
            self.conn.execute("PRAGMA foreign_keys = ON")
            self._set_wal_mode_best_effort()

            cursor = self.conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS divisions (
                    id          TEXT PRIMARY KEY,
                    name        TEXT UNIQUE NOT NULL,
                    color       TEXT,
                    created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS players (
                    id              TEXT PRIMARY KEY,
                    username        TEXT,
                    full_name       TEXT,
                    initials        TEXT,
                    alternate_name  TEXT,
                    division_id     TEXT,
                    created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (division_id) REFERENCES divisions(id) ON DELETE SET NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS leaderboard_stats (
                    id          TEXT PRIMARY KEY,
                    player_id   TEXT NOT NULL,
                    rating      INTEGER,
                    tier        TEXT,
                    rank        INTEGER,
                    created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (player_id) REFERENCES players(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS mvp_periods (
                    id          TEXT PRIMARY KEY,
                    name        TEXT NOT NULL,
                    month       INTEGER NOT NULL,
                    year        INTEGER NOT NULL,
                    created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(month, year)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS mvp_entries (
                    id              TEXT PRIMARY KEY,
                    period_id       TEXT NOT NULL,
                    player_id       TEXT NOT NULL,
                    rank            INTEGER,
                    rating_gain     INTEGER,
                    events_count    INTEGER,
                    created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (period_id) REFERENCES mvp_periods(id) ON DELETE CASCADE,
                    FOREIGN KEY (player_id) REFERENCES players(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_players_full_name ON players(full_name)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_mvp_entries_period ON mvp_entries(period_id)")

            for name, color in DEFAULT_DIVISIONS:
                cursor.execute(
                    "INSERT OR IGNORE INTO divisions (id, name, color) VALUES (?, ?, ?)",
                    (str(uuid.uuid4()), name, color),
                )

            self._commit_with_retry(context="init schema commit")
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialize database at '{self.db_path}': {e}")

    def _commit_with_retry(self, retries: int = 8, delay_seconds: float = 0.25, context: str = "commit") -> None:
        """
        Retry commit on transient SQLITE_BUSY/locked errors.
        """
        last_error = None
        for attempt in range(retries):
            try:
                self.conn.commit()
                return
            except sqlite3.OperationalError as e:
                last_error = e
                if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                    raise
                if attempt == retries - 1:
                    break
                time.sleep(delay_seconds)
        raise StoreWriteError(
            f"Failed to {context}: database remained locked after {retries} attempts ({last_error})"
        )

    def _set_wal_mode_best_effort(self, retries: int = 5, delay_seconds: float = 0.2) -> None:
        """Try to enable WAL without failing startup if the DB is temporarily locked."""
        for attempt in range(retries):
            try:
                self.conn.execute("PRAGMA journal_mode = WAL")
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                if "locked" not in msg and "busy" not in msg:
                    raise
                if attempt == retries - 1:
                    logger.warning("Could not enable WAL mode (database locked); continuing. (%s)", e)
                    return
                time.sleep(delay_seconds)

    def _get_table_columns(self, table_name: str) -> set:
        if table_name not in self._columns:
            cursor = self.conn.cursor()
            cursor.execute(f"PRAGMA table_info({table_name})")
            self._columns[table_name] = {row["name"] for row in cursor.fetchall()}
        return self._columns[table_name]

    def _check(self, table: str, columns) -> None:
        if table not in TABLES:
            raise StoreError(f"Unknown table '{table}'")
        known = self._get_table_columns(table)
        unknown = sorted(set(columns) - known)
        if unknown:
            raise StoreError(f"Unknown column(s) for {table}: {', '.join(unknown)}")

    @staticmethod
    def _where_sql(where: Optional[Filter]) -> Tuple[str, List[Any]]:
        if where is None:
            return "", []
        clauses = []
        params: List[Any] = []
        for column, value in where.equals:
            if value is None:
                clauses.append(f'"{column}" IS NULL')
            else:
                clauses.append(f'"{column}" = ?')
                params.append(value)
        for column, value in where.not_equals:
            if value is None:
                clauses.append(f'"{column}" IS NOT NULL')
            else:
                clauses.append(f'"{column}" != ?')
                params.append(value)
        sql = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return sql, params

    def _fetch_by_ids(self, table: str, ids: List[str]) -> List[Row]:
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT * FROM {table} WHERE id IN ({placeholders})", ids)
        by_id = {row["id"]: dict(row) for row in cursor.fetchall()}
        return [by_id[i] for i in ids if i in by_id]

    @contextmanager
    def _write(self, context: str) -> Iterator[sqlite3.Cursor]:
        """Run one write statement group; commit unless inside a transaction."""
        try:
            yield self.conn.cursor()
            if self._tx_depth == 0:
                self._commit_with_retry(context=context)
        except sqlite3.Error as e:
            if self._tx_depth == 0:
                self.conn.rollback()
            raise StoreWriteError(f"Failed to {context}: {e}") from e

    def select(self, table: str, where: Optional[Filter] = None) -> List[Row]:
        self._check(table, where.columns() if where else [])
        where_sql, params = self._where_sql(where)
        sql = f"SELECT * FROM {table}{where_sql}"
        if where is not None and where.ordering:
            order = ", ".join(
                f'"{o.column}" {"DESC" if o.descending else "ASC"}' for o in where.ordering
            )
            sql += f" ORDER BY {order}"
        if where is not None and where.max_rows is not None:
            sql += " LIMIT ?"
            params.append(int(where.max_rows))
        try:
            cursor = self.conn.cursor()
            cursor.execute(sql, params)
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {table}: {e}") from e

    def insert(self, table: str, rows: List[Row]) -> List[Row]:
        if not rows:
            return []
        for row in rows:
            self._check(table, row.keys())
        ids = []
        with self._write(f"insert into {table}") as cursor:
            for row in rows:
                values = dict(row)
                values.setdefault("id", str(uuid.uuid4()))
                columns = list(values.keys())
                placeholders = ", ".join("?" for _ in columns)
                quoted = ", ".join(f'"{c}"' for c in columns)
                cursor.execute(
                    f"INSERT INTO {table} ({quoted}) VALUES ({placeholders})",
                    [values[c] for c in columns],
                )
                ids.append(values["id"])
        return self._fetch_by_ids(table, ids)

    def update(self, table: str, where: Filter, patch: Row) -> List[Row]:
        if not patch:
            return self.select(table, where)
        self._check(table, list(patch.keys()) + where.columns())
        where_sql, params = self._where_sql(where)
        assignments = ", ".join(f'"{c}" = ?' for c in patch)
        with self._write(f"update {table}") as cursor:
            cursor.execute(f"SELECT id FROM {table}{where_sql}", params)
            ids = [row["id"] for row in cursor.fetchall()]
            cursor.execute(
                f"UPDATE {table} SET {assignments}{where_sql}",
                list(patch.values()) + params,
            )
        return self._fetch_by_ids(table, ids)

    def delete(self, table: str, where: Filter) -> List[Row]:
        self._check(table, where.columns())
        where_sql, params = self._where_sql(where)
        with self._write(f"delete from {table}") as cursor:
            cursor.execute(f"SELECT * FROM {table}{where_sql}", params)
            removed = [dict(row) for row in cursor.fetchall()]
            cursor.execute(f"DELETE FROM {table}{where_sql}", params)
        return removed

    @contextmanager
    def transaction(self) -> Iterator["SqliteRecordStore"]:
        """Commit every write in the block together, or roll all of them back."""
        self._tx_depth += 1
        try:
            yield self
        except BaseException:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.conn.rollback()
                logger.warning("Transaction rolled back on %s", self.db_path)
            raise
        else:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self._commit_with_retry(context="commit transaction")

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
