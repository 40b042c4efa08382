# ladder/store/base.py

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

Row = Dict[str, Any]

TABLES = ("players", "leaderboard_stats", "mvp_periods", "mvp_entries", "divisions")


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False


@dataclass
class Filter:
    """
    Query predicate shared by every store backend.

    Built by chaining, the same way the hosted client composes queries:

        Filter().eq("month", 3).eq("year", 2025).order_by("rank")
    """

    equals: List[Tuple[str, Any]] = field(default_factory=list)
    not_equals: List[Tuple[str, Any]] = field(default_factory=list)
    ordering: List[Order] = field(default_factory=list)
    max_rows: Optional[int] = None

    def eq(self, column: str, value: Any) -> "Filter":
        self.equals.append((column, value))
        return self

    def neq(self, column: str, value: Any) -> "Filter":
        self.not_equals.append((column, value))
        return self

    def order_by(self, column: str, descending: bool = False) -> "Filter":
        self.ordering.append(Order(column, descending))
        return self

    def limit(self, count: int) -> "Filter":
        self.max_rows = count
        return self

    def columns(self) -> List[str]:
        names = [c for c, _ in self.equals] + [c for c, _ in self.not_equals]
        return names + [o.column for o in self.ordering]


class RecordStore(ABC):
    """
    CRUD access to the league collections.

    Collections are addressed by name (see TABLES). Every write returns the
    affected rows, including generated identifiers. Writes raise
    StoreWriteError; reads raise StoreError.
    """

    supports_transactions = False

    @abstractmethod
    def select(self, table: str, where: Optional[Filter] = None) -> List[Row]:
        ...

    @abstractmethod
    def insert(self, table: str, rows: List[Row]) -> List[Row]:
        ...

    @abstractmethod
    def update(self, table: str, where: Filter, patch: Row) -> List[Row]:
        ...

    @abstractmethod
    def delete(self, table: str, where: Filter) -> List[Row]:
        ...

    def select_one(self, table: str, where: Filter) -> Optional[Row]:
        rows = self.select(table, where.limit(1))
        return rows[0] if rows else None

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        """Group writes atomically where the backend can; a plain block otherwise."""
        yield self

    def close(self) -> None:
        pass
