# ladder/reconcile.py
"""
Reconciliation of normalized batches against the record store.

Two algorithms, one per upload flow:

  Leaderboard  full replace. Every player is deleted (stats cascade), the
               batch is inserted as new players, and one leaderboard_stats
               row is linked to each by display name.

  MVP          per-period replace with player upsert. The period's entries
               are deleted and rebuilt; players are matched by name, updated
               when found and created when not. Entries are folded in batch
               order so a name seen twice resolves to the same player.

Both run inside store.transaction(). On the sqlite store that makes the
delete and the re-insert atomic; the hosted store has no transactions, so a
failure after the delete leaves the table partially rewritten and the error
is raised to the caller as-is.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from ladder.config import NIL_ID, period_name
from ladder.errors import LadderError
from ladder.normalizer import NormalizedEntry
from ladder.store.base import Filter, RecordStore, Row

logger = logging.getLogger(__name__)


@dataclass
class LeaderboardResult:
    players_deleted: int = 0
    players_created: int = 0
    stats_created: int = 0
    mvp_entries_cleared: int = 0
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "players_deleted": self.players_deleted,
            "players_created": self.players_created,
            "stats_created": self.stats_created,
            "mvp_entries_cleared": self.mvp_entries_cleared,
            "skipped": list(self.skipped),
        }


@dataclass
class EntryOutcome:
    rank: int
    name: str
    action: str                     # created | updated | failed
    player_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.action != "failed"


@dataclass
class MvpResult:
    period_id: str
    period_name: str
    period_created: bool
    entries_replaced: int = 0
    outcomes: List[EntryOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failed(self) -> List[EntryOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def created(self) -> int:
        return sum(1 for o in self.outcomes if o.action == "created")

    @property
    def updated(self) -> int:
        return sum(1 for o in self.outcomes if o.action == "updated")

    def to_dict(self) -> dict:
        return {
            "period_id": self.period_id,
            "period_name": self.period_name,
            "period_created": self.period_created,
            "entries_replaced": self.entries_replaced,
            "players_created": self.created,
            "players_updated": self.updated,
            "failed": [
                {"rank": o.rank, "name": o.name, "error": o.error} for o in self.failed
            ],
        }


def make_username(display_name: str) -> str:
    return re.sub(r"\s+", "_", display_name.lower())


# --- Leaderboard ---

def reconcile_leaderboard(store: RecordStore, entries: List[NormalizedEntry]) -> LeaderboardResult:
    """
    Replace the whole leaderboard with this batch.

    Raises:
        StoreWriteError: If any delete or insert fails
    """
    result = LeaderboardResult()

    with store.transaction():
        # Entries go with their players through the cascade.
        result.mvp_entries_cleared = len(store.select("mvp_entries"))

        # id is never NIL_ID, so this matches every player.
        removed = store.delete("players", Filter().neq("id", NIL_ID))
        result.players_deleted = len(removed)
        logger.info("Deleted %d existing players and %d MVP entries",
                    result.players_deleted, result.mvp_entries_cleared)

        created = store.insert("players", [
            {
                "username": entry.display_name,
                "full_name": entry.full_name,
                "initials": entry.initials,
            }
            for entry in entries
        ])
        result.players_created = len(created)

        by_name: Dict[str, Deque[Row]] = defaultdict(deque)
        for player in created:
            by_name[player["username"]].append(player)

        stats = []
        for entry in entries:
            candidates = by_name.get(entry.display_name)
            if not candidates:
                logger.warning("No created player matches '%s' (rank %s); stat skipped",
                               entry.display_name, entry.rank)
                result.skipped.append(entry.display_name)
                continue
            player = candidates.popleft()
            stats.append({
                "player_id": player["id"],
                "rating": entry.metric,
                "tier": entry.category,
                "rank": entry.rank,
            })

        result.stats_created = len(store.insert("leaderboard_stats", stats))

    logger.info("Leaderboard replaced: %d players, %d stats",
                result.players_created, result.stats_created)
    return result


# --- MVP ---

def _division_index(store: RecordStore) -> Dict[str, str]:
    return {
        str(row.get("name") or "").strip().upper(): row["id"]
        for row in store.select("divisions")
    }


def _find_or_create_period(store: RecordStore, month: int, year: int) -> MvpResult:
    existing = store.select_one("mvp_periods", Filter().eq("month", month).eq("year", year))
    if existing:
        removed = store.delete("mvp_entries", Filter().eq("period_id", existing["id"]))
        logger.info("Cleared %d entries from %s", len(removed), existing["name"])
        return MvpResult(
            period_id=existing["id"],
            period_name=existing["name"],
            period_created=False,
            entries_replaced=len(removed),
        )

    name = period_name(month, year)
    created = store.insert("mvp_periods", [{"name": name, "month": month, "year": year}])
    logger.info("Created period %s", name)
    return MvpResult(period_id=created[0]["id"], period_name=name, period_created=True)


def _resolve_player(
    store: RecordStore,
    entry: NormalizedEntry,
    division_id: Optional[str],
    known: Dict[str, str],
) -> EntryOutcome:
    patch = {"alternate_name": entry.full_name, "division_id": division_id}
    key = entry.display_name

    player_id = known.get(key)
    if player_id is None:
        existing = store.select_one("players", Filter().eq("full_name", key))
        player_id = existing["id"] if existing else None

    if player_id is not None:
        store.update("players", Filter().eq("id", player_id), patch)
        known[key] = player_id
        return EntryOutcome(rank=entry.rank, name=key, action="updated", player_id=player_id)

    created = store.insert("players", [{
        "full_name": key,
        "username": make_username(key),
        "initials": entry.initials,
        **patch,
    }])
    known[key] = created[0]["id"]
    return EntryOutcome(rank=entry.rank, name=key, action="created", player_id=created[0]["id"])


def reconcile_mvp(store: RecordStore, entries: List[NormalizedEntry], month: int, year: int) -> MvpResult:
    """
    Replace one period's MVP entries, upserting players along the way.

    Per-entry failures are recorded on the result and do not stop the batch;
    failures while preparing the period raise.

    Raises:
        ValueError: If month/year are out of range
        StoreWriteError: If the period cannot be found, created or cleared
    """
    if not 1 <= int(month) <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    if int(year) <= 0:
        raise ValueError(f"year must be positive, got {year}")

    with store.transaction():
        result = _find_or_create_period(store, month, year)
        divisions = _division_index(store)
        known: Dict[str, str] = {}

        for entry in entries:
            division_id = divisions.get(entry.category) if entry.category else None
            if entry.category and division_id is None:
                logger.debug("Unknown division '%s' for %s", entry.category, entry.display_name)
            try:
                outcome = _resolve_player(store, entry, division_id, known)
                store.insert("mvp_entries", [{
                    "period_id": result.period_id,
                    "player_id": outcome.player_id,
                    "rank": entry.rank,
                    "rating_gain": entry.metric,
                    "events_count": entry.secondary_metric or 0,
                }])
            except LadderError as e:
                logger.warning("MVP entry %s (%s) failed: %s", entry.rank, entry.display_name, e)
                outcome = EntryOutcome(rank=entry.rank, name=entry.display_name,
                                       action="failed", error=str(e))
            result.outcomes.append(outcome)

    logger.info(
        "%s synced: %d entries, %d players created, %d updated, %d failed",
        result.period_name, len(result.outcomes), result.created, result.updated, len(result.failed),
    )
    return result
