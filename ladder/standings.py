# ladder/standings.py

from typing import Any, Dict, List, Optional

from ladder.config import FALLBACK_DIVISION_COLOR
from ladder.store.base import Filter, RecordStore, Row


def ordinal(n: int) -> str:
    """1 -> '1st', 2 -> '2nd', 11 -> '11th', 23 -> '23rd'."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def podium_order(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Arrange the top three for display: 2nd, 1st, 3rd."""
    if len(rows) < 3:
        return []
    return [
        {**rows[1], "position": "2nd"},
        {**rows[0], "position": "1st"},
        {**rows[2], "position": "3rd"},
    ]


def filter_rows(rows: List[Dict[str, Any]], query: Optional[str]) -> List[Dict[str, Any]]:
    """Case-insensitive substring match on name or tier."""
    needle = (query or "").strip().lower()
    if not needle:
        return rows
    return [
        row for row in rows
        if needle in str(row.get("name") or "").lower()
        or needle in str(row.get("tier") or "").lower()
    ]


def split_podium(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    podium = podium_order(rows)
    rest = rows[3:] if podium else rows
    return {"podium": podium, "rows": rest, "count": len(rows)}


class StandingsService:
    """Read-only queries behind the leaderboard, MVP and rank movement pages."""

    def __init__(self, store: RecordStore):
        self.store = store

    def _players_by_id(self) -> Dict[str, Row]:
        return {row["id"]: row for row in self.store.select("players")}

    def divisions(self) -> List[Row]:
        return self.store.select("divisions", Filter().order_by("name"))

    def _division_lookup(self) -> Dict[str, Row]:
        return {row["id"]: row for row in self.divisions()}

    def division_colors(self) -> Dict[str, str]:
        return {
            str(d.get("name") or "").upper(): d.get("color") or FALLBACK_DIVISION_COLOR
            for d in self.divisions()
        }

    # --- Leaderboard ---

    def leaderboard(self, query: Optional[str] = None) -> Dict[str, Any]:
        players = self._players_by_id()
        colors = self.division_colors()
        rows = []
        for stat in self.store.select("leaderboard_stats", Filter().order_by("rank")):
            player = players.get(stat["player_id"], {})
            tier = stat.get("tier") or ""
            rows.append({
                "rank": stat.get("rank"),
                "player_id": stat["player_id"],
                "name": player.get("username") or "",
                "full_name": player.get("full_name") or "",
                "initials": player.get("initials") or "",
                "rating": stat.get("rating"),
                "tier": tier,
                "tier_color": colors.get(tier.upper()) or FALLBACK_DIVISION_COLOR,
            })
        if query:
            return {"podium": [], "rows": filter_rows(rows, query), "count": len(rows)}
        return split_podium(rows)

    # --- MVP ---

    def periods(self) -> List[Row]:
        return self.store.select(
            "mvp_periods",
            Filter().order_by("year", descending=True).order_by("month", descending=True),
        )

    def latest_period(self) -> Optional[Row]:
        periods = self.store.select(
            "mvp_periods",
            Filter().order_by("year", descending=True).order_by("month", descending=True).limit(1),
        )
        return periods[0] if periods else None

    def _mvp_rows(self, period_id: str, order: Filter) -> List[Dict[str, Any]]:
        players = self._players_by_id()
        divisions = self._division_lookup()
        rows = []
        for entry in self.store.select("mvp_entries", order.eq("period_id", period_id)):
            player = players.get(entry["player_id"], {})
            division = divisions.get(player.get("division_id")) or {}
            rows.append({
                "rank": entry.get("rank"),
                "player_id": entry["player_id"],
                "name": player.get("full_name") or "",
                "alternate_name": player.get("alternate_name"),
                "initials": player.get("initials") or "",
                "rating_gain": entry.get("rating_gain"),
                "events_count": entry.get("events_count"),
                "tier": division.get("name") or "",
                "tier_color": division.get("color") or FALLBACK_DIVISION_COLOR,
            })
        return rows

    def period_entries(self, period_id: str) -> List[Dict[str, Any]]:
        return self._mvp_rows(period_id, Filter().order_by("rank"))

    def rank_movement(self, query: Optional[str] = None) -> Dict[str, Any]:
        """
        Latest period ranked by rating gain.

        Ranks are recomputed from the ordering (1st, 2nd, 3rd, then plain
        numbers) rather than taken from the upload.
        """
        period = self.latest_period()
        if period is None:
            return {"period": None, "podium": [], "rows": [], "count": 0}

        rows = self._mvp_rows(period["id"], Filter().order_by("rating_gain", descending=True))
        for idx, row in enumerate(rows):
            row["rank"] = ordinal(idx + 1) if idx < 3 else idx + 1
            row["rating"] = row["rating_gain"]

        if query:
            view = {"podium": [], "rows": filter_rows(rows, query), "count": len(rows)}
        else:
            view = split_podium(rows)
        view["period"] = {"id": period["id"], "name": period["name"]}
        return view
