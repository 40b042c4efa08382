# ladder/sync.py

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ladder.errors import NoPendingUploadError, SyncInProgressError
from ladder.normalizer import NormalizedEntry, normalize_rows
from ladder.reconcile import reconcile_leaderboard, reconcile_mvp
from ladder.store.base import Filter, RecordStore, Row
from ladder.tabular import TabularParser

logger = logging.getLogger(__name__)

FLOWS = ("leaderboard", "mvp")


@dataclass
class PendingUpload:
    flow: str
    filename: str
    entries: List[NormalizedEntry]


@dataclass
class SyncReport:
    flow: str
    ok: bool
    message: str
    rows: int
    result: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow": self.flow,
            "ok": self.ok,
            "message": self.message,
            "rows": self.rows,
            "result": self.result.to_dict() if self.result is not None else None,
        }


class SyncOrchestrator:
    """
    Drives an upload from file bytes to committed rows.

    An upload is first staged (parsed and normalized into a pending preview)
    and then confirmed (reconciled against the store). Only one confirm may
    run at a time per orchestrator; the busy flag is not shared across
    processes.
    """

    def __init__(self, store: RecordStore, parser: Optional[TabularParser] = None):
        self.store = store
        self.parser = parser or TabularParser()
        self.pending: Dict[str, PendingUpload] = {}
        self._busy = False
        self._periods: Optional[List[Row]] = None

    @property
    def busy(self) -> bool:
        return self._busy

    # --- Staging ---

    def stage(self, flow: str, data: bytes, filename: str = "") -> List[NormalizedEntry]:
        """Parse and normalize an upload, replacing any pending preview for the flow."""
        if flow not in FLOWS:
            raise ValueError(f"Unknown flow '{flow}'")
        rows = self.parser.parse(data, filename)
        entries = normalize_rows(rows, flow)
        self.pending[flow] = PendingUpload(flow=flow, filename=filename, entries=entries)
        logger.info("Staged %d %s entries from %s", len(entries), flow, filename or "upload")
        return entries

    def stage_leaderboard(self, data: bytes, filename: str = "") -> List[NormalizedEntry]:
        return self.stage("leaderboard", data, filename)

    def stage_mvp(self, data: bytes, filename: str = "") -> List[NormalizedEntry]:
        return self.stage("mvp", data, filename)

    def leaderboard_notice(self) -> Optional[str]:
        """Warn when confirming a leaderboard would also clear MVP history."""
        count = len(self.store.select("mvp_entries"))
        if not count:
            return None
        return (
            f"Confirming replaces every player and clears {count} MVP entries "
            f"across all periods"
        )

    def discard(self, flow: str) -> None:
        self.pending.pop(flow, None)

    def _take_pending(self, flow: str) -> PendingUpload:
        pending = self.pending.get(flow)
        if pending is None or not pending.entries:
            raise NoPendingUploadError(f"No {flow} upload is staged")
        return pending

    # --- Confirming ---

    def _enter(self) -> None:
        if self._busy:
            raise SyncInProgressError("A sync is already running")
        self._busy = True

    def confirm_leaderboard(self) -> SyncReport:
        """
        Replace the leaderboard with the staged batch.

        Raises:
            NoPendingUploadError: If nothing is staged
            SyncInProgressError: If another sync is running
            StoreWriteError: If the store rejects a write
        """
        pending = self._take_pending("leaderboard")
        self._enter()
        try:
            result = reconcile_leaderboard(self.store, pending.entries)
        finally:
            self._busy = False

        self.discard("leaderboard")
        message = f"Leaderboard synced: {result.stats_created} players ranked"
        if result.skipped:
            message += f", {len(result.skipped)} skipped"
        if result.mvp_entries_cleared:
            message += f"; MVP history cleared ({result.mvp_entries_cleared} entries across all periods)"
        return SyncReport(
            flow="leaderboard",
            ok=not result.skipped,
            message=message,
            rows=len(pending.entries),
            result=result,
        )

    def confirm_mvp(self, month: int, year: int) -> SyncReport:
        """
        Replace the MVP entries of (month, year) with the staged batch.

        Entry-level failures do not raise; they make the report not ok and
        keep the preview staged so the upload can be retried.

        Raises:
            NoPendingUploadError: If nothing is staged
            SyncInProgressError: If another sync is running
            ValueError: If month/year are out of range
            StoreWriteError: If the period cannot be prepared
        """
        pending = self._take_pending("mvp")
        self._enter()
        try:
            result = reconcile_mvp(self.store, pending.entries, month, year)
        finally:
            self._busy = False

        self.refresh_periods()
        if result.ok:
            self.discard("mvp")
            message = f"{result.period_name} imported: {len(result.outcomes)} entries"
        else:
            failed = ", ".join(f"#{o.rank} {o.name}" for o in result.failed)
            message = (
                f"{result.period_name} imported with {len(result.failed)} failed "
                f"of {len(result.outcomes)} entries: {failed}"
            )
        return SyncReport(
            flow="mvp",
            ok=result.ok,
            message=message,
            rows=len(pending.entries),
            result=result,
        )

    def sync_leaderboard(self, data: bytes, filename: str = "") -> SyncReport:
        self.stage_leaderboard(data, filename)
        return self.confirm_leaderboard()

    def sync_mvp(self, data: bytes, filename: str, month: int, year: int) -> SyncReport:
        self.stage_mvp(data, filename)
        return self.confirm_mvp(month, year)

    # --- Period cache ---

    def periods(self) -> List[Row]:
        if self._periods is None:
            self.refresh_periods()
        return list(self._periods)

    def refresh_periods(self) -> List[Row]:
        self._periods = self.store.select(
            "mvp_periods",
            Filter().order_by("year", descending=True).order_by("month", descending=True),
        )
        return list(self._periods)

    def status(self) -> Dict[str, Any]:
        return {
            "busy": self._busy,
            "pending": {
                flow: {"filename": p.filename, "rows": len(p.entries)}
                for flow, p in self.pending.items()
            },
        }
