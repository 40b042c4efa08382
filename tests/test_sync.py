# tests/test_sync.py

import pytest

from ladder.errors import (
    MalformedFileError,
    NoPendingUploadError,
    StoreWriteError,
    SyncInProgressError,
)
from ladder.sync import SyncOrchestrator
from tests.helpers import (
    LEADERBOARD_HEADERS,
    MVP_ROWS,
    csv_bytes,
    leaderboard_xlsx,
    mvp_xlsx,
    xlsx_bytes,
)


class TestSyncOrchestrator:
    """Stage and confirm flows."""

    @pytest.fixture
    def orchestrator(self, store):
        return SyncOrchestrator(store)

    def test_stage_builds_preview_without_writing(self, orchestrator, store):
        entries = orchestrator.stage_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")

        assert len(entries) == 7
        assert entries[-1].display_name == "HerKu (rovo)"
        assert store.select("players") == []
        assert orchestrator.status()["pending"]["leaderboard"] == {"filename": "leaderboard.xlsx", "rows": 7}

    def test_confirm_leaderboard(self, orchestrator, store):
        orchestrator.stage_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")
        report = orchestrator.confirm_leaderboard()

        assert report.ok
        assert report.rows == 7
        assert "7 players ranked" in report.message
        assert len(store.select("leaderboard_stats")) == 7
        assert "leaderboard" not in orchestrator.pending

    def test_confirm_without_stage(self, orchestrator):
        with pytest.raises(NoPendingUploadError):
            orchestrator.confirm_leaderboard()
        with pytest.raises(NoPendingUploadError):
            orchestrator.confirm_mvp(3, 2025)

    def test_confirm_empty_sheet(self, orchestrator, store):
        orchestrator.stage_leaderboard(xlsx_bytes(LEADERBOARD_HEADERS, []), "empty.xlsx")
        with pytest.raises(NoPendingUploadError):
            orchestrator.confirm_leaderboard()

    def test_discard(self, orchestrator):
        orchestrator.stage_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")
        orchestrator.discard("leaderboard")
        with pytest.raises(NoPendingUploadError):
            orchestrator.confirm_leaderboard()

    def test_restage_replaces_preview(self, orchestrator):
        orchestrator.stage_leaderboard(leaderboard_xlsx(), "first.xlsx")
        orchestrator.stage_leaderboard(
            csv_bytes(LEADERBOARD_HEADERS, [[1, "PR", 1307, "PLATINUM PHOENIX"]]), "second.csv"
        )
        assert orchestrator.status()["pending"]["leaderboard"] == {"filename": "second.csv", "rows": 1}

    def test_malformed_upload_leaves_store_and_preview(self, orchestrator, store):
        orchestrator.stage_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")
        with pytest.raises(MalformedFileError):
            orchestrator.stage_leaderboard(b"PK\x03\x04 broken", "broken.xlsx")

        assert store.select("players") == []
        assert orchestrator.pending["leaderboard"].filename == "leaderboard.xlsx"

    def test_unknown_flow(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.stage("weekly", leaderboard_xlsx(), "x.xlsx")

    def test_concurrent_confirm_rejected(self, orchestrator, store):
        orchestrator.stage_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")
        orchestrator._busy = True

        with pytest.raises(SyncInProgressError):
            orchestrator.confirm_leaderboard()

        assert store.select("players") == []
        assert "leaderboard" in orchestrator.pending

    def test_confirm_reentered_from_store_write(self, store):
        orchestrator = SyncOrchestrator(store)
        seen = []
        original_delete = store.delete

        def delete_and_reenter(table, where):
            try:
                orchestrator.confirm_leaderboard()
            except SyncInProgressError as e:
                seen.append(e)
            return original_delete(table, where)

        store.delete = delete_and_reenter
        orchestrator.stage_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")
        report = orchestrator.confirm_leaderboard()

        assert report.ok
        assert len(seen) == 1
        assert not orchestrator.busy

    def test_busy_cleared_after_failure(self, orchestrator, store):
        def failing_insert(table, rows):
            raise StoreWriteError("insert rejected")

        store.insert = failing_insert
        orchestrator.stage_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")

        with pytest.raises(StoreWriteError):
            orchestrator.confirm_leaderboard()

        assert not orchestrator.busy
        assert "leaderboard" in orchestrator.pending

    def test_confirm_mvp(self, orchestrator, store):
        orchestrator.stage_mvp(mvp_xlsx(), "mvp_march.xlsx")
        report = orchestrator.confirm_mvp(3, 2025)

        assert report.ok
        assert report.message == "March 2025 imported: 4 entries"
        assert report.to_dict()["result"]["players_created"] == 4
        assert "mvp" not in orchestrator.pending
        assert [p["name"] for p in orchestrator.periods()] == ["March 2025"]

    def test_confirm_mvp_invalid_month(self, orchestrator, store):
        orchestrator.stage_mvp(mvp_xlsx(), "mvp.xlsx")
        with pytest.raises(ValueError):
            orchestrator.confirm_mvp(13, 2025)
        assert not orchestrator.busy
        assert store.select("mvp_periods") == []

    def test_partial_mvp_keeps_preview(self, orchestrator, store):
        original_insert = store.insert

        def insert(table, rows):
            if table == "mvp_entries" and rows[0]["rank"] == 3:
                raise StoreWriteError("insert rejected")
            return original_insert(table, rows)

        store.insert = insert
        orchestrator.stage_mvp(mvp_xlsx(), "mvp.xlsx")
        report = orchestrator.confirm_mvp(3, 2025)

        assert not report.ok
        assert "1 failed of 4 entries" in report.message
        assert "#3 Miko" in report.message
        assert "mvp" in orchestrator.pending

    def test_periods_cache_refreshed_by_confirm(self, orchestrator):
        assert orchestrator.periods() == []

        orchestrator.sync_mvp(mvp_xlsx(MVP_ROWS[:1]), "jan.xlsx", 1, 2025)
        orchestrator.sync_mvp(mvp_xlsx(MVP_ROWS[:1]), "mar.xlsx", 3, 2025)
        orchestrator.sync_mvp(mvp_xlsx(MVP_ROWS[:1]), "dec.xlsx", 12, 2024)

        assert [p["name"] for p in orchestrator.periods()] == ["March 2025", "January 2025", "December 2024"]

    def test_sync_leaderboard_one_step(self, orchestrator, store):
        report = orchestrator.sync_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")
        assert report.ok
        assert report.to_dict()["result"]["stats_created"] == 7

    def test_leaderboard_confirm_reports_cleared_mvp_history(self, orchestrator):
        orchestrator.sync_mvp(mvp_xlsx(), "mvp.xlsx", 3, 2025)
        orchestrator.stage_leaderboard(leaderboard_xlsx(), "leaderboard.xlsx")

        assert orchestrator.leaderboard_notice() == (
            "Confirming replaces every player and clears 4 MVP entries across all periods"
        )
        report = orchestrator.confirm_leaderboard()

        assert "MVP history cleared (4 entries across all periods)" in report.message
        assert report.to_dict()["result"]["mvp_entries_cleared"] == 4
        assert orchestrator.leaderboard_notice() is None
