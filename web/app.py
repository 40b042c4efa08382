import logging
import os
import sys
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, File, HTTPException, Request, UploadFile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ladder.config import ALLOWED_YEARS, Settings
from ladder.errors import (
    MalformedFileError,
    NoPendingUploadError,
    StoreError,
    SyncInProgressError,
)
from ladder.store import RecordStore, open_store
from ladder.standings import StandingsService
from ladder.sync import SyncOrchestrator

logger = logging.getLogger(__name__)

app = FastAPI(title="Ladder")

# Wired by configure(); built from the environment on first request otherwise.
services: Dict[str, Any] = {
    "store": None,
    "orchestrator": None,
    "standings": None,
}


def configure(store: RecordStore) -> None:
    services["store"] = store
    services["orchestrator"] = SyncOrchestrator(store)
    services["standings"] = StandingsService(store)


def _ensure_configured() -> None:
    if services["store"] is None:
        settings = Settings.from_env()
        store = open_store(settings)
        logger.info("[DB] Using %s store", settings.store)
        configure(store)


def orchestrator() -> SyncOrchestrator:
    _ensure_configured()
    return services["orchestrator"]


def standings() -> StandingsService:
    _ensure_configured()
    return services["standings"]


def _preview(flow: str, entries: list, filename: str) -> dict:
    colors = standings().division_colors()
    rows = []
    for entry in entries:
        row = entry.to_dict()
        row["tier_color"] = colors.get(entry.category)
        rows.append(row)
    preview = {"flow": flow, "filename": filename, "entries": rows, "count": len(rows)}
    if flow == "leaderboard":
        preview["warning"] = orchestrator().leaderboard_notice()
    return preview


def _parse_month_year(payload: Optional[dict]) -> Tuple[int, int]:
    payload = payload or {}
    try:
        month = int(payload.get("month"))
        year = int(payload.get("year"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="month and year are required integers")
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="month must be between 1 and 12")
    if year not in ALLOWED_YEARS:
        allowed = ", ".join(str(y) for y in ALLOWED_YEARS)
        raise HTTPException(status_code=400, detail=f"year must be one of: {allowed}")
    return month, year


# --- Read side ---

@app.get("/api/leaderboard")
async def leaderboard(q: str = "") -> dict:
    try:
        return standings().leaderboard(q or None)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load leaderboard: {str(e)}")


@app.get("/api/divisions")
async def divisions() -> dict:
    try:
        rows = standings().divisions()
        return {"divisions": rows, "count": len(rows)}
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load divisions: {str(e)}")


@app.get("/api/mvp/periods")
async def mvp_periods() -> dict:
    try:
        rows = standings().periods()
        return {"periods": rows, "count": len(rows)}
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load MVP periods: {str(e)}")


@app.get("/api/mvp/periods/{period_id}/entries")
async def mvp_period_entries(period_id: str) -> dict:
    try:
        rows = standings().period_entries(period_id)
        return {"period_id": period_id, "entries": rows, "count": len(rows)}
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load MVP entries: {str(e)}")


@app.get("/api/rank-movement")
async def rank_movement(q: str = "") -> dict:
    try:
        return standings().rank_movement(q or None)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load rank movement: {str(e)}")


@app.get("/api/sync/status")
async def sync_status() -> dict:
    return orchestrator().status()


# --- Admin upload ---

async def _stage(flow: str, file: UploadFile) -> dict:
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    filename = file.filename or ""
    try:
        entries = orchestrator().stage(flow, data, filename)
    except MalformedFileError as e:
        raise HTTPException(status_code=400, detail=f"Could not read {filename or 'upload'}: {str(e)}")
    return _preview(flow, entries, filename)


@app.post("/api/leaderboard/upload")
async def leaderboard_upload(file: UploadFile = File(...)) -> dict:
    return await _stage("leaderboard", file)


@app.delete("/api/leaderboard/upload")
async def leaderboard_discard() -> dict:
    orchestrator().discard("leaderboard")
    return {"ok": True}


@app.post("/api/leaderboard/confirm")
async def leaderboard_confirm() -> dict:
    try:
        report = orchestrator().confirm_leaderboard()
    except NoPendingUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreError as e:
        logger.error("Leaderboard sync failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to sync: {str(e)}")
    return report.to_dict()


@app.post("/api/mvp/upload")
async def mvp_upload(file: UploadFile = File(...)) -> dict:
    return await _stage("mvp", file)


@app.delete("/api/mvp/upload")
async def mvp_discard() -> dict:
    orchestrator().discard("mvp")
    return {"ok": True}


@app.post("/api/mvp/confirm")
async def mvp_confirm(request: Request) -> dict:
    try:
        payload = await request.json()
    except Exception:
        payload = {}
    month, year = _parse_month_year(payload if isinstance(payload, dict) else {})
    try:
        report = orchestrator().confirm_mvp(month, year)
    except NoPendingUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreError as e:
        logger.error("MVP import failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to sync: {str(e)}")
    return report.to_dict()


if __name__ == "__main__":
    import uvicorn

    from ladder.cli import configure_logging

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    print("Starting Ladder Web Server...")
    print(f"Open http://{settings.host}:{settings.port} in your browser")
    uvicorn.run(app, host=settings.host, port=settings.port)
