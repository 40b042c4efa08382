# ladder/cli.py
"""
Command line entry points.

Run:
    python main.py leaderboard exports/leaderboard.xlsx
    python main.py mvp exports/mvp_march.xlsx --month 3 --year 2025
    python main.py serve --port 5000
    python main.py init-db
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ladder.config import Settings
from ladder.errors import LadderError
from ladder.store import open_store
from ladder.sync import SyncOrchestrator

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _safe_print(message: str) -> None:
    """Print with Unicode fallback for restricted terminal encodings."""
    try:
        print(message)
    except UnicodeEncodeError:
        print(message.encode("ascii", "replace").decode("ascii"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ladder", description="League standings and MVP ingestion")
    parser.add_argument("--db", help="SQLite database path (overrides LADDER_DB_PATH)")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    lb = sub.add_parser("leaderboard", help="Replace the leaderboard from a spreadsheet")
    lb.add_argument("file", type=Path)
    lb.add_argument("--dry-run", action="store_true", help="Parse and preview without writing")

    mvp = sub.add_parser("mvp", help="Import one month of MVP rankings")
    mvp.add_argument("file", type=Path)
    mvp.add_argument("--month", type=int, required=True)
    mvp.add_argument("--year", type=int, required=True)
    mvp.add_argument("--dry-run", action="store_true", help="Parse and preview without writing")

    serve = sub.add_parser("serve", help="Run the web server")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    sub.add_parser("init-db", help="Create the local database and seed divisions")
    return parser


def _print_preview(entries) -> None:
    for entry in entries:
        alt = f" / {entry.full_name}" if entry.full_name and entry.full_name != entry.display_name else ""
        _safe_print(
            f"  {entry.rank:>4}  {entry.display_name}{alt}  [{entry.initials}]  "
            f"{entry.metric}  {entry.category}"
        )
    _safe_print(f"  ({len(entries)} entries)")


def _run_sync(args: argparse.Namespace, orchestrator: SyncOrchestrator) -> int:
    data = args.file.read_bytes()
    entries = orchestrator.stage(args.command, data, args.file.name)
    if args.dry_run:
        _print_preview(entries)
        notice = orchestrator.leaderboard_notice() if args.command == "leaderboard" else None
        if notice:
            _safe_print(f"[WARN] {notice}")
        return 0

    if args.command == "leaderboard":
        report = orchestrator.confirm_leaderboard()
    else:
        report = orchestrator.confirm_mvp(args.month, args.year)

    _safe_print(("[OK] " if report.ok else "[WARN] ") + report.message)
    return 0 if report.ok else 2


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
    except ValueError as e:
        _safe_print(f"[ERROR] {e}")
        return 1
    if args.db:
        settings.store = "sqlite"
        settings.db_path = args.db
    configure_logging("DEBUG" if args.verbose else settings.log_level)

    if args.command == "serve":
        import uvicorn
        from web.app import app, configure

        configure(open_store(settings))
        host = args.host or settings.host
        port = args.port or settings.port
        _safe_print(f"Open http://{host}:{port} in your browser")
        uvicorn.run(app, host=host, port=port)
        return 0

    try:
        store = open_store(settings)
    except (LadderError, ValueError) as e:
        _safe_print(f"[ERROR] {e}")
        return 1

    try:
        if args.command == "init-db":
            _safe_print(f"[OK] Database ready ({settings.store})")
            return 0
        return _run_sync(args, SyncOrchestrator(store))
    except OSError as e:
        _safe_print(f"[ERROR] Could not read {args.file}: {e}")
        return 1
    except (LadderError, ValueError) as e:
        _safe_print(f"[ERROR] Failed to sync: {e}")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
