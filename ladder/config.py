# ladder/config.py

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_DB_PATH = "data/ladder.db"
DEFAULT_LOG_LEVEL = "INFO"      # DEBUG also logs every defaulted numeric cell
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5000

# Always-false id used by the leaderboard flow to express "delete every row"
# through an ordinary filter.
NIL_ID = "00000000-0000-0000-0000-000000000000"

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

ALLOWED_YEARS = (2024, 2025, 2026, 2027)

DEFAULT_DIVISIONS = (
    ("PLATINUM PHOENIX", "#e5e4e2"),
    ("GOLDEN FALCON", "#ffd700"),
    ("SILVER HAWK", "#c0c0c0"),
    ("BRONZE MERLIN", "#cd7f32"),
    ("EMERALD DOVE", "#50c878"),
)

FALLBACK_DIVISION_COLOR = "#6b7280"

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def resolve_db_path(db_path: str) -> str:
    """Return an absolute database path anchored to project root when relative."""
    path = Path(db_path)
    if path.is_absolute():
        return str(path)
    return str(PROJECT_ROOT / path)


def period_name(month: int, year: int) -> str:
    return f"{MONTH_NAMES[month - 1]} {year}"


@dataclass
class Settings:
    store: str = "sqlite"
    db_path: str = DEFAULT_DB_PATH
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from LADDER_* and SUPABASE_* environment variables."""
        port_raw = os.environ.get("LADDER_PORT", "").strip()
        try:
            port = int(port_raw) if port_raw else DEFAULT_PORT
        except ValueError:
            raise ValueError(f"LADDER_PORT must be an integer, got '{port_raw}'")

        return cls(
            store=os.environ.get("LADDER_STORE", "sqlite").strip().lower() or "sqlite",
            db_path=os.environ.get("LADDER_DB_PATH", "").strip() or DEFAULT_DB_PATH,
            supabase_url=os.environ.get("SUPABASE_URL", "").strip() or None,
            supabase_key=(
                os.environ.get("SUPABASE_KEY", "").strip()
                or os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "").strip()
                or None
            ),
            log_level=os.environ.get("LADDER_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper() or DEFAULT_LOG_LEVEL,
            host=os.environ.get("LADDER_HOST", DEFAULT_HOST).strip() or DEFAULT_HOST,
            port=port,
        )
