# ladder/normalizer.py

import logging
import math
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

RawRow = Dict[str, Any]

_WHITESPACE = re.compile(r"\s+")

LEADERBOARD_COLUMNS = ("NAME", "RANK", "RATING", "DIVISION")
MVP_COLUMNS = ("NO", "NAME", "RATING GAIN", "EVENT", "DIVISION")


class SplitStyle(Enum):
    """How a "handle / legal name" cell is separated."""

    BARE = "/"          # leaderboard exports: "Yosam/Yohanes Samuel"
    SPACED = " / "      # MVP exports: "HerKu (rovo) / HERRY KUHUELA"


@dataclass(frozen=True)
class NormalizedEntry:
    display_name: str
    full_name: Optional[str]
    initials: str
    metric: int
    category: str
    rank: int
    secondary_metric: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def cell_text(row: RawRow, column: str) -> str:
    """Return a cell as text; missing and empty cells become ''."""
    value = row.get(column)
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def coerce_int(value: Any, column: str = "") -> int:
    """
    Parse a numeric cell, defaulting to 0.

    Never raises: blank, non-numeric and non-finite cells all become 0 so a
    single bad cell cannot abort the batch.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return _defaulted(value, column)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value):
            return int(value)
        return _defaulted(value, column)

    text = str(value).strip()
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return _defaulted(value, column)
    if not math.isfinite(number):
        return _defaulted(value, column)
    return int(number)


def _defaulted(value: Any, column: str) -> int:
    logger.debug("Non-numeric value %r in column %s defaulted to 0", value, column or "?")
    return 0


def clean_name(raw: str) -> str:
    """Collapse whitespace runs (including line breaks inside a cell) and trim."""
    return _WHITESPACE.sub(" ", raw or "").strip()


def split_name(raw: str, style: SplitStyle) -> Tuple[str, Optional[str]]:
    """
    Split a composite name cell into (display name, second name).

    Returns (raw, None) when the style's separator is absent. Only the first
    two segments are used.
    """
    separator = style.value
    if separator not in raw:
        return raw, None
    parts = [part.strip() for part in raw.split(separator)]
    return parts[0], parts[1]


def _lead_char(token: str) -> str:
    for ch in token:
        if ch.isalnum():
            return ch
    return token[:1]


def derive_initials(display_name: str) -> str:
    """
    Two-letter avatar initials from the display name.

    "Calvin Joseph" -> "CJ", "PR" -> "PR", "X" -> "X", "HerKu (rovo)" -> "HR".
    """
    tokens = display_name.split(" ")
    if len(tokens) >= 2:
        initials = _lead_char(tokens[0]) + _lead_char(tokens[1])
    else:
        initials = display_name[:2]
    return initials.upper()


def normalize_leaderboard_row(row: RawRow) -> NormalizedEntry:
    raw_name = clean_name(cell_text(row, "NAME"))
    display_name, second = split_name(raw_name, SplitStyle.BARE)
    return NormalizedEntry(
        display_name=display_name,
        full_name=second if second is not None else display_name,
        initials=derive_initials(display_name),
        metric=coerce_int(row.get("RATING"), "RATING"),
        category=cell_text(row, "DIVISION").strip().upper(),
        rank=coerce_int(row.get("RANK"), "RANK"),
    )


def normalize_mvp_row(row: RawRow) -> NormalizedEntry:
    raw_name = clean_name(cell_text(row, "NAME"))
    display_name, second = split_name(raw_name, SplitStyle.SPACED)
    return NormalizedEntry(
        display_name=display_name,
        full_name=second,
        initials=derive_initials(display_name),
        metric=coerce_int(row.get("RATING GAIN"), "RATING GAIN"),
        secondary_metric=coerce_int(row.get("EVENT"), "EVENT"),
        category=cell_text(row, "DIVISION").strip().upper(),
        rank=coerce_int(row.get("NO"), "NO"),
    )


def normalize_rows(rows: List[RawRow], flow: str) -> List[NormalizedEntry]:
    """Normalize a parsed batch for the 'leaderboard' or 'mvp' flow."""
    if flow == "leaderboard":
        normalize = normalize_leaderboard_row
        expected = LEADERBOARD_COLUMNS
    elif flow == "mvp":
        normalize = normalize_mvp_row
        expected = MVP_COLUMNS
    else:
        raise ValueError(f"Unknown flow '{flow}'")

    if rows:
        missing = [c for c in expected if c not in rows[0]]
        if missing:
            logger.warning("%s upload is missing column(s): %s", flow, ", ".join(missing))

    return [normalize(row) for row in rows]
