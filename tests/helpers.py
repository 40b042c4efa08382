# tests/helpers.py

import csv
import io
import os
import tempfile
import zipfile

from openpyxl import Workbook

from ladder.store import SqliteRecordStore

LEADERBOARD_HEADERS = ["RANK", "NAME", "RATING", "DIVISION"]
LEADERBOARD_ROWS = [
    [1, "PR", 1307, "PLATINUM PHOENIX"],
    [2, "Calvin Joseph", 1279, "Platinum Phoenix"],
    [3, "HARY LIE/Hary Lie", 1233, "platinum phoenix"],
    [4, "Brian Alexander", 1220, "PLATINUM PHOENIX"],
    [5, "Delroy Kumara", 1170, "golden falcon"],
    [6, "Yosam / Yohanes Samuel", 1169, "GOLDEN FALCON"],
    [8, "HerKu (rovo) / HERRY KUHUELA", 1146, "silver hawk"],
]

MVP_HEADERS = ["NO", "NAME", "RATING GAIN", "EVENT", "DIVISION"]
MVP_ROWS = [
    [1, "HerKu (rovo) / HERRY KUHUELA", 86, 5, "silver hawk"],
    [2, "Donny Kwandindo", 64, 4, "SILVER HAWK"],
    [3, "Miko", 71, 6, "Golden Falcon"],
    [4, "Denny Guna Panjalu", 12, 2, "bronze merlin"],
]


def create_temp_store():
    """Create a fresh SQLite store in a temporary file. Returns (store, path)."""
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    return SqliteRecordStore(db_path), db_path


def remove_temp_store(store, db_path: str) -> None:
    store.close()
    for suffix in ('', '-wal', '-shm'):
        if os.path.exists(db_path + suffix):
            os.remove(db_path + suffix)


def xlsx_bytes(headers, rows, extra_sheet_rows=None) -> bytes:
    """Build an .xlsx workbook in memory; the first sheet holds the data."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    ws.append(headers)
    for row in rows:
        ws.append(row)
    if extra_sheet_rows is not None:
        other = wb.create_sheet("Other")
        for row in extra_sheet_rows:
            other.append(row)
        wb.active = 1
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def csv_bytes(headers, rows, bom: bool = False) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    text = buffer.getvalue()
    return (('\ufeff' + text) if bom else text).encode('utf-8')


def leaderboard_xlsx(rows=None) -> bytes:
    return xlsx_bytes(LEADERBOARD_HEADERS, LEADERBOARD_ROWS if rows is None else rows)


def mvp_xlsx(rows=None) -> bytes:
    return xlsx_bytes(MVP_HEADERS, MVP_ROWS if rows is None else rows)


def division_id(store, name: str) -> str:
    for row in store.select("divisions"):
        if row["name"] == name:
            return row["id"]
    raise KeyError(name)


def replace_workbook_part(data: bytes, part: str, content: bytes) -> bytes:
    """Return a copy of an .xlsx with one archive member rewritten."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(data)) as source, \
            zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as target:
        for item in source.infolist():
            body = content if item.filename == part else source.read(item.filename)
            target.writestr(item, body)
    return buffer.getvalue()


def broken_sheet_xlsx() -> bytes:
    """A valid workbook container whose first sheet XML is truncated."""
    return replace_workbook_part(
        leaderboard_xlsx(), "xl/worksheets/sheet1.xml", b"<worksheet><sheetData><row><c"
    )
