# backend/maintenance_engine/domain/importers/base.py
from __future__ import annotations

import csv
from datetime import datetime, timezone
from io import StringIO
from typing import Any, Iterable, Optional

from dateutil import parser as date_parser


def _clean_str(x: Any) -> str:
    return (str(x).strip() if x is not None else "").strip()


def parse_csv_bytes(data: bytes) -> list[list[str]]:
    """Raw rows (header included) with every cell stripped; blank lines dropped."""
    text = data.decode("utf-8-sig", errors="replace")
    out: list[list[str]] = []
    for row in csv.reader(StringIO(text)):
        cells = [_clean_str(c) for c in row]
        if any(cells):
            out.append(cells)
    return out


def find_column(headers: list[str], needle: str, *, exclude: Iterable[str] = ()) -> Optional[int]:
    """Index of the first header containing ``needle`` (case-insensitive)."""
    for i in find_columns(headers, needle, exclude=exclude):
        return i
    return None


def find_columns(headers: list[str], needle: str, *, exclude: Iterable[str] = ()) -> list[int]:
    needle_u = needle.upper()
    excluded = [e.upper() for e in exclude]
    out: list[int] = []
    for i, h in enumerate(headers):
        hu = (h or "").upper()
        if needle_u in hu and not any(e in hu for e in excluded):
            out.append(i)
    return out


def cell(row: list[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return _clean_str(row[idx])


def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


def parse_service_date(x: Any) -> Optional[datetime]:
    """
    Permissive spreadsheet date parser.

    MM/DD/YYYY first; anything else (ISO dates, "Jan 5 2024", two-digit
    years) goes through dateutil. Returns None for values that are not dates.
    """
    s = _clean_str(x)
    if not s:
        return None

    parts = s.split("/")
    if len(parts) == 3 and len(parts[2].strip()) == 4:
        try:
            month, day, year = (int(p) for p in parts)
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            pass

    try:
        return _as_utc(date_parser.parse(s))
    except (ValueError, OverflowError):
        return None
