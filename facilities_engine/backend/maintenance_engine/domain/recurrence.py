# backend/maintenance_engine/domain/recurrence.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RECURRENCE_TYPES = ("daily", "weekly", "monthly", "yearly", "custom")

# Unknown/custom patterns advance one week. Import labels default to monthly
# instead (see DEFAULT_FREQUENCY).
FALLBACK_DAYS = 7


class RecurrencePattern(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    # stored data may carry types outside RECURRENCE_TYPES; next_date() falls back for those
    type: str = "monthly"
    interval: int = Field(default=1, ge=1)
    custom_pattern: Optional[str] = None
    scheduling: Optional[str] = None


def next_date(pattern: RecurrencePattern, from_date: datetime) -> datetime:
    """
    Next cycle date after ``from_date``.

    Month and year arithmetic clamps to the last valid day of the target
    month (Jan 31 + 1 month -> Feb 28/29).
    """
    n = int(pattern.interval)
    kind = (pattern.type or "").strip().lower()

    if kind == "daily":
        return from_date + timedelta(days=n)
    if kind == "weekly":
        return from_date + timedelta(days=7 * n)
    if kind == "monthly":
        return from_date + relativedelta(months=n)
    if kind == "yearly":
        return from_date + relativedelta(years=n)
    return from_date + timedelta(days=FALLBACK_DAYS)


FREQUENCY_TABLE: dict[str, tuple[str, int]] = {
    "SEMIANNUALLY": ("monthly", 6),
    "QUARTERLY": ("monthly", 3),
    "MONTHLY": ("monthly", 1),
    "BI-WEEKLY": ("weekly", 2),
    "WEEKLY": ("weekly", 1),
}

DEFAULT_FREQUENCY: tuple[str, int] = ("monthly", 1)


def map_frequency(label: Optional[str]) -> RecurrencePattern:
    key = (label or "").strip().upper()
    kind, interval = FREQUENCY_TABLE.get(key, DEFAULT_FREQUENCY)
    return RecurrencePattern(type=kind, interval=interval)
