from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Optional


def _time_digits(now: Optional[datetime] = None) -> str:
    ts = now or datetime.now(timezone.utc)
    return str(int(ts.timestamp() * 1000))[-8:]


def recurring_work_order_number(row_index: Optional[int] = None, now: Optional[datetime] = None) -> str:
    """
    RWO-<ms digits>[-<row>]-<random>.

    The row index keeps numbers apart within one import batch; the random
    suffix keeps them apart across batches landing in the same millisecond.
    """
    parts = ["RWO", _time_digits(now)]
    if row_index is not None:
        parts.append(f"{int(row_index):03d}")
    parts.append(secrets.token_hex(2).upper())
    return "-".join(parts)


def generated_work_order_number(
    execution_number: int,
    now: Optional[datetime] = None,
    suffix: Optional[str] = None,
) -> str:
    """WO-<ms digits>-EX<n>[-<suffix>]; batch generation passes a suffix so numbers made in one millisecond differ."""
    number = f"WO-{_time_digits(now)}-EX{int(execution_number)}"
    return f"{number}-{suffix}" if suffix else number


def invoice_number(execution_number: int, now: Optional[datetime] = None) -> str:
    return f"INV-REC-{_time_digits(now)}-{int(execution_number)}"
