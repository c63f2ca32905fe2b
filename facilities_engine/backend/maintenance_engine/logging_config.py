# backend/maintenance_engine/logging_config.py
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .middleware.request_id import get_request_id

EXTRA_FIELDS = (
    "recurring_work_order_id",
    "execution_id",
    "row",
    "event",
    "method",
    "path",
    "status_code",
    "latency_ms",
)


class JsonFormatter(logging.Formatter):
    """
    One JSON object per log line: ts, level, logger, message, the request id
    when inside a request, exception text, and the engine's structured extras.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        rid = get_request_id()
        if rid:
            payload["request_id"] = rid

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for k in EXTRA_FIELDS:
            if hasattr(record, k):
                payload[k] = getattr(record, k)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    level = (os.getenv("LOG_LEVEL") or "INFO").upper()

    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers (important for uvicorn reload)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel((os.getenv("SQL_LOG_LEVEL") or "WARNING").upper())
    logging.getLogger("httpx").setLevel((os.getenv("HTTP_LOG_LEVEL") or "WARNING").upper())
