# backend/maintenance_engine/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

HEADER = "X-Request-ID"

# ids from callers end up in every log line of the request
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def _incoming_id(headers: Headers) -> Optional[str]:
    rid = (headers.get(HEADER) or "").strip()
    return rid if _ACCEPTED_ID.match(rid) else None


class RequestIDMiddleware:
    """
    Per-request id for log correlation, echoed back in X-Request-ID.

    A well-formed incoming X-Request-ID (e.g. from the scheduler that triggers
    executions) is reused; anything else gets a fresh id.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        rid = _incoming_id(Headers(scope=scope)) or uuid.uuid4().hex

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[HEADER] = rid
            await send(message)

        token = request_id_ctx.set(rid)
        try:
            await self.app(scope, receive, send_with_id)
        finally:
            request_id_ctx.reset(token)
