from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx

from ..config import settings
from ..errors import ExternalServiceFailure

INVOICE = "invoice"
WORK_ORDER = "work_order"


class DocumentRenderer(Protocol):
    def render(self, kind: str, data: dict[str, Any]) -> bytes: ...


class HttpDocumentRenderer:
    """
    Client for the PDF rendering service.

    POST {base}/render/{kind} with the structured document as JSON; the
    response body is the rendered PDF.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base = (base_url or settings.renderer_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.renderer_api_key
        self.timeout = float(timeout or settings.http_timeout_seconds)
        self.transport = transport

    def render(self, kind: str, data: dict[str, Any]) -> bytes:
        if kind not in (INVOICE, WORK_ORDER):
            raise ValueError(f"unknown document kind: {kind}")

        headers = {"Accept": "application/pdf"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key

        url = f"{self.base}/render/{kind}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                r = client.post(url, json=data, headers=headers)
                r.raise_for_status()
                content = r.content
        except httpx.HTTPError as e:
            raise ExternalServiceFailure(f"Rendering {kind} failed", details=str(e))

        if not content:
            raise ExternalServiceFailure(f"Renderer returned an empty {kind} document")
        return content
