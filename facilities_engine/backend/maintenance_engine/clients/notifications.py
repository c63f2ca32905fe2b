from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

import httpx

from ..config import settings
from ..errors import ExternalServiceFailure


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/pdf"


class NotificationDispatcher(Protocol):
    def send(
        self,
        *,
        to: str,
        subject: str,
        html_body: str,
        attachments: Sequence[Attachment] = (),
    ) -> None: ...


class SendGridDispatcher:
    """Email delivery through the SendGrid v3 mail/send endpoint. Raises on any failure."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self.base = (base_url or settings.sendgrid_base_url).rstrip("/")
        self.from_email = from_email or settings.mail_from_email
        self.from_name = from_name or settings.mail_from_name
        self.timeout = float(timeout or settings.http_timeout_seconds)
        self.transport = transport

    def enabled(self) -> bool:
        return bool(self.api_key)

    def send(
        self,
        *,
        to: str,
        subject: str,
        html_body: str,
        attachments: Sequence[Attachment] = (),
    ) -> None:
        if not self.api_key:
            raise ExternalServiceFailure("sendgrid_api_key not set")
        if not to:
            raise ExternalServiceFailure("No recipient address")

        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/html", "value": html_body}],
        }
        if attachments:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(a.content).decode("ascii"),
                    "filename": a.filename,
                    "type": a.content_type,
                    "disposition": "attachment",
                }
                for a in attachments
            ]

        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                r = client.post(f"{self.base}/mail/send", json=payload, headers=headers)
                r.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceFailure("Email delivery failed", details=str(e))
