from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx

from ..config import settings
from ..errors import ExternalServiceFailure


class PaymentLinkProvider(Protocol):
    def create_link(
        self,
        *,
        amount: float,
        description: str,
        payer_email: str,
        payer_name: str,
        reference: str,
    ) -> str: ...


class StripeCheckoutClient:
    """Hosted checkout links through the Stripe Checkout Sessions API."""

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        currency: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.base = (base_url or settings.stripe_base_url).rstrip("/")
        self.currency = (currency or settings.payment_currency).lower()
        self.timeout = float(timeout or settings.http_timeout_seconds)
        self.transport = transport

    def enabled(self) -> bool:
        return bool(self.secret_key)

    def create_link(
        self,
        *,
        amount: float,
        description: str,
        payer_email: str,
        payer_name: str,
        reference: str,
    ) -> str:
        if not self.secret_key:
            raise ExternalServiceFailure("stripe_secret_key not set")
        if amount is None or float(amount) <= 0:
            raise ExternalServiceFailure("Amount must be greater than 0")

        # Stripe takes form-encoded nested params
        form: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types[0]": "card",
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": self.currency,
            "line_items[0][price_data][unit_amount]": str(int(round(float(amount) * 100))),
            "line_items[0][price_data][product_data][name]": f"Invoice {reference}",
            "line_items[0][price_data][product_data][description]": description or reference,
            "success_url": settings.payment_success_url,
            "cancel_url": settings.payment_cancel_url,
            "client_reference_id": reference,
            "metadata[invoiceNumber]": reference,
            "metadata[clientName]": payer_name or "",
        }
        if payer_email:
            form["customer_email"] = payer_email

        url = f"{self.base}/checkout/sessions"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                r = client.post(url, data=form, auth=(self.secret_key, ""))
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            raise ExternalServiceFailure("Payment link request failed", details=str(e))
        except ValueError as e:
            raise ExternalServiceFailure("Invalid response from payment provider", details=str(e))

        link = data.get("url") if isinstance(data, dict) else None
        if not link:
            raise ExternalServiceFailure("Payment provider returned no checkout url")
        return str(link)
