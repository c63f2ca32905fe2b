# backend/maintenance_engine/domain/documents.py
"""
Structured inputs for the rendered artifacts of one execution cycle:
the invoice, the work-order sheet, the generated work-order record and the
client notification email.

Everything here is a pure function of the definition and the cycle values,
so a stored snapshot re-renders to the same document.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from html import escape
from typing import Any, Optional

from ..schemas import RecurringWorkOrder

PAYMENT_TERMS_DAYS = 30

SYSTEM_USER_ID = "system"
SYSTEM_USER_NAME = "Recurring Work Order System"


def _iso(v: datetime) -> str:
    return v.astimezone(timezone.utc).isoformat()


def _amount(rwo: RecurringWorkOrder) -> float:
    return round(float(rwo.estimate_budget or 0.0), 2)


def invoice_data(
    rwo: RecurringWorkOrder,
    *,
    invoice_number: str,
    execution_number: int,
    scheduled_date: datetime,
) -> dict[str, Any]:
    amount = _amount(rwo)
    return {
        "invoiceNumber": invoice_number,
        "issueDate": _iso(scheduled_date),
        "dueDate": _iso(scheduled_date + timedelta(days=PAYMENT_TERMS_DAYS)),
        "clientName": rwo.client_name,
        "clientEmail": rwo.client_email,
        "companyName": rwo.company_name,
        "locationName": rwo.location_name,
        "locationAddress": rwo.location_address,
        "recurringWorkOrderNumber": rwo.work_order_number,
        "executionNumber": int(execution_number),
        "lineItems": [
            {
                "description": rwo.title,
                "quantity": 1,
                "unitPrice": amount,
                "amount": amount,
            }
        ],
        "subtotal": amount,
        "taxRate": 0.0,
        "taxAmount": 0.0,
        "discountAmount": 0.0,
        "totalAmount": amount,
        "notes": rwo.description,
    }


def work_order_data(
    rwo: RecurringWorkOrder,
    *,
    work_order_number: str,
    execution_number: int,
    scheduled_date: datetime,
) -> dict[str, Any]:
    return {
        "workOrderNumber": work_order_number,
        "title": execution_title(rwo, execution_number),
        "description": rwo.description,
        "clientName": rwo.client_name,
        "companyName": rwo.company_name,
        "locationName": rwo.location_name,
        "locationAddress": rwo.location_address,
        "category": rwo.category,
        "priority": rwo.priority,
        "scheduledServiceDate": _iso(scheduled_date),
        "recurringWorkOrderNumber": rwo.work_order_number,
        "executionNumber": int(execution_number),
        "assignedToName": rwo.subcontractor_name,
    }


def execution_title(rwo: RecurringWorkOrder, execution_number: int) -> str:
    return f"{rwo.title} - Execution #{int(execution_number)}"


def generated_work_order(
    rwo: RecurringWorkOrder,
    *,
    work_order_number: str,
    execution_number: int,
    scheduled_date: datetime,
    now: datetime,
    execution_id: Optional[str] = None,
) -> dict[str, Any]:
    """Standard work-order record for one execution, linked back to its definition."""
    body: dict[str, Any] = {
        "workOrderNumber": work_order_number,
        "clientId": rwo.client_id,
        "clientName": rwo.client_name,
        "clientEmail": rwo.client_email,
        "locationId": rwo.location_id,
        "locationName": rwo.location_name,
        "locationAddress": rwo.location_address,
        "title": execution_title(rwo, execution_number),
        "description": rwo.description,
        "category": rwo.category,
        "categoryId": rwo.category_id,
        "priority": rwo.priority,
        "estimateBudget": rwo.estimate_budget,
        "scheduledServiceDate": _iso(scheduled_date),
        "recurringWorkOrderId": rwo.id,
        "recurringWorkOrderNumber": rwo.work_order_number,
        "executionNumber": int(execution_number),
        "isFromRecurringWorkOrder": True,
        "createdAt": _iso(now),
        "updatedAt": _iso(now),
    }
    if rwo.company_id:
        body["companyId"] = rwo.company_id
        body["companyName"] = rwo.company_name
    if execution_id:
        body["executionId"] = execution_id

    if rwo.subcontractor_id:
        body.update(
            {
                "status": "assigned",
                "assignedTo": rwo.subcontractor_id,
                "assignedToName": rwo.subcontractor_name,
                "assignedToEmail": rwo.subcontractor_email,
                "assignedAt": _iso(now),
            }
        )
    else:
        body["status"] = "approved"

    body["timeline"] = [
        {
            "type": "created",
            "timestamp": _iso(now),
            "userId": SYSTEM_USER_ID,
            "userName": SYSTEM_USER_NAME,
            "userRole": "system",
            "details": f"Work order created from recurring work order {rwo.work_order_number} (execution #{int(execution_number)})",
        }
    ]
    return {k: v for k, v in body.items() if v is not None}


# -------------------- notification email --------------------

NOTIFICATION_SUBJECT = "Recurring Work Order #{execution_number} - {title}"

NOTIFICATION_HTML = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .button {{ display: inline-block; padding: 12px 24px; background: #2563eb; color: white; text-decoration: none; border-radius: 6px; }}
        .footer {{ margin-top: 30px; color: #6b7280; font-size: 14px; }}
    </style>
</head>
<body>
    <div class="container">
        <h2>{title}</h2>
        <p>Hello {client_name},</p>
        <p>Service #{execution_number} of your recurring work order {work_order_number} has been scheduled for {service_date}.</p>
        <p>{description}</p>
        <p>Invoice <strong>{invoice_number}</strong> for <strong>{amount}</strong> and the work order are attached.</p>
        <p style="margin: 30px 0;">
            <a href="{payment_link}" class="button">Pay Invoice</a>
        </p>
        <p>Or copy and paste this link into your browser:</p>
        <p style="word-break: break-all; color: #6b7280;">{payment_link}</p>
        <div class="footer">
            <p>Thank you for your business.</p>
        </div>
    </div>
</body>
</html>
"""


def notification_subject(rwo: RecurringWorkOrder, execution_number: int) -> str:
    return NOTIFICATION_SUBJECT.format(execution_number=int(execution_number), title=rwo.title)


def notification_html(
    rwo: RecurringWorkOrder,
    *,
    execution_number: int,
    invoice_number: str,
    payment_link: str,
    scheduled_date: datetime,
) -> str:
    return NOTIFICATION_HTML.format(
        title=escape(rwo.title),
        client_name=escape(rwo.client_name or "there"),
        execution_number=int(execution_number),
        work_order_number=escape(rwo.work_order_number),
        service_date=scheduled_date.astimezone(timezone.utc).strftime("%B %d, %Y"),
        description=escape(rwo.description or ""),
        invoice_number=escape(invoice_number),
        amount=f"${_amount(rwo):,.2f}",
        payment_link=escape(payment_link, quote=True),
    )
