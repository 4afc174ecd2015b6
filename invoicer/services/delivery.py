from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import Any, Dict, Optional

from invoicer.clients.resend import ResendClient
from invoicer.schemas.delivery import DeliveryReceipt
from invoicer.schemas.invoice import InvoiceState
from invoicer.services.exceptions import MissingFieldError, ServiceError
from invoicer.services.mock_store import OutboxRepository, get_mock_store
from invoicer.services.persistence import PersistenceService

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Invoice Team"


def ensure_deliverable(state: InvoiceState) -> None:
    """Check the fields an invoice email cannot go out without."""

    if not state.client_email.strip():
        raise MissingFieldError("client_email", "Please enter the client's email address")
    if not state.client_name.strip():
        raise MissingFieldError("client_name")
    if not state.invoice_number.strip():
        raise MissingFieldError("invoice_number")


def build_email(
    state: InvoiceState,
    *,
    sender_name: str,
    custom_message: Optional[str] = None,
    pdf_url: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> Dict[str, str]:
    company = state.company_name or "Your Company"
    number = html.escape(state.invoice_number)
    message = custom_message or (
        f"Please find attached your invoice {state.invoice_number}. "
        "We appreciate your business and look forward to working with you."
    )
    link = ""
    if pdf_url:
        link = f'<p><a href="{html.escape(pdf_url)}">Download Invoice PDF</a></p>'
    footer = ""
    if reply_to:
        footer = (
            '<p style="color: #666; font-size: 12px;">'
            f"This email was sent from {html.escape(company)}. If you have any questions, "
            f"please reply to this email or contact us at {html.escape(reply_to)}.</p>"
        )

    body = f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #333;">Invoice {number}</h2>
        <p>Dear {html.escape(state.client_name)},</p>
        <p>{html.escape(message)}</p>
        {link}
        <p>If you have any questions about this invoice, please don't hesitate to contact us.</p>
        <p>Best regards,<br>{html.escape(sender_name)}<br>{html.escape(company)}</p>
        {footer}
      </div>
    """
    return {"subject": f"Invoice {state.invoice_number} from {company}", "html": body}


class DeliveryService:
    """Emails invoices to clients through the transactional email API."""

    def __init__(
        self,
        client: ResendClient,
        persistence: PersistenceService,
        *,
        sender: str,
        outbox: OutboxRepository | None = None,
    ) -> None:
        self._client = client
        self._persistence = persistence
        self._sender = sender
        self._outbox = outbox
        if self._client.use_mock_data:
            self._outbox = outbox or get_mock_store().outbox

    async def send(
        self,
        state: InvoiceState,
        *,
        invoice_id: str,
        sender_name: Optional[str] = None,
        custom_message: Optional[str] = None,
        pdf_url: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> DeliveryReceipt:
        ensure_deliverable(state)
        name = sender_name or DEFAULT_SENDER_NAME
        content = build_email(
            state,
            sender_name=name,
            custom_message=custom_message,
            pdf_url=pdf_url,
            reply_to=reply_to,
        )
        _, address = parseaddr(self._sender)
        message: Dict[str, Any] = {
            "from": f"{name} <{address}>" if address else self._sender,
            "to": [state.client_email],
            "subject": content["subject"],
            "html": content["html"],
        }
        if reply_to:
            message["reply_to"] = reply_to

        logger.info("Emailing invoice %s to %s", state.invoice_number, state.client_email)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._outbox:
                raise RuntimeError("Mock outbox not configured")
            result = await self._outbox.send(message)
        else:
            try:
                result = await self._client.send_email(message)
            except ServiceError:
                raise
            except Exception as exc:  # pragma: no cover
                logger.exception("Unexpected error while sending invoice email")
                raise ServiceError("Failed to send email", cause=exc)

        try:
            await self._persistence.mark_sent(invoice_id)
        except ServiceError:
            logger.exception("Could not mark invoice %s as sent", invoice_id)

        return DeliveryReceipt(
            invoice_id=invoice_id,
            email_id=result.get("id"),
            recipient=state.client_email,
            subject=content["subject"],
            sent_at=datetime.now(timezone.utc).isoformat(),
        )
