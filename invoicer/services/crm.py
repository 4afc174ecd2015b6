from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from invoicer.clients.hubspot import HubSpotClient
from invoicer.schemas.delivery import CrmAction, CrmSyncResult
from invoicer.schemas.records import InvoiceRecord
from invoicer.services.exceptions import (
    DownstreamServiceError,
    MissingFieldError,
    ServiceError,
)
from invoicer.services.mock_store import CrmRepository, get_mock_store
from invoicer.services.persistence import PersistenceService
from invoicer.utils.numbers import round_currency

logger = logging.getLogger(__name__)

DEFAULT_CLOSE_DAYS = 30


def contact_properties(invoice: InvoiceRecord) -> Dict[str, Any]:
    if not invoice.client_email:
        raise MissingFieldError("client_email")
    name = (invoice.client_name or "").split()
    return {
        "email": invoice.client_email,
        "firstname": name[0] if name else "",
        "lastname": " ".join(name[1:]),
        "company": invoice.client_name or "",
        "address": invoice.client_address or "",
        "lifecyclestage": "customer",
    }


def deal_properties(invoice: InvoiceRecord, *, today: Optional[date] = None) -> Dict[str, Any]:
    close_date = invoice.due_date or (
        (today or date.today()) + timedelta(days=DEFAULT_CLOSE_DAYS)
    ).isoformat()
    total = round_currency(invoice.total)
    return {
        "dealname": f"Invoice {invoice.invoice_number} - {invoice.client_name}",
        "amount": f"{total:.2f}",
        "dealstage": "presentationscheduled",
        "pipeline": "default",
        "closedate": close_date,
        "dealtype": "newbusiness",
        "description": (
            f"Invoice {invoice.invoice_number} for {invoice.client_name}. "
            f"Total amount: {total:.2f}"
        ),
    }


def activity_properties(invoice: InvoiceRecord) -> Dict[str, Any]:
    return {
        "hs_timestamp": datetime.now(timezone.utc).isoformat(),
        "hs_note_body": f"Invoice {invoice.invoice_number} sent to {invoice.client_name}",
    }


class CrmSyncService:
    """Mirrors persisted invoices into HubSpot contacts, deals and notes."""

    def __init__(
        self,
        client: HubSpotClient,
        persistence: PersistenceService,
        *,
        repository: CrmRepository | None = None,
    ) -> None:
        self._client = client
        self._persistence = persistence
        self._repository = repository
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().crm

    async def sync(self, invoice_id: str, action: CrmAction = CrmAction.SYNC_ALL) -> CrmSyncResult:
        logger.info("CRM %s for invoice %s", action.value, invoice_id)
        invoice = await self._persistence.get(invoice_id)
        result = CrmSyncResult(action=action)

        if action is CrmAction.CREATE_CONTACT:
            contact_id, existing = await self.create_contact(invoice)
            return result.model_copy(
                update={"contact_id": contact_id, "contact_existing": existing}
            )
        if action is CrmAction.CREATE_DEAL:
            deal_id = await self.create_deal(invoice)
            return result.model_copy(update={"deal_id": deal_id})
        if action is CrmAction.LOG_ACTIVITY:
            activity_id = await self.log_activity(invoice)
            return result.model_copy(update={"activity_id": activity_id})

        contact_id, existing = await self.create_contact(invoice)
        deal_id = await self.create_deal(invoice, contact_id)
        activity_id = await self.log_activity(invoice, deal_id)
        return result.model_copy(
            update={
                "contact_id": contact_id,
                "contact_existing": existing,
                "deal_id": deal_id,
                "activity_id": activity_id,
            }
        )

    async def create_contact(self, invoice: InvoiceRecord) -> Tuple[str, bool]:
        properties = contact_properties(invoice)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            data = await self._repository.upsert_contact(properties)
            return str(data["id"]), bool(data["existing"])

        try:
            data = await self._client.create_contact(properties)
            return str(data["id"]), False
        except DownstreamServiceError as exc:
            if exc.status_code != 409:
                raise
            logger.info("Contact %s already exists; looking it up", invoice.client_email)
            existing = await self._client.find_contact_by_email(invoice.client_email)
            if existing is None:
                raise ServiceError("Failed to create or find CRM contact", cause=exc)
            return str(existing["id"]), True

    async def create_deal(self, invoice: InvoiceRecord, contact_id: Optional[str] = None) -> str:
        properties = deal_properties(invoice)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            data = await self._repository.create_deal(properties, contact_id)
        else:
            data = await self._client.create_deal(properties, contact_id)
        deal_id = str(data["id"])
        await self._persistence.set_crm_deal(invoice.id, deal_id)
        return deal_id

    async def log_activity(self, invoice: InvoiceRecord, deal_id: Optional[str] = None) -> str:
        properties = activity_properties(invoice)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            data = await self._repository.create_note(properties, deal_id)
        else:
            data = await self._client.create_note(properties, deal_id)
        return str(data["id"])
