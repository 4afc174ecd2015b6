from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from invoicer.clients.backend import BackendClient
from invoicer.schemas.invoice import InvoiceState
from invoicer.schemas.records import InvoiceListResponse, InvoiceRecord, InvoiceSummary
from invoicer.services.exceptions import InvoiceNotFoundError, ServiceError
from invoicer.services.mock_store import (
    InvoiceRepository,
    get_mock_store,
    invoice_row,
    line_item_rows,
)

logger = logging.getLogger(__name__)


class PersistenceService:
    """Stores invoice snapshots on the hosted backend (or the mock store)."""

    def __init__(
        self,
        client: BackendClient,
        *,
        repository: InvoiceRepository | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().invoices

    async def save(self, state: InvoiceState, user_id: str) -> str:
        logger.info("Saving invoice %s for user %s", state.invoice_number, user_id)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._repository:
                raise RuntimeError("Mock invoice repository not configured")
            record = await self._repository.create(state, user_id)
            return str(record["id"])

        try:
            rows = await self._client.insert("invoices", invoice_row(state, user_id))
            if not rows:
                raise ServiceError("Backend did not return the saved invoice")
            invoice_id = str(rows[0]["id"])
            items = line_item_rows(state, invoice_id)
            if items:
                await self._client.insert("line_items", items)
            return invoice_id
        except ServiceError:
            raise
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected error while saving invoice")
            raise ServiceError("Failed to save invoice", cause=exc)

    async def get(self, invoice_id: str) -> InvoiceRecord:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            data = await self._repository.get(invoice_id)
        else:
            rows = await self._client.select(
                "invoices", {"id": f"eq.{invoice_id}", "select": "*,line_items(*)"}
            )
            data = rows[0] if rows else None
        if data is None:
            raise InvoiceNotFoundError(invoice_id)
        return _to_record(data)

    async def list(self, user_id: str) -> InvoiceListResponse:
        logger.info("Listing invoices for user %s", user_id)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            invoices = await self._repository.list(user_id)
        else:
            invoices = await self._client.select(
                "invoices", {"user_id": f"eq.{user_id}", "order": "created_at.desc"}
            )
        items = [
            InvoiceSummary(
                id=str(invoice["id"]),
                invoice_number=str(invoice["invoice_number"]),
                client_name=invoice.get("client_name"),
                total=float(invoice.get("total") or 0.0),
                status=str(invoice["status"]),
                created_at=str(invoice["created_at"]),
            )
            for invoice in invoices
        ]
        return InvoiceListResponse(total=len(items), items=items)

    async def mark_sent(self, invoice_id: str) -> None:
        await self._update(invoice_id, status="sent")

    async def set_crm_deal(self, invoice_id: str, deal_id: str) -> None:
        await self._update(invoice_id, hubspot_deal_id=deal_id)

    async def _update(self, invoice_id: str, **values: Any) -> None:
        logger.debug("Updating invoice %s with %s", invoice_id, values)
        if self._client.use_mock_data:
            updated = await self._repository.update(invoice_id, **values)
            if updated is None:
                raise InvoiceNotFoundError(invoice_id)
            return

        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        rows = await self._client.update("invoices", values, {"id": f"eq.{invoice_id}"})
        if not rows:
            raise InvoiceNotFoundError(invoice_id)


def _to_record(data: Dict[str, Any]) -> InvoiceRecord:
    payload = dict(data)
    payload["id"] = str(payload["id"])
    payload["line_items"] = sorted(
        payload.get("line_items") or [], key=lambda row: row.get("sort_order", 0)
    )
    return InvoiceRecord(**payload)
