from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from invoicer.schemas.invoice import InvoiceState


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _BaseRepository:
    def __init__(self, prefix: str) -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def _next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter):05d}"


def invoice_row(state: InvoiceState, user_id: str) -> Dict[str, Any]:
    """Flatten an invoice state into the ``invoices`` table layout."""

    return {
        "user_id": user_id,
        "invoice_number": state.invoice_number,
        "company_name": state.company_name,
        "company_address": state.company_address,
        "company_logo_url": state.company_logo,
        "client_name": state.client_name,
        "client_email": state.client_email,
        "client_address": state.client_address,
        "po_number": state.po_number,
        "issue_date": state.invoice_date,
        "due_date": state.due_date or None,
        "subtotal": state.totals.subtotal,
        "tax_rate": state.rates.tax_rate_percent,
        "tax_amount": state.totals.sales_tax,
        "discount_amount": state.totals.discount_amount,
        "shipping": state.totals.shipping,
        "total": state.totals.total,
        "notes": state.notes,
        "status": "draft",
    }


def line_item_rows(state: InvoiceState, invoice_id: str) -> List[Dict[str, Any]]:
    return [
        {
            "invoice_id": invoice_id,
            "description": item.description,
            "quantity": item.quantity,
            "rate": item.unit_price,
            "amount": item.amount,
            "sort_order": index,
        }
        for index, item in enumerate(state.line_items)
    ]


class InvoiceRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("INV")
        self._invoices: Dict[str, Dict[str, Any]] = {}

    async def create(self, state: InvoiceState, user_id: str) -> Dict[str, Any]:
        invoice_id = self._next_id()
        record = invoice_row(state, user_id)
        record.update(
            {
                "id": invoice_id,
                "created_at": _utc_now_iso(),
                "updated_at": None,
                "hubspot_deal_id": None,
                "line_items": line_item_rows(state, invoice_id),
            }
        )
        self._invoices[invoice_id] = record
        return dict(record)

    async def list(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if user_id is None:
            return [dict(invoice) for invoice in self._invoices.values()]
        return [
            dict(invoice)
            for invoice in self._invoices.values()
            if invoice["user_id"] == user_id
        ]

    async def get(self, invoice_id: str) -> Optional[Dict[str, Any]]:
        invoice = self._invoices.get(invoice_id)
        return dict(invoice) if invoice is not None else None

    async def update(self, invoice_id: str, **values: Any) -> Optional[Dict[str, Any]]:
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            return None
        invoice.update(values)
        invoice["updated_at"] = _utc_now_iso()
        return dict(invoice)


class UploadRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("FILE")
        self._uploads: Dict[str, Dict[str, Any]] = {}

    async def create(
        self, *, filename: str, file_type: str, file_size: int, user_id: Optional[str]
    ) -> Dict[str, Any]:
        upload_id = self._next_id()
        record = {
            "id": upload_id,
            "user_id": user_id,
            "filename": filename,
            "file_type": file_type,
            "file_size": file_size,
            "status": "processing",
            "created_at": _utc_now_iso(),
            "extracted_data": None,
        }
        self._uploads[upload_id] = record
        return dict(record)

    async def finish(
        self, upload_id: str, *, status: str, extracted_data: Optional[dict] = None
    ) -> None:
        record = self._uploads.get(upload_id)
        if record is None:
            return
        record["status"] = status
        record["extracted_data"] = extracted_data

    async def list(self) -> List[Dict[str, Any]]:
        return [dict(record) for record in self._uploads.values()]


class OutboxRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("EML")
        self._messages: Dict[str, Dict[str, Any]] = {}

    async def send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        email_id = self._next_id()
        record = dict(message, id=email_id, sent_at=_utc_now_iso())
        self._messages[email_id] = record
        return {"id": email_id}

    async def list(self) -> List[Dict[str, Any]]:
        return [dict(message) for message in self._messages.values()]


class CrmRepository:
    def __init__(self) -> None:
        self._contact_ids = itertools.count(1)
        self._deal_ids = itertools.count(1)
        self._note_ids = itertools.count(1)
        self.contacts: Dict[str, Dict[str, Any]] = {}
        self.deals: Dict[str, Dict[str, Any]] = {}
        self.notes: Dict[str, Dict[str, Any]] = {}

    async def upsert_contact(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        email = str(properties.get("email", "")).lower()
        for contact_id, contact in self.contacts.items():
            if str(contact.get("email", "")).lower() == email:
                return {"id": contact_id, "existing": True}
        contact_id = str(next(self._contact_ids))
        self.contacts[contact_id] = dict(properties)
        return {"id": contact_id, "existing": False}

    async def create_deal(
        self, properties: Dict[str, Any], contact_id: Optional[str] = None
    ) -> Dict[str, Any]:
        deal_id = str(next(self._deal_ids))
        self.deals[deal_id] = dict(properties, contact_id=contact_id)
        return {"id": deal_id}

    async def create_note(
        self, properties: Dict[str, Any], deal_id: Optional[str] = None
    ) -> Dict[str, Any]:
        note_id = str(next(self._note_ids))
        self.notes[note_id] = dict(properties, deal_id=deal_id)
        return {"id": note_id}


@dataclass
class MockDataStore:
    invoices: InvoiceRepository
    uploads: UploadRepository
    outbox: OutboxRepository
    crm: CrmRepository


_mock_store: Optional[MockDataStore] = None


def get_mock_store() -> MockDataStore:
    global _mock_store
    if _mock_store is None:
        _mock_store = MockDataStore(
            invoices=InvoiceRepository(),
            uploads=UploadRepository(),
            outbox=OutboxRepository(),
            crm=CrmRepository(),
        )
    return _mock_store


def reset_mock_store() -> None:
    global _mock_store
    _mock_store = None
