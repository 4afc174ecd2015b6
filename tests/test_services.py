import asyncio
import io
import json
import zipfile
from datetime import date

import httpx
import pytest

from invoicer.clients.backend import BackendClient
from invoicer.clients.hubspot import HubSpotClient
from invoicer.clients.resend import ResendClient
from invoicer.schemas.delivery import CrmAction
from invoicer.schemas.extraction import ExtractedInvoice
from invoicer.schemas.invoice import InvoiceState, LineItem, RateSettings
from invoicer.schemas.records import InvoiceRecord
from invoicer.services.crm import CrmSyncService, deal_properties
from invoicer.services.delivery import DeliveryService, build_email
from invoicer.services.exceptions import (
    DownstreamServiceError,
    InvoiceNotFoundError,
    MissingFieldError,
    UnsupportedDocumentError,
)
from invoicer.services.extraction import (
    ExtractionService,
    MockDocumentExtractor,
    docx_text,
    parse_extraction,
)
from invoicer.services.mock_store import get_mock_store, reset_mock_store
from invoicer.services.persistence import PersistenceService
from invoicer.services.store import InvoiceStore

USER_ID = "user-42"
SENDER = "Invoices <invoices@example.com>"


@pytest.fixture(autouse=True)
def _reset_store() -> None:
    reset_mock_store()
    yield
    reset_mock_store()


class MockLatencyClient:
    """Client stub that records simulate_latency calls."""

    def __init__(self) -> None:
        self.use_mock_data = True
        self.latency_called = False

    async def simulate_latency(self) -> None:
        self.latency_called = True


def _invoice_state(**overrides) -> InvoiceState:
    store = InvoiceStore(
        InvoiceState(
            company_name="Acme Studio",
            client_name="Jane Doe",
            client_email="jane@example.com",
            client_address="1 Main St",
            invoice_number="INV-1001",
            invoice_date="2024-05-01",
            rates=RateSettings(tax_rate_percent=10),
        )
    )
    store.apply_update(
        {
            "line_items": [
                {"description": "Design", "quantity": 2, "unit_price": 150},
                {"description": "Hosting", "quantity": 1, "unit_price": 50},
            ]
        }
    )
    if overrides:
        store.apply_update(overrides)
    return store.state


def _record(**overrides) -> InvoiceRecord:
    values = {
        "id": "INV-00001",
        "user_id": USER_ID,
        "invoice_number": "INV-1001",
        "status": "sent",
        "created_at": "2024-05-01T00:00:00+00:00",
        "client_name": "Jane Doe",
        "client_email": "jane@example.com",
        "total": 385.0,
    }
    values.update(overrides)
    return InvoiceRecord(**values)


def _json(request: httpx.Request):
    return json.loads(request.content) if request.content else None


# --- persistence -----------------------------------------------------------


def test_mock_persistence_round_trip() -> None:
    client = MockLatencyClient()
    service = PersistenceService(client)

    invoice_id = asyncio.run(service.save(_invoice_state(), USER_ID))
    record = asyncio.run(service.get(invoice_id))
    listing = asyncio.run(service.list(USER_ID))

    assert client.latency_called is True
    assert invoice_id == "INV-00001"
    assert record.status == "draft"
    assert record.total == pytest.approx(385)
    assert record.tax_amount == pytest.approx(35)
    assert [item.description for item in record.line_items] == ["Design", "Hosting"]
    assert [item.sort_order for item in record.line_items] == [0, 1]
    assert listing.total == 1
    assert listing.items[0].client_name == "Jane Doe"
    assert asyncio.run(service.list("someone-else")).total == 0


def test_mock_persistence_unknown_invoice() -> None:
    service = PersistenceService(MockLatencyClient())

    with pytest.raises(InvoiceNotFoundError):
        asyncio.run(service.get("INV-99999"))
    with pytest.raises(InvoiceNotFoundError):
        asyncio.run(service.mark_sent("INV-99999"))


def test_remote_persistence_writes_invoice_and_items() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/rest/v1/invoices":
            return httpx.Response(201, json=[{"id": "a1b2"}])
        return httpx.Response(201, json=_json(request))

    async def run() -> str:
        client = BackendClient(
            "https://db.example.com",
            api_key="anon-key",
            use_mock_data=False,
            transport=httpx.MockTransport(handler),
        )
        try:
            return await PersistenceService(client).save(_invoice_state(), USER_ID)
        finally:
            await client.close()

    invoice_id = asyncio.run(run())

    assert invoice_id == "a1b2"
    invoice_request, items_request = requests
    assert invoice_request.headers["apikey"] == "anon-key"
    assert invoice_request.headers["authorization"] == "Bearer anon-key"
    assert invoice_request.headers["prefer"] == "return=representation"
    row = _json(invoice_request)
    assert row["user_id"] == USER_ID
    assert row["status"] == "draft"
    assert row["total"] == pytest.approx(385)
    assert row["due_date"] is None
    items = _json(items_request)
    assert [item["invoice_id"] for item in items] == ["a1b2", "a1b2"]
    assert [item["rate"] for item in items] == [150, 50]
    assert [item["sort_order"] for item in items] == [0, 1]


def test_remote_persistence_maps_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom"})

    async def run() -> None:
        client = BackendClient(
            "https://db.example.com",
            api_key="anon-key",
            use_mock_data=False,
            transport=httpx.MockTransport(handler),
        )
        try:
            await PersistenceService(client).list(USER_ID)
        finally:
            await client.close()

    with pytest.raises(DownstreamServiceError) as excinfo:
        asyncio.run(run())
    assert excinfo.value.status_code == 500


def test_backend_without_url_stays_in_mock_mode() -> None:
    client = BackendClient(None, use_mock_data=False)
    assert client.use_mock_data is True


# --- delivery --------------------------------------------------------------


def test_mock_delivery_sends_and_marks_invoice_sent() -> None:
    client = MockLatencyClient()
    persistence = PersistenceService(client)
    delivery = DeliveryService(client, persistence, sender=SENDER)
    state = _invoice_state()

    async def run():
        invoice_id = await persistence.save(state, USER_ID)
        receipt = await delivery.send(state, invoice_id=invoice_id, sender_name="Sam")
        return receipt, await persistence.get(invoice_id)

    receipt, record = asyncio.run(run())

    assert receipt.email_id == "EML-00001"
    assert receipt.recipient == "jane@example.com"
    assert receipt.subject == "Invoice INV-1001 from Acme Studio"
    assert record.status == "sent"
    messages = asyncio.run(get_mock_store().outbox.list())
    assert len(messages) == 1
    assert messages[0]["to"] == ["jane@example.com"]
    assert messages[0]["from"] == "Sam <invoices@example.com>"
    assert "Sam" in messages[0]["html"]
    assert "reply_to" not in messages[0]
    assert "contact us at" not in messages[0]["html"]


def test_delivery_requires_client_email() -> None:
    client = MockLatencyClient()
    delivery = DeliveryService(client, PersistenceService(client), sender=SENDER)

    with pytest.raises(MissingFieldError) as excinfo:
        asyncio.run(delivery.send(_invoice_state(client_email=""), invoice_id="INV-00001"))

    assert excinfo.value.field == "client_email"
    assert asyncio.run(get_mock_store().outbox.list()) == []


def test_build_email_escapes_client_values() -> None:
    state = _invoice_state(client_name="<b>Jane</b>")

    content = build_email(state, sender_name="Sam", pdf_url="https://files.example.com/a.pdf")

    assert "&lt;b&gt;Jane&lt;/b&gt;" in content["html"]
    assert "<b>Jane</b>" not in content["html"]
    assert "Download Invoice PDF" in content["html"]


def test_remote_delivery_posts_to_email_api() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "em_123"})

    async def run():
        client = ResendClient("re_key", use_mock_data=False, transport=httpx.MockTransport(handler))
        persistence = PersistenceService(MockLatencyClient())
        invoice_id = await persistence.save(_invoice_state(), USER_ID)
        try:
            return await DeliveryService(client, persistence, sender=SENDER).send(
                _invoice_state(), invoice_id=invoice_id, reply_to="owner@example.com"
            )
        finally:
            await client.close()

    receipt = asyncio.run(run())

    assert receipt.email_id == "em_123"
    (request,) = requests
    assert request.url.path == "/emails"
    assert request.headers["authorization"] == "Bearer re_key"
    body = _json(request)
    assert body["to"] == ["jane@example.com"]
    assert body["reply_to"] == "owner@example.com"
    assert body["from"] == "Invoice Team <invoices@example.com>"
    assert "contact us at owner@example.com" in body["html"]


# --- CRM -------------------------------------------------------------------


def test_mock_crm_sync_all_links_records() -> None:
    client = MockLatencyClient()
    persistence = PersistenceService(client)
    crm = CrmSyncService(client, persistence)

    async def run():
        invoice_id = await persistence.save(_invoice_state(), USER_ID)
        first = await crm.sync(invoice_id)
        second = await crm.sync(invoice_id, CrmAction.CREATE_CONTACT)
        return first, second, await persistence.get(invoice_id)

    first, second, record = asyncio.run(run())

    assert first.contact_existing is False
    assert first.deal_id == "1"
    assert first.activity_id == "1"
    assert second.contact_id == first.contact_id
    assert second.contact_existing is True
    assert record.hubspot_deal_id == "1"
    crm_store = get_mock_store().crm
    assert crm_store.deals["1"]["contact_id"] == first.contact_id
    assert crm_store.deals["1"]["amount"] == "385.00"
    assert crm_store.notes["1"]["deal_id"] == "1"


def test_crm_sync_unknown_invoice() -> None:
    client = MockLatencyClient()
    crm = CrmSyncService(client, PersistenceService(client))

    with pytest.raises(InvoiceNotFoundError):
        asyncio.run(crm.sync("INV-404"))


def test_crm_contact_requires_email() -> None:
    client = MockLatencyClient()
    crm = CrmSyncService(client, PersistenceService(client))

    with pytest.raises(MissingFieldError):
        asyncio.run(crm.create_contact(_record(client_email=None)))


def test_deal_close_date_defaults_to_thirty_days() -> None:
    properties = deal_properties(_record(), today=date(2024, 1, 10))

    assert properties["closedate"] == "2024-02-09"
    assert properties["dealname"] == "Invoice INV-1001 - Jane Doe"


def test_remote_crm_falls_back_to_existing_contact() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/crm/v3/objects/contacts":
            return httpx.Response(409, json={"message": "Contact already exists"})
        if request.url.path == "/crm/v3/objects/contacts/search":
            return httpx.Response(200, json={"results": [{"id": "77"}]})
        return httpx.Response(404)

    async def run():
        client = HubSpotClient("pat-token", use_mock_data=False, transport=httpx.MockTransport(handler))
        try:
            crm = CrmSyncService(client, PersistenceService(MockLatencyClient()))
            return await crm.create_contact(_record())
        finally:
            await client.close()

    assert asyncio.run(run()) == ("77", True)


def test_remote_crm_deal_is_associated_with_contact() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"id": "deal-9"})

    async def run():
        client = HubSpotClient("pat-token", use_mock_data=False, transport=httpx.MockTransport(handler))
        persistence = PersistenceService(MockLatencyClient())
        invoice_id = await persistence.save(_invoice_state(), USER_ID)
        try:
            crm = CrmSyncService(client, persistence)
            record = await persistence.get(invoice_id)
            deal_id = await crm.create_deal(record, "contact-5")
            return deal_id, await persistence.get(invoice_id)
        finally:
            await client.close()

    deal_id, record = asyncio.run(run())

    assert deal_id == "deal-9"
    assert record.hubspot_deal_id == "deal-9"
    association = _json(requests[0])["associations"][0]
    assert association["to"] == {"id": "contact-5"}
    assert association["types"][0]["associationTypeId"] == 3


# --- extraction ------------------------------------------------------------


def test_mock_extraction_returns_line_items() -> None:
    service = ExtractionService(MockLatencyClient(), MockDocumentExtractor())

    patch = asyncio.run(service.extract("bill.txt", "text/plain", b"hello", user_id=USER_ID))

    assert patch.model_fields_set == {"line_items"}
    assert [item.description for item in patch.line_items] == [
        "Service from bill.txt",
        "Consultation",
    ]
    assert [item.amount for item in patch.line_items] == [100, 150]
    (upload,) = asyncio.run(get_mock_store().uploads.list())
    assert upload["status"] == "completed"
    assert upload["file_size"] == 5
    assert upload["filename"] == "bill.txt"


def test_remote_extraction_records_upload_row() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(201, json=[{"id": "up-1"}])
        return httpx.Response(200, json=[{"id": "up-1"}])

    async def run():
        client = BackendClient(
            "https://db.example.com",
            api_key="anon-key",
            use_mock_data=False,
            transport=httpx.MockTransport(handler),
        )
        try:
            service = ExtractionService(client, MockDocumentExtractor())
            return await service.extract("bill.txt", "text/plain", b"hello", user_id=USER_ID)
        finally:
            await client.close()

    patch = asyncio.run(run())

    assert len(patch.line_items) == 2
    insert, finish = requests
    assert insert.url.path == "/rest/v1/uploaded_files"
    assert _json(insert) == {
        "filename": "bill.txt",
        "file_type": "text/plain",
        "file_size": 5,
        "user_id": USER_ID,
        "status": "processing",
    }
    assert finish.method == "PATCH"
    assert finish.url.params["id"] == "eq.up-1"
    assert _json(finish)["status"] == "completed"


def test_extraction_rejects_unsupported_type() -> None:
    service = ExtractionService(MockLatencyClient(), MockDocumentExtractor())

    with pytest.raises(UnsupportedDocumentError):
        asyncio.run(service.extract("sheet.xlsx", "application/vnd.ms-excel", b"data"))
    assert asyncio.run(get_mock_store().uploads.list()) == []


def test_extraction_rejects_empty_and_oversized_files() -> None:
    service = ExtractionService(MockLatencyClient(), MockDocumentExtractor(), max_upload_bytes=4)

    with pytest.raises(UnsupportedDocumentError):
        asyncio.run(service.extract("a.txt", "text/plain", b""))
    with pytest.raises(UnsupportedDocumentError):
        asyncio.run(service.extract("a.txt", "text/plain", b"too large"))


def test_failed_extraction_marks_upload_failed() -> None:
    class BrokenExtractor:
        async def extract(self, document):
            raise DownstreamServiceError("model unavailable", 503)

    service = ExtractionService(MockLatencyClient(), BrokenExtractor())

    with pytest.raises(DownstreamServiceError):
        asyncio.run(service.extract("scan.png", "image/png", b"\x89PNG"))
    (upload,) = asyncio.run(get_mock_store().uploads.list())
    assert upload["status"] == "failed"


def test_parse_extraction_handles_fences_and_prose() -> None:
    fenced = '```json\n{"lineItems": [{"description": "Widget", "quantity": "3", "rate": "$4"}]}\n```'
    chatty = 'Here you go: {"clientInfo": {"name": "Acme", "email": "ap@acme.test"}} Thanks!'

    items = parse_extraction(fenced).line_items
    client = parse_extraction(chatty).client_info

    assert items[0].description == "Widget"
    assert items[0].quantity == 3
    assert items[0].unit_price == 0
    assert client.name == "Acme"
    assert client.email == "ap@acme.test"


@pytest.mark.parametrize("answer", ["", "not json at all", "[1, 2, 3]", '{"lineItems": "nope"}'])
def test_unusable_extraction_yields_empty_patch(answer: str) -> None:
    patch = parse_extraction(answer).to_patch()
    assert patch.model_fields_set == set()


def test_extracted_fields_map_onto_invoice() -> None:
    extracted = ExtractedInvoice.model_validate(
        {
            "clientInfo": {"name": "Acme", "address": "", "email": "ap@acme.test"},
            "invoiceInfo": {"invoiceNumber": "A-17", "poNumber": "PO-3", "date": "2024-02-01", "dueDate": "2024-03-01"},
        }
    )

    patch = extracted.to_patch()

    assert patch.model_fields_set == {
        "client_name",
        "client_email",
        "invoice_number",
        "po_number",
        "invoice_date",
        "due_date",
    }
    assert patch.invoice_date == "2024-02-01"
    store = InvoiceStore()
    store.apply_update({"client_address": "kept", "line_items": [LineItem(quantity=1, unit_price=9)]})
    state = store.merge_extracted_data(patch)
    assert state.client_address == "kept"
    assert state.client_name == "Acme"
    assert state.totals.subtotal == 9


def test_docx_text_reads_paragraphs() -> None:
    document = (
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        "<w:body>"
        "<w:p><w:r><w:t>Website build</w:t></w:r><w:r><w:t> x 2</w:t></w:r></w:p>"
        "<w:p></w:p>"
        "<w:p><w:r><w:t>Hosting</w:t></w:r></w:p>"
        "</w:body></w:document>"
    )
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("word/document.xml", document)

    assert docx_text(buffer.getvalue()) == "Website build x 2\nHosting"
    with pytest.raises(UnsupportedDocumentError):
        docx_text(b"not a zip file")
