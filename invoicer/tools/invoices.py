import logging

from fastapi import APIRouter, Depends

from invoicer.dependencies.services import (
    get_crm_service,
    get_delivery_service,
    get_invoice_store,
    get_persistence_service,
)
from invoicer.schemas.delivery import (
    CrmAction,
    CrmSyncRequest,
    CrmSyncResult,
    EmailInvoiceRequest,
    EmailInvoiceResponse,
)
from invoicer.schemas.records import (
    InvoiceListResponse,
    InvoiceRecord,
    SaveInvoiceRequest,
    SaveInvoiceResponse,
)
from invoicer.services import CrmSyncService, DeliveryService, InvoiceStore, PersistenceService
from invoicer.services.delivery import ensure_deliverable
from invoicer.services.exceptions import ServiceError
from invoicer.tools.errors import to_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    user_id: str,
    service: PersistenceService = Depends(get_persistence_service),
):
    try:
        return await service.list(user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/{invoice_id}", response_model=InvoiceRecord)
async def get_invoice(
    invoice_id: str,
    service: PersistenceService = Depends(get_persistence_service),
):
    try:
        return await service.get(invoice_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/sessions/{session_id}/save", response_model=SaveInvoiceResponse)
async def save_invoice(
    req: SaveInvoiceRequest,
    store: InvoiceStore = Depends(get_invoice_store),
    service: PersistenceService = Depends(get_persistence_service),
):
    try:
        invoice_id = await service.save(store.state, req.user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return SaveInvoiceResponse(invoice_id=invoice_id)


@router.post("/sessions/{session_id}/email", response_model=EmailInvoiceResponse)
async def email_invoice(
    req: EmailInvoiceRequest,
    store: InvoiceStore = Depends(get_invoice_store),
    persistence: PersistenceService = Depends(get_persistence_service),
    delivery: DeliveryService = Depends(get_delivery_service),
    crm: CrmSyncService = Depends(get_crm_service),
):
    state = store.state
    try:
        ensure_deliverable(state)
        invoice_id = await persistence.save(state, req.user_id)
        receipt = await delivery.send(
            state,
            invoice_id=invoice_id,
            sender_name=req.sender_name,
            custom_message=req.custom_message,
            pdf_url=req.pdf_url,
            reply_to=req.reply_to,
        )
    except ServiceError as exc:
        raise to_http_error(exc) from exc

    try:
        await crm.sync(invoice_id, CrmAction.SYNC_ALL)
    except ServiceError:
        logger.exception("CRM sync failed for invoice %s", invoice_id)
        return EmailInvoiceResponse(
            invoice_id=invoice_id,
            email_id=receipt.email_id,
            crm_synced=False,
            message="Invoice emailed successfully (CRM sync failed)",
        )
    return EmailInvoiceResponse(
        invoice_id=invoice_id,
        email_id=receipt.email_id,
        crm_synced=True,
        message="Invoice has been emailed and synced to the CRM",
    )


@router.post("/{invoice_id}/crm-sync", response_model=CrmSyncResult)
async def sync_invoice(
    invoice_id: str,
    req: CrmSyncRequest,
    service: CrmSyncService = Depends(get_crm_service),
):
    try:
        return await service.sync(invoice_id, req.action)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
