import base64
import binascii
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from invoicer.config import Settings, get_settings
from invoicer.dependencies.services import (
    get_extraction_service,
    get_invoice_store,
    get_sessions,
)
from invoicer.schemas.editor import CreateSessionRequest, LineItemEditRequest, SessionResponse
from invoicer.schemas.extraction import ExtractRequest
from invoicer.schemas.invoice import InvoiceState, RateSettings
from invoicer.services import ExtractionService, InvoiceStore
from invoicer.services.exceptions import ServiceError
from invoicer.services.sessions import EditorSessionRegistry
from invoicer.tools.errors import to_http_error

router = APIRouter()


@router.post("", response_model=SessionResponse)
async def open_session(
    req: CreateSessionRequest | None = None,
    sessions: EditorSessionRegistry = Depends(get_sessions),
    settings: Settings = Depends(get_settings),
):
    rates = req.rates if req and req.rates else None
    if rates is None:
        rates = RateSettings(tax_rate_percent=settings.default_tax_rate_percent)
    session_id, store = sessions.create(rates)
    return SessionResponse(session_id=session_id, state=store.state)


@router.get("/{session_id}", response_model=InvoiceState)
async def get_state(store: InvoiceStore = Depends(get_invoice_store)):
    return store.state


@router.delete("/{session_id}")
async def close_session(
    session_id: str,
    sessions: EditorSessionRegistry = Depends(get_sessions),
) -> Dict[str, str]:
    if not sessions.close(session_id):
        raise HTTPException(status_code=404, detail=f"Editor session {session_id} not found")
    return {"status": "closed", "session_id": session_id}


@router.patch("/{session_id}", response_model=InvoiceState)
async def apply_update(
    patch: Dict[str, Any] = Body(...),
    store: InvoiceStore = Depends(get_invoice_store),
):
    try:
        return store.apply_update(patch)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc


@router.post("/{session_id}/line-items", response_model=InvoiceState)
async def add_line_item(store: InvoiceStore = Depends(get_invoice_store)):
    return store.add_line_item()


@router.patch("/{session_id}/line-items/{item_id}", response_model=InvoiceState)
async def edit_line_item(
    item_id: str,
    req: LineItemEditRequest,
    store: InvoiceStore = Depends(get_invoice_store),
):
    return store.update_line_item(item_id, req.field, req.value)


@router.delete("/{session_id}/line-items/{item_id}", response_model=InvoiceState)
async def remove_line_item(
    item_id: str,
    store: InvoiceStore = Depends(get_invoice_store),
):
    return store.remove_line_item(item_id)


@router.post("/{session_id}/extract", response_model=InvoiceState)
async def extract_document(
    req: ExtractRequest,
    store: InvoiceStore = Depends(get_invoice_store),
    service: ExtractionService = Depends(get_extraction_service),
):
    try:
        content = base64.b64decode(req.file_content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=422, detail="file_content must be base64 encoded") from exc

    try:
        patch = await service.extract(
            req.file_name, req.file_type, content, user_id=req.user_id
        )
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return store.merge_extracted_data(patch)
