from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, Response

from invoicer.dependencies.services import get_invoice_store
from invoicer.services import InvoiceStore
from invoicer.services.exceptions import ServiceError
from invoicer.services.rendering import (
    ensure_exportable,
    render_invoice_html,
    render_invoice_pdf,
)
from invoicer.tools.errors import to_http_error

router = APIRouter()


@router.get("/{session_id}/html", response_class=HTMLResponse)
async def export_html(store: InvoiceStore = Depends(get_invoice_store)) -> HTMLResponse:
    """Preview of the invoice as the client will see it."""
    return HTMLResponse(content=render_invoice_html(store.state))


@router.get("/{session_id}/pdf")
async def export_pdf(store: InvoiceStore = Depends(get_invoice_store)) -> Response:
    state = store.state
    try:
        ensure_exportable(state)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    filename = f"{state.invoice_number or 'invoice'}.pdf"
    return Response(
        content=render_invoice_pdf(state),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
