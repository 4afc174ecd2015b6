from fastapi import HTTPException

from invoicer.services.exceptions import (
    InvoiceNotFoundError,
    MissingFieldError,
    ServiceError,
    UnsupportedDocumentError,
)


def to_http_error(exc: ServiceError) -> HTTPException:
    """Map a service failure to the status code the editor shows to the user."""

    if isinstance(exc, (MissingFieldError, UnsupportedDocumentError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, InvoiceNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))
