class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DownstreamServiceError(ServiceError):
    """Raised when an external service returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class MissingFieldError(ServiceError):
    """Raised when a field a collaborator needs has not been filled in."""

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"Missing required field: {field}")
        self.field = field


class UnsupportedDocumentError(ServiceError):
    """Raised when an upload cannot be handed to document extraction."""


class InvoiceNotFoundError(ServiceError):
    """Raised when a stored invoice does not exist."""

    def __init__(self, invoice_id: str):
        super().__init__(f"Invoice {invoice_id} not found")
        self.invoice_id = invoice_id
