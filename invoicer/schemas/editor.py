from typing import Any, Optional

from pydantic import BaseModel

from invoicer.schemas.invoice import InvoiceState, RateSettings


class CreateSessionRequest(BaseModel):
    rates: Optional[RateSettings] = None


class SessionResponse(BaseModel):
    session_id: str
    state: InvoiceState


class LineItemEditRequest(BaseModel):
    field: str
    value: Any = None
