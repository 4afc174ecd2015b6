from enum import Enum
from typing import Optional

from pydantic import BaseModel


class DeliveryReceipt(BaseModel):
    invoice_id: str
    email_id: Optional[str] = None
    recipient: str
    subject: str
    sent_at: str


class EmailInvoiceRequest(BaseModel):
    user_id: str
    sender_name: Optional[str] = None
    custom_message: Optional[str] = None
    pdf_url: Optional[str] = None
    reply_to: Optional[str] = None


class EmailInvoiceResponse(BaseModel):
    invoice_id: str
    email_id: Optional[str] = None
    crm_synced: bool = False
    message: str


class CrmAction(str, Enum):
    CREATE_CONTACT = "create_contact"
    CREATE_DEAL = "create_deal"
    LOG_ACTIVITY = "log_activity"
    SYNC_ALL = "sync_all"


class CrmSyncRequest(BaseModel):
    action: CrmAction = CrmAction.SYNC_ALL


class CrmSyncResult(BaseModel):
    action: CrmAction
    contact_id: Optional[str] = None
    contact_existing: Optional[bool] = None
    deal_id: Optional[str] = None
    activity_id: Optional[str] = None
