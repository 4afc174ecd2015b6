from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from invoicer.schemas.invoice import InvoicePatch, LineItem


class ExtractedClientInfo(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None


class ExtractedInvoiceInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invoice_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("invoiceNumber", "invoice_number")
    )
    po_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("poNumber", "po_number")
    )
    date: Optional[str] = None
    due_date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("dueDate", "due_date")
    )


class ExtractedInvoice(BaseModel):
    """Structured data the extraction model returns for one document."""

    model_config = ConfigDict(populate_by_name=True)

    line_items: Optional[List[LineItem]] = Field(
        default=None, validation_alias=AliasChoices("lineItems", "line_items")
    )
    client_info: Optional[ExtractedClientInfo] = Field(
        default=None, validation_alias=AliasChoices("clientInfo", "client_info")
    )
    invoice_info: Optional[ExtractedInvoiceInfo] = Field(
        default=None, validation_alias=AliasChoices("invoiceInfo", "invoice_info")
    )

    def to_patch(self) -> InvoicePatch:
        """Return a patch holding only the values the document provided."""

        values = {}
        if self.line_items is not None:
            values["line_items"] = self.line_items
        if self.client_info is not None:
            for source, target in (
                ("name", "client_name"),
                ("address", "client_address"),
                ("email", "client_email"),
            ):
                value = getattr(self.client_info, source)
                if value:
                    values[target] = value
        if self.invoice_info is not None:
            for source, target in (
                ("invoice_number", "invoice_number"),
                ("po_number", "po_number"),
                ("date", "invoice_date"),
                ("due_date", "due_date"),
            ):
                value = getattr(self.invoice_info, source)
                if value:
                    values[target] = value
        return InvoicePatch(**values)


class ExtractRequest(BaseModel):
    file_name: str
    file_type: str
    file_content: str  # base64
    user_id: Optional[str] = None
