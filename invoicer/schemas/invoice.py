from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)

from invoicer.utils.numbers import coerce_number, finite_or_zero

_TEXT_FIELDS = (
    "company_name",
    "company_address",
    "client_name",
    "client_address",
    "client_email",
    "invoice_number",
    "po_number",
    "invoice_date",
    "due_date",
    "notes",
)


def new_line_item_id() -> str:
    return uuid4().hex


class LineItem(BaseModel):
    """One billable row. ``amount`` is always ``quantity * unit_price``
    (zero when that product overflows)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=new_line_item_id)
    description: str = Field(
        default="", validation_alias=AliasChoices("description", "name")
    )
    quantity: float = 1.0
    unit_price: float = Field(
        default=0.0,
        validation_alias=AliasChoices("unit_price", "unitPrice", "rate", "price"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _ensure_id(cls, value: Any) -> str:
        if value is None or value == "":
            return new_line_item_id()
        return str(value)

    @field_validator("description", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("quantity", "unit_price", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float:
        return coerce_number(value)

    @computed_field  # type: ignore[misc]
    @property
    def amount(self) -> float:
        return finite_or_zero(self.quantity * self.unit_price)


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class RateSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    tax_rate_percent: float = 0.0
    other_tax_amount: float = 0.0
    shipping_amount: float = 0.0
    discount_value: float = 0.0
    discount_type: DiscountType = DiscountType.PERCENTAGE
    # presentation only
    show_subtotal: bool = True
    show_tax: bool = True
    show_other_tax: bool = False
    show_shipping: bool = False
    show_discount: bool = False

    @field_validator(
        "tax_rate_percent",
        "other_tax_amount",
        "shipping_amount",
        "discount_value",
        mode="before",
    )
    @classmethod
    def _number(cls, value: Any) -> float:
        return coerce_number(value)

    @field_validator("discount_type", mode="before")
    @classmethod
    def _discount_type(cls, value: Any) -> DiscountType:
        if isinstance(value, DiscountType):
            return value
        try:
            return DiscountType(str(value).strip().lower())
        except ValueError:
            return DiscountType.PERCENTAGE


class InvoiceTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: float = 0.0
    sales_tax: float = 0.0
    other_tax: float = 0.0
    shipping: float = 0.0
    discount_amount: float = 0.0
    total: float = 0.0


class StyleSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    template: str = "classic"
    accent_color: str = "#3b82f6"
    currency_symbol: str = "$"
    currency_code: str = "USD"


class BankDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_name: Optional[str] = None
    account_number: Optional[str] = None
    bank_name: Optional[str] = None
    routing_number: Optional[str] = None
    swift_code: Optional[str] = None
    iban: Optional[str] = None


class InvoiceState(BaseModel):
    """Complete invoice document as held by the editor."""

    model_config = ConfigDict(frozen=True)

    company_name: str = ""
    company_address: str = ""
    company_logo: Optional[str] = None
    client_name: str = ""
    client_address: str = ""
    client_email: str = ""
    invoice_number: str = ""
    po_number: str = ""
    invoice_date: str = ""
    due_date: str = ""
    line_items: List[LineItem] = Field(default_factory=list)
    rates: RateSettings = Field(default_factory=RateSettings)
    totals: InvoiceTotals = Field(default_factory=InvoiceTotals)
    style: StyleSettings = Field(default_factory=StyleSettings)
    notes: str = ""
    bank: BankDetails = Field(default_factory=BankDetails)

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)


class InvoicePatch(BaseModel):
    """Partial update of an :class:`InvoiceState`.

    Only fields explicitly present are applied. ``totals`` is derived and
    therefore not part of a patch; unknown keys are ignored.
    """

    company_name: Optional[str] = None
    company_address: Optional[str] = None
    company_logo: Optional[str] = None
    client_name: Optional[str] = None
    client_address: Optional[str] = None
    client_email: Optional[str] = None
    invoice_number: Optional[str] = None
    po_number: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    line_items: Optional[List[LineItem]] = None
    rates: Optional[RateSettings] = None
    style: Optional[StyleSettings] = None
    notes: Optional[str] = None
    bank: Optional[BankDetails] = None

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)
