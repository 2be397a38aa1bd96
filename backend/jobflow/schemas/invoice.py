"""Pydantic schemas for invoices, line items and payments.

Money travels as float on the wire; the service converts to Decimal
before any arithmetic and the rollup rounds every derived value.
"""

from datetime import date, datetime

from pydantic import BaseModel, field_validator

from jobflow.models.invoice import InvoiceItemType, InvoiceStatus, PaymentMethod


class InvoiceItemIn(BaseModel):
    description: str
    quantity: float
    unit_price: float
    item_type: InvoiceItemType = InvoiceItemType.OTHER
    product_id: str | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v

    @field_validator("unit_price")
    @classmethod
    def price_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Unit price must not be negative")
        return v


def _percent(v: float | None) -> float | None:
    if v is not None and not 0 <= v <= 100:
        raise ValueError("Percentage must be between 0 and 100")
    return v


class InvoiceCreate(BaseModel):
    client_id: str
    vehicle_id: str | None = None
    job_card_id: str | None = None
    items: list[InvoiceItemIn] = []
    tax_rate: float | None = None  # falls back to settings.default_tax_rate
    discount_percentage: float = 0
    invoice_date: date | None = None
    due_date: date | None = None
    payment_terms: str | None = "Net 30"
    notes: str | None = None

    @field_validator("tax_rate", "discount_percentage")
    @classmethod
    def valid_percentage(cls, v: float | None) -> float | None:
        return _percent(v)


class InvoiceFromJobCard(BaseModel):
    tax_rate: float | None = None
    discount_percentage: float = 0
    due_date: date | None = None
    notes: str | None = None

    @field_validator("tax_rate", "discount_percentage")
    @classmethod
    def valid_percentage(cls, v: float | None) -> float | None:
        return _percent(v)


class InvoiceUpdate(BaseModel):
    client_id: str | None = None
    vehicle_id: str | None = None
    items: list[InvoiceItemIn] | None = None
    tax_rate: float | None = None
    discount_percentage: float | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    payment_terms: str | None = None
    notes: str | None = None

    @field_validator("tax_rate", "discount_percentage")
    @classmethod
    def valid_percentage(cls, v: float | None) -> float | None:
        return _percent(v)


class PaymentCreate(BaseModel):
    amount: float
    method: PaymentMethod
    paid_at: datetime | None = None
    notes: str | None = None


class RefundCreate(BaseModel):
    amount: float
    reason: str | None = None


class StatusUpdate(BaseModel):
    status: InvoiceStatus


class InvoiceItemOut(BaseModel):
    id: str
    position: int
    description: str
    quantity: float
    unit_price: float
    line_total: float
    item_type: InvoiceItemType
    product_id: str | None = None
    requisition_id: str | None = None


class PaymentOut(BaseModel):
    id: str
    amount: float
    method: PaymentMethod
    paid_at: datetime
    notes: str | None = None
    refund_of: str | None = None
    recorded_by: str | None = None

    model_config = {"from_attributes": True}


class InvoiceOut(BaseModel):
    id: str
    number: str
    job_card_id: str | None = None
    client_id: str
    vehicle_id: str | None = None
    status: InvoiceStatus
    invoice_date: date
    due_date: date | None = None
    payment_terms: str | None = None
    notes: str | None = None
    tax_rate: float
    discount_percentage: float
    items: list[InvoiceItemOut]
    payments: list[PaymentOut]

    # Derived (never stored)
    subtotal: float
    discount_amount: float
    taxable_amount: float
    tax_amount: float
    total_amount: float
    amount_paid: float
    balance_due: float

    sent_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    version: int
    created_at: datetime


class InvoiceSummary(BaseModel):
    total_invoices: int
    total_amount: float
    paid_amount: float
    pending_amount: float
    overdue_amount: float
    draft_count: int
    sent_count: int
    paid_count: int
    overdue_count: int
    cancelled_count: int
