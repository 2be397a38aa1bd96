"""Invoices, payments and refunds.

Endpoints:
    POST  /api/invoices/                                Create a draft
    POST  /api/invoices/from-job-card/{job_card_id}     Draft from a finished job
    GET   /api/invoices/                                List invoices
    GET   /api/invoices/summary                         Totals by status
    GET   /api/invoices/{id}                            Invoice detail with totals
    PATCH /api/invoices/{id}                            Edit (field locks apply)
    POST  /api/invoices/{id}/status                     Change status
    POST  /api/invoices/{id}/payments                   Record a payment
    POST  /api/invoices/payments/{payment_id}/refund    Refund part of a payment
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.deps import get_current_actor
from jobflow.auth.permissions import Actor
from jobflow.database import get_db
from jobflow.models.invoice import InvoiceStatus
from jobflow.schemas.invoice import (
    InvoiceCreate,
    InvoiceFromJobCard,
    InvoiceOut,
    InvoiceSummary,
    InvoiceUpdate,
    PaymentCreate,
    RefundCreate,
    StatusUpdate,
)
from jobflow.services import invoices
from jobflow.services.invoices import serialize_invoice

router = APIRouter()


# ── Create ───────────────────────────────────────────────────

@router.post("/", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    body: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return serialize_invoice(await invoices.create_invoice(db, actor, body))


@router.post(
    "/from-job-card/{job_card_id}",
    response_model=InvoiceOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice_from_job_card(
    job_card_id: str,
    body: InvoiceFromJobCard,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    invoice = await invoices.create_invoice_from_job_card(db, actor, job_card_id, body)
    return serialize_invoice(invoice)


# ── Reads ────────────────────────────────────────────────────

@router.get("/", response_model=list[InvoiceOut])
async def list_invoices(
    status_filter: InvoiceStatus | None = Query(None, alias="status"),
    job_card_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return [
        serialize_invoice(i)
        for i in await invoices.list_invoices(db, actor, status_filter, job_card_id)
    ]


@router.get("/summary", response_model=InvoiceSummary)
async def invoice_summary(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return await invoices.summarize_invoices(db, actor)


@router.get("/{invoice_id}", response_model=InvoiceOut)
async def get_invoice(
    invoice_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return serialize_invoice(await invoices.get_invoice(db, actor, invoice_id))


# ── Mutations ────────────────────────────────────────────────

@router.patch("/{invoice_id}", response_model=InvoiceOut)
async def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return serialize_invoice(await invoices.update_invoice(db, actor, invoice_id, body))


@router.post("/{invoice_id}/status", response_model=InvoiceOut)
async def update_invoice_status(
    invoice_id: str,
    body: StatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return serialize_invoice(await invoices.update_status(db, actor, invoice_id, body.status))


@router.post("/{invoice_id}/payments", response_model=InvoiceOut)
async def add_payment(
    invoice_id: str,
    body: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    invoice = await invoices.add_payment(
        db, actor, invoice_id, body.amount, body.method, body.paid_at, body.notes,
    )
    return serialize_invoice(invoice)


@router.post("/payments/{payment_id}/refund", response_model=InvoiceOut)
async def refund_payment(
    payment_id: str,
    body: RefundCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    invoice = await invoices.refund_payment(db, actor, payment_id, body.amount, body.reason)
    return serialize_invoice(invoice)
