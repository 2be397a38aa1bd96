"""Invoice lifecycle, payments and refunds.

    DRAFT → SENT → PAID
    SENT → OVERDUE → PAID           (sweep; payment settles)
    PAID → SENT | OVERDUE           (a refund reopens the balance)
    DRAFT | SENT → CANCELLED

Totals always come from ``rollup.compute_totals`` over the stored items
and payments.  An invoice becomes PAID automatically when a payment (or
an edit) brings the balance within ``settings.payment_epsilon``; a manual
PAID request is honoured only under the same condition.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.permissions import Actor, ensure_permitted
from jobflow.config import settings
from jobflow.models.invoice import (
    Invoice,
    InvoiceItem,
    InvoiceItemType,
    InvoicePayment,
    InvoiceStatus,
    PaymentMethod,
)
from jobflow.models.job_card import JobCardStatus
from jobflow.models.product import Product
from jobflow.models.timesheet import Timesheet
from jobflow.schemas.invoice import (
    InvoiceCreate,
    InvoiceFromJobCard,
    InvoiceItemIn,
    InvoiceItemOut,
    InvoiceOut,
    InvoiceUpdate,
    PaymentOut,
)
from jobflow.services.errors import (
    AmountExceedsBalanceError,
    CannotCancelPaidError,
    FieldLockedError,
    InvalidAmountError,
    InvalidStateError,
    InvalidTransitionError,
    InvoiceHasNoItemsError,
    NotFoundError,
)
from jobflow.services.job_cards import load_job_card
from jobflow.services.requisitions import list_used_parts
from jobflow.services.rollup import InvoiceTotals, compute_totals, line_total, round_money, to_decimal
from jobflow.utils.activity import log_activity
from jobflow.utils.locks import flush_versioned, get_invoice_locks, lock_row
from jobflow.utils.numbering import generate_number

logger = logging.getLogger(__name__)

PAYABLE = (InvoiceStatus.SENT, InvoiceStatus.OVERDUE, InvoiceStatus.PAID)
EDITABLE = (InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.OVERDUE)
CANCELLABLE = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)


def _epsilon() -> Decimal:
    return to_decimal(settings.payment_epsilon)


def invoice_totals(invoice: Invoice) -> InvoiceTotals:
    return compute_totals(
        invoice.items, invoice.tax_rate, invoice.discount_percentage, invoice.payments
    )


def serialize_invoice(invoice: Invoice) -> InvoiceOut:
    totals = invoice_totals(invoice)
    return InvoiceOut(
        id=invoice.id,
        number=invoice.number,
        job_card_id=invoice.job_card_id,
        client_id=invoice.client_id,
        vehicle_id=invoice.vehicle_id,
        status=invoice.status,
        invoice_date=invoice.invoice_date,
        due_date=invoice.due_date,
        payment_terms=invoice.payment_terms,
        notes=invoice.notes,
        tax_rate=float(invoice.tax_rate),
        discount_percentage=float(invoice.discount_percentage),
        items=[
            InvoiceItemOut(
                id=i.id,
                position=i.position,
                description=i.description,
                quantity=float(i.quantity),
                unit_price=float(i.unit_price),
                line_total=float(line_total(i.quantity, i.unit_price)),
                item_type=i.item_type,
                product_id=i.product_id,
                requisition_id=i.requisition_id,
            )
            for i in invoice.items
        ],
        payments=[PaymentOut.model_validate(p) for p in invoice.payments],
        sent_at=invoice.sent_at,
        paid_at=invoice.paid_at,
        cancelled_at=invoice.cancelled_at,
        version=invoice.version,
        created_at=invoice.created_at,
        **totals.as_floats(),
    )


def _is_past_due(invoice: Invoice, today: date | None = None) -> bool:
    today = today or datetime.utcnow().date()
    return invoice.due_date is not None and invoice.due_date < today


def _settle_if_paid(invoice: Invoice, totals: InvoiceTotals) -> bool:
    """Flip SENT/OVERDUE to PAID once the balance is within epsilon."""
    if invoice.status in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE) and totals.is_settled(_epsilon()):
        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = datetime.utcnow()
        return True
    return False


def _build_items(items: list[InvoiceItemIn]) -> list[InvoiceItem]:
    return [
        InvoiceItem(
            position=pos,
            description=item.description,
            quantity=round_money(item.quantity),
            unit_price=round_money(item.unit_price),
            item_type=item.item_type,
            product_id=item.product_id,
        )
        for pos, item in enumerate(items, start=1)
    ]


async def _load_invoice(db: AsyncSession, invoice_id: str) -> Invoice:
    invoice = await lock_row(db, Invoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


async def _record(
    db: AsyncSession,
    actor: Actor,
    invoice: Invoice,
    action: str,
    summary: str,
    details: dict | None = None,
) -> Invoice:
    await flush_versioned(db, "invoice")
    await log_activity(
        db, actor,
        action=action,
        entity_type="invoice",
        entity_id=invoice.id,
        entity_code=invoice.number,
        summary=summary,
        details=details,
    )
    logger.info("Invoice %s: %s", invoice.number, summary)
    return invoice


# ── Create ───────────────────────────────────────────────────


async def create_invoice(db: AsyncSession, actor: Actor, body: InvoiceCreate) -> Invoice:
    ensure_permitted(actor, "invoice.write")

    invoice = Invoice(
        number=await generate_number(db, "invoice"),
        job_card_id=body.job_card_id,
        client_id=body.client_id,
        vehicle_id=body.vehicle_id,
        tax_rate=to_decimal(settings.default_tax_rate if body.tax_rate is None else body.tax_rate),
        discount_percentage=to_decimal(body.discount_percentage),
        invoice_date=body.invoice_date or datetime.utcnow().date(),
        due_date=body.due_date,
        payment_terms=body.payment_terms,
        notes=body.notes,
        status=InvoiceStatus.DRAFT,
        created_by=actor.employee_id,
        items=_build_items(body.items),
        payments=[],
    )
    db.add(invoice)
    return await _record(db, actor, invoice, "created", f"Draft with {len(body.items)} items")


async def create_invoice_from_job_card(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    body: InvoiceFromJobCard,
) -> Invoice:
    """Seed a draft from consumed parts and closed timesheets of a finished job."""
    ensure_permitted(actor, "invoice.write")
    card = await load_job_card(db, job_card_id, read=True)
    if card.status not in (JobCardStatus.COMPLETED, JobCardStatus.CLOSED):
        raise InvalidStateError(
            f"Job card {card.number} is {card.status.value}; only completed or closed jobs can be invoiced"
        )

    items: list[InvoiceItem] = []

    parts = await list_used_parts(db, card.id)
    products = {}
    if parts:
        result = await db.execute(
            select(Product).where(Product.id.in_({p.product_id for p in parts}))
        )
        products = {p.id: p for p in result.scalars().all()}
    for req in parts:
        product = products.get(req.product_id)
        items.append(InvoiceItem(
            description=f"{product.name} ({product.code})" if product else f"Part {req.product_id}",
            quantity=Decimal(req.used_quantity),
            unit_price=round_money(req.unit_cost),
            item_type=InvoiceItemType.PART,
            product_id=req.product_id,
            requisition_id=req.id,
        ))

    sheets = (
        await db.execute(
            select(Timesheet)
            .where(Timesheet.job_card_id == card.id, Timesheet.clock_out_at.is_not(None))
            .order_by(Timesheet.clock_in_at)
        )
    ).scalars().all()
    labor_rate = round_money(settings.labor_rate_per_hour)
    for sheet in sheets:
        if not sheet.hours_worked:
            continue
        items.append(InvoiceItem(
            description=f"Labour: {sheet.title}",
            quantity=round_money(sheet.hours_worked),
            unit_price=labor_rate,
            item_type=InvoiceItemType.LABOR,
        ))

    for pos, item in enumerate(items, start=1):
        item.position = pos

    invoice = Invoice(
        number=await generate_number(db, "invoice"),
        job_card_id=card.id,
        client_id=card.client_id,
        vehicle_id=card.vehicle_id,
        tax_rate=to_decimal(settings.default_tax_rate if body.tax_rate is None else body.tax_rate),
        discount_percentage=to_decimal(body.discount_percentage),
        invoice_date=datetime.utcnow().date(),
        due_date=body.due_date,
        notes=body.notes,
        status=InvoiceStatus.DRAFT,
        created_by=actor.employee_id,
        items=items,
        payments=[],
    )
    db.add(invoice)
    return await _record(
        db, actor, invoice, "created",
        f"Draft from {card.number}: {len(parts)} part lines, {len(items) - len(parts)} labour lines",
        {"job_card_id": card.id},
    )


# ── Update ───────────────────────────────────────────────────


async def update_invoice(
    db: AsyncSession,
    actor: Actor,
    invoice_id: str,
    body: InvoiceUpdate,
) -> Invoice:
    """Edit an invoice.

    PAID and CANCELLED invoices only accept notes / payment terms; their
    financial fields are locked.  Any edit must keep the total at or above
    what has already been paid.
    """
    ensure_permitted(actor, "invoice.write")
    invoice = await _load_invoice(db, invoice_id)

    updates = body.model_dump(exclude_unset=True)
    locks = get_invoice_locks(invoice)
    blocked = locks.check_update(set(updates))
    if blocked:
        raise FieldLockedError(f"{blocked.reason}. {blocked.unlock_hint}")

    if "items" in updates:
        updates.pop("items")
        if not body.items and invoice.status != InvoiceStatus.DRAFT:
            raise InvoiceHasNoItemsError(
                f"Invoice {invoice.number} is {invoice.status.value} and must keep at least one item"
            )
        invoice.items.clear()
        invoice.items.extend(_build_items(body.items or []))
    for field_name, value in updates.items():
        if field_name in ("tax_rate", "discount_percentage"):
            value = to_decimal(value or 0)
        setattr(invoice, field_name, value)

    totals = invoice_totals(invoice)
    if totals.total_amount < totals.amount_paid:
        raise InvalidAmountError(
            f"New total {totals.total_amount} is below the {totals.amount_paid} already paid"
        )
    _settle_if_paid(invoice, totals)
    invoice.updated_at = datetime.utcnow()
    return await _record(
        db, actor, invoice, "updated",
        f"Updated {', '.join(sorted(body.model_fields_set)) or 'nothing'}",
    )


# ── Status ───────────────────────────────────────────────────


async def update_status(
    db: AsyncSession,
    actor: Actor,
    invoice_id: str,
    target: InvoiceStatus,
) -> Invoice:
    ensure_permitted(actor, "invoice.write")
    invoice = await _load_invoice(db, invoice_id)
    current = invoice.status
    now = datetime.utcnow()

    if target == InvoiceStatus.SENT and current == InvoiceStatus.DRAFT:
        if not invoice.items:
            raise InvoiceHasNoItemsError(f"Invoice {invoice.number} has no items")
        invoice.status = InvoiceStatus.SENT
        invoice.sent_at = now

    elif target == InvoiceStatus.PAID and current in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE):
        totals = invoice_totals(invoice)
        if not _settle_if_paid(invoice, totals):
            raise InvalidStateError(
                f"Invoice {invoice.number} still has {totals.balance_due} outstanding"
            )

    elif target == InvoiceStatus.OVERDUE and current == InvoiceStatus.SENT:
        totals = invoice_totals(invoice)
        if not _is_past_due(invoice) or totals.is_settled(_epsilon()):
            raise InvalidTransitionError(
                f"Invoice {invoice.number} is not past due with a balance outstanding"
            )
        invoice.status = InvoiceStatus.OVERDUE

    elif target == InvoiceStatus.CANCELLED:
        if current == InvoiceStatus.PAID:
            raise CannotCancelPaidError(f"Invoice {invoice.number} is paid and cannot be cancelled")
        if current not in CANCELLABLE:
            raise InvalidTransitionError(
                f"Cannot cancel invoice {invoice.number} from {current.value}"
            )
        invoice.status = InvoiceStatus.CANCELLED
        invoice.cancelled_at = now

    else:
        raise InvalidTransitionError(
            f"Cannot move invoice {invoice.number} from {current.value} to {target.value}"
        )

    return await _record(
        db, actor, invoice, "status_changed",
        f"{current.value} → {invoice.status.value}",
        {"from": current.value, "to": invoice.status.value},
    )


# ── Payments ─────────────────────────────────────────────────


async def add_payment(
    db: AsyncSession,
    actor: Actor,
    invoice_id: str,
    amount,
    method: PaymentMethod,
    paid_at: datetime | None = None,
    notes: str | None = None,
) -> Invoice:
    ensure_permitted(actor, "invoice.payment")
    invoice = await _load_invoice(db, invoice_id)

    if invoice.status not in PAYABLE:
        raise InvalidStateError(
            f"Invoice {invoice.number} is {invoice.status.value} and cannot take payments"
        )

    amount = round_money(amount)
    if amount <= 0:
        raise InvalidAmountError("Payment amount must be positive")

    balance = invoice_totals(invoice).balance_due
    if amount > balance + _epsilon() and not settings.allow_overpayment:
        raise AmountExceedsBalanceError(
            f"Payment {amount} exceeds balance due {balance} on {invoice.number}"
        )

    invoice.payments.append(InvoicePayment(
        sequence=len(invoice.payments) + 1,
        amount=amount,
        method=method,
        paid_at=paid_at or datetime.utcnow(),
        notes=notes,
        recorded_by=actor.employee_id,
    ))
    invoice.updated_at = datetime.utcnow()

    totals = invoice_totals(invoice)
    settled = _settle_if_paid(invoice, totals)
    return await _record(
        db, actor, invoice, "payment_added",
        f"Payment {amount} via {method.value}; balance {totals.balance_due}"
        + (" (paid)" if settled else ""),
        {"amount": float(amount), "method": method.value},
    )


async def refund_payment(
    db: AsyncSession,
    actor: Actor,
    payment_id: str,
    amount,
    reason: str | None = None,
) -> Invoice:
    """Record a negative payment against an earlier one."""
    ensure_permitted(actor, "invoice.payment")
    original = await db.get(InvoicePayment, payment_id)
    if not original:
        raise NotFoundError("Payment", payment_id)

    invoice = await _load_invoice(db, original.invoice_id)
    if invoice.status not in PAYABLE:
        raise InvalidStateError(
            f"Invoice {invoice.number} is {invoice.status.value} and cannot take refunds"
        )
    if original.is_refund:
        raise InvalidStateError("A refund cannot itself be refunded")

    amount = round_money(amount)
    if amount <= 0:
        raise InvalidAmountError("Refund amount must be positive")
    already = -sum(
        (to_decimal(p.amount) for p in invoice.payments if p.refund_of == original.id),
        Decimal("0"),
    )
    refundable = round_money(to_decimal(original.amount) - already)
    if amount > refundable:
        raise InvalidAmountError(
            f"Refund {amount} exceeds the {refundable} still refundable on this payment"
        )

    invoice.payments.append(InvoicePayment(
        sequence=len(invoice.payments) + 1,
        amount=-amount,
        method=original.method,
        paid_at=datetime.utcnow(),
        notes=reason,
        refund_of=original.id,
        recorded_by=actor.employee_id,
    ))
    invoice.updated_at = datetime.utcnow()

    totals = invoice_totals(invoice)
    if invoice.status == InvoiceStatus.PAID and not totals.is_settled(_epsilon()):
        invoice.status = InvoiceStatus.OVERDUE if _is_past_due(invoice) else InvoiceStatus.SENT
        invoice.paid_at = None

    return await _record(
        db, actor, invoice, "payment_refunded",
        f"Refunded {amount}; balance {totals.balance_due}",
        {"amount": float(amount), "refund_of": original.id},
    )


# ── Overdue sweep ────────────────────────────────────────────


async def mark_overdue_invoices(
    db: AsyncSession,
    actor: Actor,
    today: date | None = None,
) -> list[str]:
    """Flip SENT invoices past their due date with a balance to OVERDUE."""
    today = today or datetime.utcnow().date()
    result = await db.execute(
        select(Invoice)
        .where(Invoice.status == InvoiceStatus.SENT, Invoice.due_date < today)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    flipped: list[str] = []
    for invoice in result.scalars().all():
        if invoice_totals(invoice).is_settled(_epsilon()):
            continue
        invoice.status = InvoiceStatus.OVERDUE
        flipped.append(invoice.number)
        await log_activity(
            db, actor,
            action="marked_overdue",
            entity_type="invoice",
            entity_id=invoice.id,
            entity_code=invoice.number,
            summary=f"Overdue since {invoice.due_date.isoformat()}",
        )

    await flush_versioned(db, "invoice")
    return flipped


# ── Reads ────────────────────────────────────────────────────


async def get_invoice(db: AsyncSession, actor: Actor, invoice_id: str) -> Invoice:
    ensure_permitted(actor, "invoice.read")
    invoice = await db.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


async def list_invoices(
    db: AsyncSession,
    actor: Actor,
    status: InvoiceStatus | None = None,
    job_card_id: str | None = None,
) -> list[Invoice]:
    ensure_permitted(actor, "invoice.read")
    stmt = select(Invoice)
    if status is not None:
        stmt = stmt.where(Invoice.status == status)
    if job_card_id:
        stmt = stmt.where(Invoice.job_card_id == job_card_id)
    result = await db.execute(stmt.order_by(Invoice.created_at.desc()))
    return list(result.scalars().all())


async def summarize_invoices(db: AsyncSession, actor: Actor) -> dict:
    ensure_permitted(actor, "invoice.read")
    invoices = (await db.execute(select(Invoice))).scalars().all()

    counts = {s: 0 for s in InvoiceStatus}
    total = paid = pending = overdue = Decimal("0")
    for invoice in invoices:
        counts[invoice.status] += 1
        if invoice.status == InvoiceStatus.CANCELLED:
            continue
        totals = invoice_totals(invoice)
        total += totals.total_amount
        paid += totals.amount_paid
        if invoice.status in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE):
            pending += totals.balance_due
        if invoice.status == InvoiceStatus.OVERDUE:
            overdue += totals.balance_due

    return {
        "total_invoices": len(invoices),
        "total_amount": float(total),
        "paid_amount": float(paid),
        "pending_amount": float(pending),
        "overdue_amount": float(overdue),
        "draft_count": counts[InvoiceStatus.DRAFT],
        "sent_count": counts[InvoiceStatus.SENT],
        "paid_count": counts[InvoiceStatus.PAID],
        "overdue_count": counts[InvoiceStatus.OVERDUE],
        "cancelled_count": counts[InvoiceStatus.CANCELLED],
    }
