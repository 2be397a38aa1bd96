"""Invoice lifecycle, payment and refund tests."""

from datetime import date, datetime, timedelta

import pytest

from jobflow.config import settings
from jobflow.models.invoice import InvoiceItemType, InvoiceStatus, PaymentMethod
from jobflow.models.job_card import JobCardStatus
from jobflow.schemas.invoice import InvoiceCreate, InvoiceFromJobCard, InvoiceItemIn, InvoiceUpdate
from jobflow.services import invoices, job_cards, requisitions, timesheets
from jobflow.services.errors import (
    AmountExceedsBalanceError,
    CannotCancelPaidError,
    FieldLockedError,
    ForbiddenError,
    InvalidAmountError,
    InvalidStateError,
    InvalidTransitionError,
    InvoiceHasNoItemsError,
)

ITEMS = [
    InvoiceItemIn(description="Labour", quantity=2, unit_price=50, item_type=InvoiceItemType.LABOR),
    InvoiceItemIn(description="Filter", quantity=1, unit_price=100, item_type=InvoiceItemType.PART),
]


@pytest.fixture
def draft_invoice(db_session, advisor):
    async def _make(items=ITEMS, due_date=None, tax_rate=15, discount_percentage=10):
        invoice = await invoices.create_invoice(
            db_session, advisor,
            InvoiceCreate(
                client_id="client-001",
                items=items,
                tax_rate=tax_rate,
                discount_percentage=discount_percentage,
                due_date=due_date,
            ),
        )
        await db_session.commit()
        return invoice

    return _make


@pytest.fixture
def sent_invoice(db_session, advisor, draft_invoice):
    async def _make(**kwargs):
        invoice = await draft_invoice(**kwargs)
        invoice = await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.SENT)
        await db_session.commit()
        return invoice

    return _make


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateInvoice:

    async def test_draft_with_totals(self, draft_invoice):
        invoice = await draft_invoice()
        out = invoices.serialize_invoice(invoice)

        assert out.number == "INV-000001"
        assert out.status == InvoiceStatus.DRAFT
        assert out.subtotal == 200.00
        assert out.discount_amount == 20.00
        assert out.taxable_amount == 180.00
        assert out.tax_amount == 27.00
        assert out.total_amount == 207.00
        assert out.balance_due == 207.00
        assert [i.line_total for i in out.items] == [100.00, 100.00]

    async def test_default_tax_rate(self, db_session, advisor):
        invoice = await invoices.create_invoice(
            db_session, advisor, InvoiceCreate(client_id="c", items=ITEMS),
        )
        assert float(invoice.tax_rate) == settings.default_tax_rate

    async def test_technician_cannot_invoice(self, db_session, technician):
        with pytest.raises(ForbiddenError):
            await invoices.create_invoice(db_session, technician, InvoiceCreate(client_id="c"))


@pytest.mark.integration
@pytest.mark.asyncio
class TestInvoiceStatus:

    async def test_send_requires_items(self, db_session, advisor, draft_invoice):
        invoice = await draft_invoice(items=[])
        with pytest.raises(InvoiceHasNoItemsError):
            await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.SENT)

    async def test_send(self, sent_invoice):
        invoice = await sent_invoice()
        assert invoice.status == InvoiceStatus.SENT
        assert invoice.sent_at is not None

    async def test_manual_paid_needs_settled_balance(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        with pytest.raises(InvalidStateError):
            await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.PAID)

    async def test_draft_cannot_jump_to_paid(self, db_session, advisor, draft_invoice):
        invoice = await draft_invoice()
        with pytest.raises(InvalidTransitionError):
            await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.PAID)

    async def test_cancel_draft_and_sent(self, db_session, advisor, draft_invoice, sent_invoice):
        draft = await draft_invoice()
        sent = await sent_invoice()
        for invoice in (draft, sent):
            invoice = await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.CANCELLED)
            assert invoice.status == InvoiceStatus.CANCELLED
            assert invoice.cancelled_at is not None

    async def test_cannot_cancel_paid(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        await invoices.add_payment(db_session, advisor, invoice.id, 207, PaymentMethod.CASH)
        with pytest.raises(CannotCancelPaidError):
            await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.CANCELLED)

    async def test_cannot_cancel_overdue(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice(due_date=date.today() - timedelta(days=3))
        await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.OVERDUE)
        with pytest.raises(InvalidTransitionError):
            await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.CANCELLED)

    async def test_manual_overdue_needs_past_due(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice(due_date=date.today() + timedelta(days=30))
        with pytest.raises(InvalidTransitionError):
            await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.OVERDUE)


@pytest.mark.integration
@pytest.mark.asyncio
class TestPayments:

    async def test_full_payment_marks_paid(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 207.00, PaymentMethod.CARD)
        out = invoices.serialize_invoice(invoice)

        assert out.status == InvoiceStatus.PAID
        assert out.amount_paid == 207.00
        assert out.balance_due == 0.00
        assert invoice.paid_at is not None

    async def test_part_payments(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 100, PaymentMethod.CASH)
        assert invoice.status == InvoiceStatus.SENT
        invoice = await invoices.add_payment(
            db_session, advisor, invoice.id, 107, PaymentMethod.MOBILE_MONEY,
        )
        assert invoice.status == InvoiceStatus.PAID
        assert [p.sequence for p in invoice.payments] == [1, 2]

    async def test_payment_settles_overdue(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice(due_date=date.today() - timedelta(days=1))
        await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.OVERDUE)
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 207, PaymentMethod.CHEQUE)
        assert invoice.status == InvoiceStatus.PAID

    async def test_overpayment_rejected(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        with pytest.raises(AmountExceedsBalanceError):
            await invoices.add_payment(db_session, advisor, invoice.id, 207.02, PaymentMethod.CASH)

    async def test_overpayment_within_epsilon(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 207.01, PaymentMethod.CASH)
        assert invoice.status == InvoiceStatus.PAID

    async def test_overpayment_allowed_by_setting(self, db_session, advisor, sent_invoice, monkeypatch):
        monkeypatch.setattr(settings, "allow_overpayment", True)
        invoice = await sent_invoice()
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 250, PaymentMethod.CASH)
        out = invoices.serialize_invoice(invoice)
        assert out.status == InvoiceStatus.PAID
        assert out.balance_due == -43.00

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount(self, db_session, advisor, sent_invoice, amount):
        invoice = await sent_invoice()
        with pytest.raises(InvalidAmountError):
            await invoices.add_payment(db_session, advisor, invoice.id, amount, PaymentMethod.CASH)

    async def test_draft_takes_no_payment(self, db_session, advisor, draft_invoice):
        invoice = await draft_invoice()
        with pytest.raises(InvalidStateError):
            await invoices.add_payment(db_session, advisor, invoice.id, 10, PaymentMethod.CASH)

    async def test_payment_on_paid_invoice(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        await invoices.add_payment(db_session, advisor, invoice.id, 207, PaymentMethod.CASH)
        with pytest.raises(AmountExceedsBalanceError):
            await invoices.add_payment(db_session, advisor, invoice.id, 1, PaymentMethod.CASH)

    async def test_payment_bumps_version(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        version = invoice.version
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 50, PaymentMethod.CASH)
        assert invoice.version == version + 1


@pytest.mark.integration
@pytest.mark.asyncio
class TestRefunds:

    async def test_refund_reopens_paid_invoice(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 207, PaymentMethod.CARD)
        payment_id = invoice.payments[0].id

        invoice = await invoices.refund_payment(db_session, advisor, payment_id, 57, "Filter returned")
        out = invoices.serialize_invoice(invoice)

        assert out.status == InvoiceStatus.SENT
        assert out.amount_paid == 150.00
        assert out.balance_due == 57.00
        assert invoice.paid_at is None
        refund = invoice.payments[-1]
        assert float(refund.amount) == -57.00
        assert refund.refund_of == payment_id
        assert refund.method == PaymentMethod.CARD

    async def test_refund_of_past_due_goes_overdue(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice(due_date=date.today() - timedelta(days=10))
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 207, PaymentMethod.CASH)
        invoice = await invoices.refund_payment(db_session, advisor, invoice.payments[0].id, 7)
        assert invoice.status == InvoiceStatus.OVERDUE

    async def test_cannot_refund_more_than_paid(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 100, PaymentMethod.CASH)
        payment_id = invoice.payments[0].id
        await invoices.refund_payment(db_session, advisor, payment_id, 60)
        with pytest.raises(InvalidAmountError):
            await invoices.refund_payment(db_session, advisor, payment_id, 41)
        invoice = await invoices.refund_payment(db_session, advisor, payment_id, 40)
        assert invoices.serialize_invoice(invoice).amount_paid == 0.00

    async def test_refund_of_refund(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        invoice = await invoices.add_payment(db_session, advisor, invoice.id, 100, PaymentMethod.CASH)
        invoice = await invoices.refund_payment(db_session, advisor, invoice.payments[0].id, 10)
        with pytest.raises(InvalidStateError):
            await invoices.refund_payment(db_session, advisor, invoice.payments[-1].id, 5)


@pytest.mark.integration
@pytest.mark.asyncio
class TestUpdateInvoice:

    async def test_edit_draft_items(self, db_session, advisor, draft_invoice):
        invoice = await draft_invoice()
        invoice = await invoices.update_invoice(
            db_session, advisor, invoice.id,
            InvoiceUpdate(items=[InvoiceItemIn(description="Wipers", quantity=1, unit_price=40)]),
        )
        out = invoices.serialize_invoice(invoice)
        assert len(out.items) == 1
        assert out.subtotal == 40.00

    async def test_sent_invoice_keeps_an_item(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        with pytest.raises(InvoiceHasNoItemsError):
            await invoices.update_invoice(db_session, advisor, invoice.id, InvoiceUpdate(items=[]))
        assert len(invoice.items) == 2

    async def test_total_cannot_drop_below_paid(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        await invoices.add_payment(db_session, advisor, invoice.id, 150, PaymentMethod.CASH)
        with pytest.raises(InvalidAmountError):
            await invoices.update_invoice(
                db_session, advisor, invoice.id, InvoiceUpdate(discount_percentage=50),
            )

    async def test_edit_that_clears_balance_settles(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        await invoices.add_payment(db_session, advisor, invoice.id, 150, PaymentMethod.CASH)
        invoice = await invoices.update_invoice(
            db_session, advisor, invoice.id,
            InvoiceUpdate(
                items=[InvoiceItemIn(description="Service", quantity=1, unit_price=150)],
                tax_rate=0,
                discount_percentage=0,
            ),
        )
        assert invoice.status == InvoiceStatus.PAID

    async def test_paid_invoice_financial_fields_locked(self, db_session, advisor, sent_invoice):
        invoice = await sent_invoice()
        await invoices.add_payment(db_session, advisor, invoice.id, 207, PaymentMethod.CASH)
        with pytest.raises(FieldLockedError):
            await invoices.update_invoice(db_session, advisor, invoice.id, InvoiceUpdate(tax_rate=0))

        invoice = await invoices.update_invoice(
            db_session, advisor, invoice.id, InvoiceUpdate(notes="Collected Friday"),
        )
        assert invoice.notes == "Collected Friday"


@pytest.mark.integration
@pytest.mark.asyncio
class TestInvoiceFromJobCard:

    async def test_requires_finished_job(self, db_session, advisor, job_card):
        with pytest.raises(InvalidStateError):
            await invoices.create_invoice_from_job_card(
                db_session, advisor, job_card.id, InvoiceFromJobCard(),
            )

    async def test_parts_and_labour_lines(
        self, db_session, advisor, technician, stores, job_card, product,
    ):
        req = await requisitions.create_requisition(db_session, technician, job_card.id, product.id, 4)
        await requisitions.approve_and_disburse(db_session, stores, req.id, 4, 4)
        await requisitions.mark_used(db_session, technician, req.id, 2)
        unused = await requisitions.create_requisition(db_session, technician, job_card.id, product.id, 1)
        await requisitions.reject(db_session, stores, unused.id, "not needed")

        sheet = await timesheets.clock_in(db_session, technician, job_card.id, "Brake overhaul")
        await db_session.commit()
        sheet.clock_in_at = datetime.utcnow() - timedelta(hours=2)
        await db_session.commit()
        await timesheets.clock_out(db_session, technician, sheet.id)

        await job_cards.change_status(db_session, advisor, job_card.id, JobCardStatus.IN_PROGRESS)
        await job_cards.change_status(db_session, advisor, job_card.id, JobCardStatus.COMPLETED)
        await db_session.commit()

        invoice = await invoices.create_invoice_from_job_card(
            db_session, advisor, job_card.id, InvoiceFromJobCard(tax_rate=0),
        )
        out = invoices.serialize_invoice(invoice)

        assert out.job_card_id == job_card.id
        assert out.client_id == job_card.client_id
        assert [i.item_type for i in out.items] == [InvoiceItemType.PART, InvoiceItemType.LABOR]
        part, labour = out.items
        assert (part.quantity, part.unit_price, part.line_total) == (2.0, 120.50, 241.00)
        assert part.requisition_id == req.id
        assert labour.quantity == pytest.approx(2.0, abs=0.01)
        assert labour.unit_price == settings.labor_rate_per_hour


@pytest.mark.integration
@pytest.mark.asyncio
class TestOverdueAndSummary:

    async def test_mark_overdue(self, db_session, admin, advisor, sent_invoice):
        late = await sent_invoice(due_date=date(2026, 1, 10))
        current = await sent_invoice(due_date=date(2026, 3, 1))
        settled = await sent_invoice(due_date=date(2026, 1, 5))
        await invoices.add_payment(db_session, advisor, settled.id, 207, PaymentMethod.CASH)
        await db_session.commit()

        flipped = await invoices.mark_overdue_invoices(db_session, admin, today=date(2026, 2, 1))
        await db_session.commit()

        assert flipped == [late.number]
        assert late.status == InvoiceStatus.OVERDUE
        assert current.status == InvoiceStatus.SENT

    async def test_summary(self, db_session, advisor, draft_invoice, sent_invoice):
        await draft_invoice()
        paid = await sent_invoice()
        await invoices.add_payment(db_session, advisor, paid.id, 207, PaymentMethod.CASH)
        part_paid = await sent_invoice()
        await invoices.add_payment(db_session, advisor, part_paid.id, 7, PaymentMethod.CASH)
        cancelled = await draft_invoice()
        await invoices.update_status(db_session, advisor, cancelled.id, InvoiceStatus.CANCELLED)
        await db_session.commit()

        summary = await invoices.summarize_invoices(db_session, advisor)
        assert summary == {
            "total_invoices": 4,
            "total_amount": 621.00,
            "paid_amount": 214.00,
            "pending_amount": 200.00,
            "overdue_amount": 0.00,
            "draft_count": 1,
            "sent_count": 1,
            "paid_count": 1,
            "overdue_count": 0,
            "cancelled_count": 1,
        }
