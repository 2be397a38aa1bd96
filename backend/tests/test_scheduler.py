"""Overdue sweep scheduler tests."""

from datetime import date, datetime

import pytest

from jobflow.models.invoice import InvoiceStatus
from jobflow.schemas.invoice import InvoiceCreate, InvoiceItemIn
from jobflow.services import invoices, scheduler
from jobflow.services.errors import ConflictError


@pytest.mark.unit
class TestSecondsUntil:

    def test_later_today(self):
        now = datetime(2026, 5, 4, 0, 30)
        assert scheduler.seconds_until(2, now) == 90 * 60

    def test_tomorrow_when_passed(self):
        now = datetime(2026, 5, 4, 2, 0, 1)
        assert scheduler.seconds_until(2, now) == 24 * 3600 - 1

    def test_month_rollover(self):
        now = datetime(2026, 5, 31, 23, 0)
        assert scheduler.seconds_until(2, now) == 3 * 3600


@pytest.fixture
def sent_invoice(db_session, advisor):
    async def _make(due_date: date):
        invoice = await invoices.create_invoice(
            db_session, advisor,
            InvoiceCreate(
                client_id="client-9",
                items=[InvoiceItemIn(description="Service", quantity=1, unit_price=500)],
                due_date=due_date,
            ),
        )
        await invoices.update_status(db_session, advisor, invoice.id, InvoiceStatus.SENT)
        await db_session.commit()
        return invoice

    return _make


@pytest.mark.integration
@pytest.mark.asyncio
class TestOverdueSweep:

    async def test_sweep_flips_past_due(self, session_factory, db_session, sent_invoice):
        late = await sent_invoice(date(2026, 4, 1))
        await sent_invoice(date(2026, 6, 1))

        flipped = await scheduler.run_overdue_sweep(session_factory, today=date(2026, 5, 1))
        assert flipped == [late.number]

        await db_session.refresh(late)
        assert late.status == InvoiceStatus.OVERDUE

    async def test_sweep_is_idempotent(self, session_factory, sent_invoice):
        await sent_invoice(date(2026, 4, 1))
        await scheduler.run_overdue_sweep(session_factory, today=date(2026, 5, 1))
        assert await scheduler.run_overdue_sweep(session_factory, today=date(2026, 5, 1)) == []

    async def test_retries_after_conflict(self, session_factory, sent_invoice, monkeypatch):
        late = await sent_invoice(date(2026, 4, 1))
        real = scheduler.mark_overdue_invoices
        calls = 0

        async def flaky(db, actor, today=None):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConflictError("The invoice was changed by another request.")
            return await real(db, actor, today=today)

        monkeypatch.setattr(scheduler, "mark_overdue_invoices", flaky)
        flipped = await scheduler.run_overdue_sweep(session_factory, today=date(2026, 5, 1))
        assert calls == 2
        assert flipped == [late.number]

    async def test_gives_up_after_attempts(self, session_factory, monkeypatch):
        async def always_conflicts(db, actor, today=None):
            raise ConflictError("busy")

        monkeypatch.setattr(scheduler, "mark_overdue_invoices", always_conflicts)
        assert await scheduler.run_overdue_sweep(session_factory, attempts=3) == []
