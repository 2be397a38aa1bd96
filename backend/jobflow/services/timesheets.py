"""Technician timesheets against a job card.

Clock-in is refused while the job card is frozen or closed and requires
the technician to be on the roster.  Clock-out is always allowed on an
open sheet.  Both bump the job card's version so they serialize with
freeze/close.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.permissions import Actor, ensure_permitted
from jobflow.models.employee import EmployeeRole
from jobflow.models.job_card import JobCard, JobCardStatus
from jobflow.models.timesheet import Timesheet
from jobflow.services.errors import (
    ForbiddenError,
    InvalidStateError,
    JobCardClosedError,
    JobCardFrozenError,
    NotAssignedError,
    NotFoundError,
)
from jobflow.utils.activity import log_activity
from jobflow.utils.locks import flush_versioned, lock_row

logger = logging.getLogger(__name__)


def hours_between(start: datetime, end: datetime) -> float:
    return round(max((end - start).total_seconds(), 0) / 3600, 2)


def end_timesheet(sheet: Timesheet, at: datetime, report: str | None = None) -> None:
    sheet.clock_out_at = at
    sheet.hours_worked = hours_between(sheet.clock_in_at, at)
    if report is not None:
        sheet.report = report


async def end_open_timesheets(db: AsyncSession, job_card_id: str, at: datetime) -> int:
    """Clock out every open sheet on a job card; returns how many were ended."""
    result = await db.execute(
        select(Timesheet).where(
            Timesheet.job_card_id == job_card_id,
            Timesheet.clock_out_at.is_(None),
        )
    )
    sheets = result.scalars().all()
    for sheet in sheets:
        end_timesheet(sheet, at)
    return len(sheets)


async def _lock_job_card(db: AsyncSession, job_card_id: str) -> JobCard:
    card = await lock_row(db, JobCard, job_card_id)
    if not card:
        raise NotFoundError("Job card", job_card_id)
    return card


async def clock_in(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    title: str,
    technician_id: str | None = None,
) -> Timesheet:
    ensure_permitted(actor, "timesheet.write")
    technician_id = technician_id or actor.employee_id
    if actor.role == EmployeeRole.TECHNICIAN and technician_id != actor.employee_id:
        raise ForbiddenError("Technicians may only clock themselves in")

    card = await _lock_job_card(db, job_card_id)
    if card.status == JobCardStatus.CLOSED:
        raise JobCardClosedError(f"Job card {card.number} is closed")
    if card.status == JobCardStatus.FROZEN:
        raise JobCardFrozenError(f"Job card {card.number} is frozen")
    if technician_id not in card.technician_ids:
        raise NotAssignedError(f"Technician {technician_id} is not assigned to {card.number}")

    open_sheet = (
        await db.execute(
            select(Timesheet.id).where(
                Timesheet.job_card_id == card.id,
                Timesheet.technician_id == technician_id,
                Timesheet.clock_out_at.is_(None),
            )
        )
    ).scalar_one_or_none()
    if open_sheet:
        raise InvalidStateError(
            f"Technician {technician_id} is already clocked in on {card.number}"
        )

    now = datetime.utcnow()
    sheet = Timesheet(
        job_card_id=card.id,
        technician_id=technician_id,
        title=title,
        clock_in_at=now,
    )
    db.add(sheet)
    card.updated_at = now
    await flush_versioned(db, "job card")

    await log_activity(
        db, actor,
        action="clocked_in",
        entity_type="timesheet",
        entity_id=sheet.id,
        entity_code=card.number,
        summary=f"{technician_id} clocked in: {title}",
    )
    logger.info("Clock-in: job_card=%s technician=%s", card.number, technician_id)
    return sheet


async def clock_out(
    db: AsyncSession,
    actor: Actor,
    timesheet_id: str,
    report: str | None = None,
) -> Timesheet:
    ensure_permitted(actor, "timesheet.write")

    sheet = await lock_row(db, Timesheet, timesheet_id)
    if not sheet:
        raise NotFoundError("Timesheet", timesheet_id)
    if actor.role == EmployeeRole.TECHNICIAN and sheet.technician_id != actor.employee_id:
        raise ForbiddenError("Technicians may only clock themselves out")
    if not sheet.is_open:
        raise InvalidStateError(f"Timesheet {timesheet_id} is already closed")

    card = await _lock_job_card(db, sheet.job_card_id)
    now = datetime.utcnow()
    end_timesheet(sheet, now, report)
    card.updated_at = now
    await flush_versioned(db, "job card")

    await log_activity(
        db, actor,
        action="clocked_out",
        entity_type="timesheet",
        entity_id=sheet.id,
        entity_code=card.number,
        summary=f"{sheet.technician_id} clocked out after {sheet.hours_worked}h",
        details={"hours_worked": sheet.hours_worked},
    )
    logger.info(
        "Clock-out: job_card=%s technician=%s hours=%.2f",
        card.number, sheet.technician_id, sheet.hours_worked,
    )
    return sheet


async def list_timesheets(db: AsyncSession, job_card_id: str) -> list[Timesheet]:
    result = await db.execute(
        select(Timesheet)
        .where(Timesheet.job_card_id == job_card_id)
        .order_by(Timesheet.clock_in_at)
    )
    return list(result.scalars().all())
