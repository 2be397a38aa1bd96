"""Technician clock-in / clock-out.

Endpoints:
    POST /api/timesheets/                  Clock in on a job card
    POST /api/timesheets/{id}/clock-out    Clock out
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.deps import get_current_actor
from jobflow.auth.permissions import Actor
from jobflow.database import get_db
from jobflow.schemas.timesheet import ClockInRequest, ClockOutRequest, TimesheetOut
from jobflow.services import timesheets

router = APIRouter()


@router.post("/", response_model=TimesheetOut, status_code=status.HTTP_201_CREATED)
async def clock_in(
    body: ClockInRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    sheet = await timesheets.clock_in(db, actor, body.job_card_id, body.title, body.technician_id)
    return TimesheetOut.model_validate(sheet)


@router.post("/{timesheet_id}/clock-out", response_model=TimesheetOut)
async def clock_out(
    timesheet_id: str,
    body: ClockOutRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    sheet = await timesheets.clock_out(db, actor, timesheet_id, body.report)
    return TimesheetOut.model_validate(sheet)
