"""Job card lifecycle and technician roster.

Endpoints:
    POST   /api/job-cards/                               Create a job card
    GET    /api/job-cards/                               List job cards
    GET    /api/job-cards/{id}                           Job card detail
    POST   /api/job-cards/{id}/status                    Change status
    POST   /api/job-cards/{id}/freeze                    Freeze
    POST   /api/job-cards/{id}/unfreeze                  Unfreeze
    POST   /api/job-cards/{id}/close                     Close (terminal)
    POST   /api/job-cards/{id}/priority                  Set priority flag
    POST   /api/job-cards/{id}/technicians               Assign technician
    DELETE /api/job-cards/{id}/technicians/{tech_id}     Remove technician
    GET    /api/job-cards/{id}/timesheets                Timesheets on the card
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.deps import get_current_actor
from jobflow.auth.permissions import Actor
from jobflow.database import get_db
from jobflow.models.job_card import JobCardStatus
from jobflow.schemas.common import PaginatedResponse
from jobflow.schemas.job_card import (
    CloseRequest,
    FreezeRequest,
    JobCardCreate,
    JobCardOut,
    PriorityRequest,
    StatusChange,
    TechnicianAssign,
)
from jobflow.schemas.timesheet import TimesheetOut
from jobflow.services import job_cards, roster, timesheets

router = APIRouter()


# ── POST /api/job-cards/ ─────────────────────────────────────

@router.post("/", response_model=JobCardOut, status_code=status.HTTP_201_CREATED)
async def create_job_card(
    body: JobCardCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    card = await job_cards.create_job_card(db, actor, body)
    return JobCardOut.model_validate(card)


# ── GET /api/job-cards/ ──────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[JobCardOut])
async def list_job_cards(
    status_filter: JobCardStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    cards, total = await job_cards.list_job_cards(db, status_filter, limit, offset)
    return PaginatedResponse[JobCardOut](
        items=[JobCardOut.model_validate(c) for c in cards],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{job_card_id}", response_model=JobCardOut)
async def get_job_card(
    job_card_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    return JobCardOut.model_validate(await job_cards.get_job_card(db, job_card_id))


# ── Transitions ──────────────────────────────────────────────

@router.post("/{job_card_id}/status", response_model=JobCardOut)
async def change_status(
    job_card_id: str,
    body: StatusChange,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    card = await job_cards.change_status(db, actor, job_card_id, body.status)
    return JobCardOut.model_validate(card)


@router.post("/{job_card_id}/freeze", response_model=JobCardOut)
async def freeze_job_card(
    job_card_id: str,
    body: FreezeRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    card = await job_cards.freeze(db, actor, job_card_id, body.reason)
    return JobCardOut.model_validate(card)


@router.post("/{job_card_id}/unfreeze", response_model=JobCardOut)
async def unfreeze_job_card(
    job_card_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    card = await job_cards.unfreeze(db, actor, job_card_id)
    return JobCardOut.model_validate(card)


@router.post("/{job_card_id}/close", response_model=JobCardOut)
async def close_job_card(
    job_card_id: str,
    body: CloseRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    card = await job_cards.close(db, actor, job_card_id, body.notes)
    return JobCardOut.model_validate(card)


@router.post("/{job_card_id}/priority", response_model=JobCardOut)
async def set_priority(
    job_card_id: str,
    body: PriorityRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    card = await job_cards.set_priority(db, actor, job_card_id, body.priority)
    return JobCardOut.model_validate(card)


# ── Roster ───────────────────────────────────────────────────

@router.post("/{job_card_id}/technicians", response_model=JobCardOut)
async def assign_technician(
    job_card_id: str,
    body: TechnicianAssign,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    card = await roster.assign(db, actor, job_card_id, body.technician_id)
    return JobCardOut.model_validate(card)


@router.delete("/{job_card_id}/technicians/{technician_id}", response_model=JobCardOut)
async def remove_technician(
    job_card_id: str,
    technician_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    card = await roster.remove(db, actor, job_card_id, technician_id)
    return JobCardOut.model_validate(card)


@router.get("/{job_card_id}/timesheets", response_model=list[TimesheetOut])
async def list_job_card_timesheets(
    job_card_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    await job_cards.get_job_card(db, job_card_id)
    return [TimesheetOut.model_validate(t) for t in await timesheets.list_timesheets(db, job_card_id)]
