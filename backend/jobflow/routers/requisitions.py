"""Parts requisitions: request, approve, disburse, consume.

Endpoints:
    POST /api/requisitions/                             Create a requisition
    GET  /api/requisitions/                             List (by job card / pending / mine)
    GET  /api/requisitions/summary                      Counts and consumed value
    GET  /api/requisitions/used-parts/{job_card_id}     Consumed parts for invoicing
    GET  /api/requisitions/{id}                         Requisition detail
    POST /api/requisitions/{id}/approve                 Approve
    POST /api/requisitions/{id}/disburse                Disburse from stores
    POST /api/requisitions/{id}/approve-and-disburse    Both, atomically
    POST /api/requisitions/{id}/mark-used               Record consumption
    POST /api/requisitions/{id}/reject                  Reject (reason required)
    POST /api/requisitions/{id}/mark-not-available      Not available (reason required)
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.deps import get_current_actor
from jobflow.auth.permissions import Actor, ensure_permitted
from jobflow.database import get_db
from jobflow.schemas.common import ReasonBody
from jobflow.schemas.requisition import (
    ApproveAndDisburseRequest,
    ApproveRequest,
    DisburseRequest,
    MarkUsedRequest,
    RequisitionCreate,
    RequisitionOut,
    RequisitionSummary,
)
from jobflow.services import requisitions
from jobflow.utils.cache import invalidate_cache

router = APIRouter()


# ── POST /api/requisitions/ ──────────────────────────────────

@router.post("/", response_model=RequisitionOut, status_code=status.HTTP_201_CREATED)
async def create_requisition(
    body: RequisitionCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    req = await requisitions.create_requisition(
        db, actor, body.job_card_id, body.product_id, body.requested_quantity, body.notes,
    )
    return RequisitionOut.model_validate(req)


# ── Reads ────────────────────────────────────────────────────

@router.get("/", response_model=list[RequisitionOut])
async def list_requisitions(
    job_card_id: str | None = Query(None),
    pending: bool = Query(False),
    mine: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    reqs = await requisitions.list_requisitions(
        db, actor, job_card_id=job_card_id, pending_only=pending, mine=mine,
    )
    return [RequisitionOut.model_validate(r) for r in reqs]


@router.get("/summary", response_model=RequisitionSummary)
async def requisition_summary(
    job_card_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return await requisitions.summarize(db, actor, job_card_id)


@router.get("/used-parts/{job_card_id}", response_model=list[RequisitionOut])
async def used_parts(
    job_card_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    ensure_permitted(actor, "requisition.read")
    return [RequisitionOut.model_validate(r) for r in await requisitions.list_used_parts(db, job_card_id)]


@router.get("/{requisition_id}", response_model=RequisitionOut)
async def get_requisition(
    requisition_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return RequisitionOut.model_validate(
        await requisitions.get_requisition(db, actor, requisition_id)
    )


# ── Transitions ──────────────────────────────────────────────

@router.post("/{requisition_id}/approve", response_model=RequisitionOut)
async def approve_requisition(
    requisition_id: str,
    body: ApproveRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    req = await requisitions.approve(db, actor, requisition_id, body.approved_quantity, body.notes)
    return RequisitionOut.model_validate(req)


@router.post("/{requisition_id}/disburse", response_model=RequisitionOut)
async def disburse_requisition(
    requisition_id: str,
    body: DisburseRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    req = await requisitions.disburse(db, actor, requisition_id, body.disbursed_quantity, body.notes)
    # Runs after the transaction commits; stock shown in search refreshes
    background_tasks.add_task(invalidate_cache, "products:*")
    return RequisitionOut.model_validate(req)


@router.post("/{requisition_id}/approve-and-disburse", response_model=RequisitionOut)
async def approve_and_disburse_requisition(
    requisition_id: str,
    body: ApproveAndDisburseRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    req = await requisitions.approve_and_disburse(
        db, actor, requisition_id,
        body.approved_quantity, body.disbursed_quantity, body.notes,
    )
    background_tasks.add_task(invalidate_cache, "products:*")
    return RequisitionOut.model_validate(req)


@router.post("/{requisition_id}/mark-used", response_model=RequisitionOut)
async def mark_requisition_used(
    requisition_id: str,
    body: MarkUsedRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    req = await requisitions.mark_used(db, actor, requisition_id, body.used_quantity, body.notes)
    return RequisitionOut.model_validate(req)


@router.post("/{requisition_id}/reject", response_model=RequisitionOut)
async def reject_requisition(
    requisition_id: str,
    body: ReasonBody,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    req = await requisitions.reject(db, actor, requisition_id, body.reason)
    return RequisitionOut.model_validate(req)


@router.post("/{requisition_id}/mark-not-available", response_model=RequisitionOut)
async def mark_requisition_not_available(
    requisition_id: str,
    body: ReasonBody,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    req = await requisitions.mark_not_available(db, actor, requisition_id, body.reason)
    return RequisitionOut.model_validate(req)
