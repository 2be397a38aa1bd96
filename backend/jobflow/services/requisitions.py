"""Parts requisition workflow.

    REQUESTED → APPROVED → DISBURSED → USED | PARTIALLY_USED
    REQUESTED | APPROVED → REJECTED | NOT_AVAILABLE

Every transition checks, in this order:

    1. role            (ForbiddenError)
    2. lookup          (NotFoundError)
    3. job card closed (JobCardClosedError)
    4. source state    (InvalidStateError)
    5. quantity        (InvalidQuantityError and its QuantityExceeds* kinds)

and only then mutates.  The requisition row is locked FOR UPDATE and its
job card FOR SHARE, so a close and a transition on the same card cannot
interleave.  Disbursement takes stock through a conditional UPDATE on
the product; if anything after that fails, the caller's rollback returns
the stock.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.permissions import Actor, ensure_permitted
from jobflow.models.job_card import JobCard, JobCardStatus
from jobflow.models.requisition import (
    CONSUMED_STATUSES,
    PartRequisition,
    RequisitionStatus,
)
from jobflow.services import inventory
from jobflow.services.errors import (
    InvalidStateError,
    JobCardClosedError,
    JobCardFrozenError,
    NotFoundError,
    QuantityExceedsApprovalError,
    QuantityExceedsDisbursedError,
    QuantityExceedsRequestError,
    ReasonRequiredError,
)
from jobflow.services.ledger import check_positive, check_within, compute_total_cost, verify_chain
from jobflow.utils.activity import log_activity
from jobflow.utils.locks import flush_versioned, lock_row

logger = logging.getLogger(__name__)

PENDING_STATUSES = (RequisitionStatus.REQUESTED, RequisitionStatus.APPROVED)


# ── Helpers ──────────────────────────────────────────────────


async def _load_for_transition(
    db: AsyncSession,
    requisition_id: str,
) -> tuple[PartRequisition, JobCard]:
    req = await lock_row(db, PartRequisition, requisition_id)
    if not req:
        raise NotFoundError("Requisition", requisition_id)

    card = await lock_row(db, JobCard, req.job_card_id, read=True)
    if not card:
        raise NotFoundError("Job card", req.job_card_id)
    if card.status == JobCardStatus.CLOSED:
        raise JobCardClosedError(
            f"Job card {card.number} is closed; requisition {req.id} is frozen"
        )
    return req, card


def _require_status(req: PartRequisition, *allowed: RequisitionStatus) -> None:
    if req.status not in allowed:
        names = " or ".join(s.value for s in allowed)
        raise InvalidStateError(
            f"Requisition is {req.status.value}; expected {names}"
        )


async def _commit_transition(
    db: AsyncSession,
    actor: Actor,
    req: PartRequisition,
    card: JobCard,
    action: str,
    summary: str,
) -> PartRequisition:
    verify_chain(req)
    await flush_versioned(db, "requisition")
    await log_activity(
        db, actor,
        action=action,
        entity_type="requisition",
        entity_id=req.id,
        entity_code=card.number,
        summary=summary,
        details={
            "status": req.status.value,
            "requested": req.requested_quantity,
            "approved": req.approved_quantity,
            "disbursed": req.disbursed_quantity,
            "used": req.used_quantity,
        },
    )
    logger.info("Requisition %s on %s: %s", req.id, card.number, summary)
    return req


# ── Create ───────────────────────────────────────────────────


async def create_requisition(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    product_id: str,
    requested_quantity: int,
    notes: str | None = None,
) -> PartRequisition:
    ensure_permitted(actor, "requisition.create")

    card = await lock_row(db, JobCard, job_card_id, read=True)
    if not card:
        raise NotFoundError("Job card", job_card_id)
    if card.status == JobCardStatus.CLOSED:
        raise JobCardClosedError(f"Job card {card.number} is closed")
    if card.status == JobCardStatus.FROZEN:
        raise JobCardFrozenError(f"Job card {card.number} is frozen")

    check_positive(requested_quantity, "Requested quantity")
    product = await inventory.get_product(db, product_id)

    req = PartRequisition(
        job_card_id=card.id,
        product_id=product.id,
        requested_quantity=requested_quantity,
        approved_quantity=0,
        disbursed_quantity=0,
        used_quantity=0,
        unit_cost=product.unit_cost,
        status=RequisitionStatus.REQUESTED,
        notes=notes,
        requested_by_id=actor.employee_id,
        requested_by_role=actor.role,
        requested_at=datetime.utcnow(),
    )
    db.add(req)
    return await _commit_transition(
        db, actor, req, card, "created",
        f"Requested {requested_quantity} x {product.code}",
    )


# ── Transitions ──────────────────────────────────────────────


async def approve(
    db: AsyncSession,
    actor: Actor,
    requisition_id: str,
    approved_quantity: int,
    notes: str | None = None,
) -> PartRequisition:
    ensure_permitted(actor, "requisition.approve")
    req, card = await _load_for_transition(db, requisition_id)
    _require_status(req, RequisitionStatus.REQUESTED)
    # Zero is refused; declining a request is reject() or mark_not_available().
    check_within(
        approved_quantity, req.requested_quantity, QuantityExceedsRequestError,
        label="Approved quantity", bound_label="requested quantity",
    )

    req.approved_quantity = approved_quantity
    req.status = RequisitionStatus.APPROVED
    req.approved_by_id = actor.employee_id
    req.approved_at = datetime.utcnow()
    req.status_notes = notes
    return await _commit_transition(
        db, actor, req, card, "approved",
        f"Approved {approved_quantity} of {req.requested_quantity}",
    )


async def disburse(
    db: AsyncSession,
    actor: Actor,
    requisition_id: str,
    disbursed_quantity: int,
    notes: str | None = None,
) -> PartRequisition:
    ensure_permitted(actor, "requisition.disburse")
    req, card = await _load_for_transition(db, requisition_id)
    _require_status(req, RequisitionStatus.APPROVED)
    check_within(
        disbursed_quantity, req.approved_quantity, QuantityExceedsApprovalError,
        label="Disbursed quantity", bound_label="approved quantity",
    )

    await inventory.decrement_stock(db, req.product_id, disbursed_quantity)

    req.disbursed_quantity = disbursed_quantity
    req.status = RequisitionStatus.DISBURSED
    req.disbursed_by_id = actor.employee_id
    req.disbursed_at = datetime.utcnow()
    req.status_notes = notes
    return await _commit_transition(
        db, actor, req, card, "disbursed",
        f"Disbursed {disbursed_quantity} of {req.approved_quantity}",
    )


async def approve_and_disburse(
    db: AsyncSession,
    actor: Actor,
    requisition_id: str,
    approved_quantity: int,
    disbursed_quantity: int,
    notes: str | None = None,
) -> PartRequisition:
    """Approve then disburse inside the caller's single transaction."""
    ensure_permitted(actor, "requisition.approve")
    ensure_permitted(actor, "requisition.disburse")
    await approve(db, actor, requisition_id, approved_quantity, notes)
    return await disburse(db, actor, requisition_id, disbursed_quantity, notes)


async def mark_used(
    db: AsyncSession,
    actor: Actor,
    requisition_id: str,
    used_quantity: int,
    notes: str | None = None,
) -> PartRequisition:
    ensure_permitted(actor, "requisition.mark_used")
    req, card = await _load_for_transition(db, requisition_id)
    _require_status(req, RequisitionStatus.DISBURSED)
    check_within(
        used_quantity, req.disbursed_quantity, QuantityExceedsDisbursedError,
        label="Used quantity", bound_label="disbursed quantity",
    )

    req.used_quantity = used_quantity
    req.status = (
        RequisitionStatus.USED
        if used_quantity == req.disbursed_quantity
        else RequisitionStatus.PARTIALLY_USED
    )
    req.total_cost = compute_total_cost(used_quantity, req.unit_cost)
    req.used_by_id = actor.employee_id
    req.used_at = datetime.utcnow()
    req.status_notes = notes
    return await _commit_transition(
        db, actor, req, card, "marked_used",
        f"Used {used_quantity} of {req.disbursed_quantity} ({req.status.value})",
    )


async def _terminate(
    db: AsyncSession,
    actor: Actor,
    requisition_id: str,
    reason: str | None,
    *,
    permission: str,
    target: RequisitionStatus,
    action: str,
) -> PartRequisition:
    ensure_permitted(actor, permission)
    req, card = await _load_for_transition(db, requisition_id)
    _require_status(req, *PENDING_STATUSES)
    reason = (reason or "").strip()
    if not reason:
        raise ReasonRequiredError(f"A reason is required to mark a requisition {target.value}")

    req.status = target
    req.rejection_reason = reason
    req.status_notes = reason
    return await _commit_transition(db, actor, req, card, action, f"{target.value}: {reason}")


async def reject(db: AsyncSession, actor: Actor, requisition_id: str, reason: str | None) -> PartRequisition:
    return await _terminate(
        db, actor, requisition_id, reason,
        permission="requisition.reject",
        target=RequisitionStatus.REJECTED,
        action="rejected",
    )


async def mark_not_available(
    db: AsyncSession, actor: Actor, requisition_id: str, reason: str | None,
) -> PartRequisition:
    return await _terminate(
        db, actor, requisition_id, reason,
        permission="requisition.mark_not_available",
        target=RequisitionStatus.NOT_AVAILABLE,
        action="not_available",
    )


# ── Reads ────────────────────────────────────────────────────


async def get_requisition(db: AsyncSession, actor: Actor, requisition_id: str) -> PartRequisition:
    ensure_permitted(actor, "requisition.read")
    req = await db.get(PartRequisition, requisition_id)
    if not req:
        raise NotFoundError("Requisition", requisition_id)
    return req


async def list_requisitions(
    db: AsyncSession,
    actor: Actor,
    *,
    job_card_id: str | None = None,
    pending_only: bool = False,
    mine: bool = False,
) -> list[PartRequisition]:
    """By job card, pending (REQUESTED/APPROVED), or raised by the caller."""
    ensure_permitted(actor, "requisition.read")
    stmt = select(PartRequisition)
    if job_card_id:
        stmt = stmt.where(PartRequisition.job_card_id == job_card_id)
    if pending_only:
        stmt = stmt.where(PartRequisition.status.in_(PENDING_STATUSES))
    if mine:
        stmt = stmt.where(PartRequisition.requested_by_id == actor.employee_id)
    result = await db.execute(stmt.order_by(PartRequisition.requested_at.desc()))
    return list(result.scalars().all())


async def list_used_parts(db: AsyncSession, job_card_id: str) -> list[PartRequisition]:
    """Consumed requisitions for a job card, oldest first (invoice line order)."""
    result = await db.execute(
        select(PartRequisition)
        .where(
            PartRequisition.job_card_id == job_card_id,
            PartRequisition.status.in_(CONSUMED_STATUSES),
        )
        .order_by(PartRequisition.requested_at)
    )
    return list(result.scalars().all())


async def summarize(db: AsyncSession, actor: Actor, job_card_id: str | None = None) -> dict:
    ensure_permitted(actor, "requisition.read")
    stmt = select(
        PartRequisition.status,
        func.count(PartRequisition.id),
        func.coalesce(func.sum(PartRequisition.total_cost), 0),
    ).group_by(PartRequisition.status)
    if job_card_id:
        stmt = stmt.where(PartRequisition.job_card_id == job_card_id)

    counts: dict[RequisitionStatus, int] = {}
    total_value = Decimal("0")
    for status, count, value in (await db.execute(stmt)).all():
        counts[status] = count
        if status in CONSUMED_STATUSES:
            total_value += Decimal(str(value))

    return {
        "total": sum(counts.values()),
        "pending_approval": counts.get(RequisitionStatus.REQUESTED, 0),
        "disbursed": counts.get(RequisitionStatus.DISBURSED, 0),
        "used": sum(counts.get(s, 0) for s in CONSUMED_STATUSES),
        "not_available": counts.get(RequisitionStatus.NOT_AVAILABLE, 0),
        "total_value": float(total_value),
    }
