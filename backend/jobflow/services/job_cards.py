"""Job card lifecycle.

    OPEN | IN_PROGRESS | COMPLETED, freely among themselves
    COMPLETED → CLOSED
    OPEN | IN_PROGRESS → FROZEN → (back to where it was)
    any non-closed state → CLOSED   (explicit close)

The status column is the only source of truth; ``frozen_at`` and
``closed_at`` are audit stamps.  Every transition runs role check →
lookup → state check, mutates, and flushes under the row's version.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.permissions import Actor, ensure_permitted
from jobflow.models.job_card import JobCard, JobCardStatus, JobCardTechnician
from jobflow.schemas.job_card import JobCardCreate
from jobflow.services.errors import (
    AlreadyClosedError,
    AlreadyFrozenError,
    InvalidTransitionError,
    JobCardClosedError,
    NotFoundError,
    NotFrozenError,
)
from jobflow.services.roster import check_assignable
from jobflow.services.timesheets import end_open_timesheets
from jobflow.utils.activity import log_activity
from jobflow.utils.locks import flush_versioned, lock_row
from jobflow.utils.numbering import generate_number

logger = logging.getLogger(__name__)

# Targets for change_status, reachable from each other.  FROZEN and CLOSED are
# entered and left only through their own operations.
ACTIVE_STATUSES = frozenset({
    JobCardStatus.OPEN,
    JobCardStatus.IN_PROGRESS,
    JobCardStatus.COMPLETED,
})

FREEZABLE = frozenset({JobCardStatus.OPEN, JobCardStatus.IN_PROGRESS})


async def load_job_card(db: AsyncSession, job_card_id: str, *, read: bool = False) -> JobCard:
    card = await lock_row(db, JobCard, job_card_id, read=read)
    if not card:
        raise NotFoundError("Job card", job_card_id)
    return card


def ensure_open(card: JobCard) -> None:
    if card.status == JobCardStatus.CLOSED:
        raise JobCardClosedError(f"Job card {card.number} is closed")


async def _record(db, actor, card: JobCard, action: str, summary: str, details: dict | None = None):
    await flush_versioned(db, "job card")
    await log_activity(
        db, actor,
        action=action,
        entity_type="job_card",
        entity_id=card.id,
        entity_code=card.number,
        summary=summary,
        details=details,
    )
    logger.info("Job card %s: %s", card.number, summary)


# ── Create ───────────────────────────────────────────────────


async def create_job_card(db: AsyncSession, actor: Actor, body: JobCardCreate) -> JobCard:
    ensure_permitted(actor, "jobcard.create")

    card = JobCard(
        number=await generate_number(db, "job_card"),
        name=body.name,
        client_id=body.client_id,
        vehicle_id=body.vehicle_id,
        service_advisor_id=body.service_advisor_id or actor.employee_id,
        supervisor_id=body.supervisor_id,
        state_checklist_id=body.state_checklist_id,
        service_checklist_id=body.service_checklist_id,
        control_checklist_id=body.control_checklist_id,
        priority=body.priority,
        estimated_completion=body.estimated_completion,
        deadline=body.deadline,
        status=JobCardStatus.OPEN,
        created_by=actor.employee_id,
        technicians=[],
    )
    db.add(card)

    if body.technician_ids:
        for technician_id in dict.fromkeys(body.technician_ids):
            await check_assignable(db, technician_id)
            card.technicians.append(
                JobCardTechnician(technician_id=technician_id, assigned_by=actor.employee_id)
            )

    await _record(db, actor, card, "created", f"Created {card.name}")
    return card


# ── Transitions ──────────────────────────────────────────────


async def change_status(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    target: JobCardStatus,
) -> JobCard:
    ensure_permitted(actor, "jobcard.status")
    card = await load_job_card(db, job_card_id)

    if target not in ACTIVE_STATUSES or card.status not in ACTIVE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot move job card {card.number} from {card.status.value} to {target.value}"
        )
    if target == card.status:
        return card

    previous = card.status
    card.status = target
    await _record(
        db, actor, card, "status_changed",
        f"{previous.value} → {target.value}",
        {"from": previous.value, "to": target.value},
    )
    return card


async def freeze(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    reason: str | None = None,
) -> JobCard:
    ensure_permitted(actor, "jobcard.freeze")
    card = await load_job_card(db, job_card_id)

    ensure_open(card)
    if card.status == JobCardStatus.FROZEN:
        raise AlreadyFrozenError(f"Job card {card.number} is already frozen")
    if card.status not in FREEZABLE:
        raise InvalidTransitionError(
            f"Cannot freeze job card {card.number} from {card.status.value}"
        )

    card.frozen_from = card.status
    card.status = JobCardStatus.FROZEN
    card.frozen_at = datetime.utcnow()
    card.freeze_reason = reason
    await _record(db, actor, card, "frozen", f"Frozen: {reason or 'no reason given'}")
    return card


async def unfreeze(db: AsyncSession, actor: Actor, job_card_id: str) -> JobCard:
    ensure_permitted(actor, "jobcard.freeze")
    card = await load_job_card(db, job_card_id)

    ensure_open(card)
    if card.status != JobCardStatus.FROZEN:
        raise NotFrozenError(f"Job card {card.number} is not frozen")

    card.status = card.frozen_from or JobCardStatus.OPEN
    card.frozen_from = None
    card.frozen_at = None
    await _record(db, actor, card, "unfrozen", f"Unfrozen back to {card.status.value}")
    return card


async def close(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    notes: str | None = None,
) -> JobCard:
    """Close a job card for good.

    Pending requisitions stay as they are; every further transition on
    them fails with JobCardClosedError.  Open timesheets are ended now.
    """
    ensure_permitted(actor, "jobcard.close")
    card = await load_job_card(db, job_card_id)

    if card.status == JobCardStatus.CLOSED:
        raise AlreadyClosedError(f"Job card {card.number} is already closed")

    now = datetime.utcnow()
    previous = card.status
    card.status = JobCardStatus.CLOSED
    card.frozen_from = None
    card.closed_at = now
    card.close_notes = notes
    ended = await end_open_timesheets(db, card.id, now)

    await _record(
        db, actor, card, "closed",
        f"Closed from {previous.value}",
        {"from": previous.value, "timesheets_ended": ended},
    )
    return card


async def set_priority(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    priority: bool,
) -> JobCard:
    ensure_permitted(actor, "jobcard.priority")
    card = await load_job_card(db, job_card_id)
    ensure_open(card)

    if card.priority == priority:
        return card

    card.priority = priority
    await _record(db, actor, card, "priority_set", f"Priority {'on' if priority else 'off'}")
    return card


# ── Reads ────────────────────────────────────────────────────


async def get_job_card(db: AsyncSession, job_card_id: str) -> JobCard:
    card = await db.get(JobCard, job_card_id)
    if not card:
        raise NotFoundError("Job card", job_card_id)
    return card


async def list_job_cards(
    db: AsyncSession,
    status: JobCardStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[JobCard], int]:
    base = select(JobCard)
    if status is not None:
        base = base.where(JobCard.status == status)

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar() or 0
    result = await db.execute(
        base.order_by(JobCard.priority.desc(), JobCard.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total
