"""Technician roster: the set of technicians assigned to a job card.

The roster is a set.  Assigning someone already on it is an error, never
a second row (the table also carries a unique constraint).  Changes bump
the job card's version so they serialize with freeze/close.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.permissions import Actor, ensure_permitted
from jobflow.models.employee import Employee, EmployeeRole
from jobflow.models.job_card import JobCard, JobCardStatus, JobCardTechnician
from jobflow.services.employees import get_employee
from jobflow.services.errors import (
    AlreadyAssignedError,
    InvalidRoleError,
    JobCardClosedError,
    NotAssignedError,
    NotFoundError,
)
from jobflow.utils.activity import log_activity
from jobflow.utils.locks import flush_versioned, lock_row

logger = logging.getLogger(__name__)


async def check_assignable(db: AsyncSession, technician_id: str) -> Employee:
    """Only active employees with the TECHNICIAN role go on a roster."""
    employee = await get_employee(db, technician_id)
    if employee.role != EmployeeRole.TECHNICIAN or not employee.is_active:
        raise InvalidRoleError(
            f"{employee.full_name} is not an active technician ({employee.role.value})"
        )
    return employee


async def _load_open_card(db: AsyncSession, job_card_id: str) -> JobCard:
    card = await lock_row(db, JobCard, job_card_id)
    if not card:
        raise NotFoundError("Job card", job_card_id)
    if card.status == JobCardStatus.CLOSED:
        raise JobCardClosedError(f"Job card {card.number} is closed")
    return card


async def assign(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    technician_id: str,
) -> JobCard:
    ensure_permitted(actor, "jobcard.assign")
    card = await _load_open_card(db, job_card_id)
    employee = await check_assignable(db, technician_id)

    if technician_id in card.technician_ids:
        raise AlreadyAssignedError(f"{employee.full_name} is already on {card.number}")

    card.technicians.append(
        JobCardTechnician(technician_id=technician_id, assigned_by=actor.employee_id)
    )
    card.updated_at = datetime.utcnow()
    await flush_versioned(db, "job card")

    await log_activity(
        db, actor,
        action="technician_assigned",
        entity_type="job_card",
        entity_id=card.id,
        entity_code=card.number,
        summary=f"Assigned {employee.full_name}",
        details={"technician_id": technician_id},
    )
    logger.info("Roster %s: +%s", card.number, technician_id)
    return card


async def remove(
    db: AsyncSession,
    actor: Actor,
    job_card_id: str,
    technician_id: str,
) -> JobCard:
    ensure_permitted(actor, "jobcard.assign")
    card = await _load_open_card(db, job_card_id)

    entry = next((t for t in card.technicians if t.technician_id == technician_id), None)
    if entry is None:
        raise NotAssignedError(f"Technician {technician_id} is not on {card.number}")

    card.technicians.remove(entry)
    card.updated_at = datetime.utcnow()
    await flush_versioned(db, "job card")

    await log_activity(
        db, actor,
        action="technician_removed",
        entity_type="job_card",
        entity_id=card.id,
        entity_code=card.number,
        summary=f"Removed technician {technician_id}",
        details={"technician_id": technician_id},
    )
    logger.info("Roster %s: -%s", card.number, technician_id)
    return card
