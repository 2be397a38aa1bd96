"""Role-based permission table for the job execution workflow.

Design:
  - Each role has a fixed set of permissions, declared here (not in DB).
  - Services call `ensure_permitted(actor, perm)` as their first check,
    before any entity lookup or state check.
  - Routers never check roles themselves; the service is authoritative.

Permission naming: `<resource>.<action>`
  Resources: requisition, jobcard, timesheet, invoice
"""

from __future__ import annotations

from dataclasses import dataclass

from jobflow.models.employee import EmployeeRole
from jobflow.services.errors import ForbiddenError


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    # Parts requisitions
    "requisition.create",
    "requisition.read",
    "requisition.approve",
    "requisition.disburse",
    "requisition.reject",
    "requisition.mark_not_available",
    "requisition.mark_used",

    # Job cards
    "jobcard.create",
    "jobcard.status",
    "jobcard.freeze",
    "jobcard.close",
    "jobcard.priority",
    "jobcard.assign",

    # Timesheets
    "timesheet.write",

    # Invoicing (strictly restricted)
    "invoice.read",
    "invoice.write",
    "invoice.payment",
}


# ── Role → permissions ──────────────────────────────────────

_JOBCARD_OFFICE = {
    "jobcard.create", "jobcard.status", "jobcard.freeze",
    "jobcard.close", "jobcard.priority", "jobcard.assign",
}

ROLE_DEFAULTS: dict[EmployeeRole, set[str]] = {
    EmployeeRole.ADMIN: ALL_PERMISSIONS.copy(),

    EmployeeRole.MANAGER: {
        "requisition.read",
        *_JOBCARD_OFFICE,
        "timesheet.write",
    },

    EmployeeRole.SERVICE_ADVISOR: {
        "requisition.read", "requisition.mark_used",
        *_JOBCARD_OFFICE,
        "invoice.read", "invoice.write", "invoice.payment",
    },

    EmployeeRole.TECHNICIAN: {
        "requisition.read", "requisition.create", "requisition.mark_used",
        "jobcard.status",
        "timesheet.write",
    },

    EmployeeRole.STORES: {
        "requisition.read",
        "requisition.approve", "requisition.disburse",
        "requisition.reject", "requisition.mark_not_available",
    },
}


# ── Caller ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Actor:
    """The employee issuing a command, with their role resolved server-side."""
    employee_id: str
    role: EmployeeRole


# ── Checks ──────────────────────────────────────────────────

def has_permission(role: EmployeeRole, permission: str) -> bool:
    """Check if a role grants a specific permission."""
    return permission in ROLE_DEFAULTS.get(role, set())


def ensure_permitted(actor: Actor, permission: str) -> None:
    """Raise ForbiddenError unless the actor's role grants `permission`."""
    if not has_permission(actor.role, permission):
        raise ForbiddenError(
            f"Role {actor.role.value} may not perform '{permission}'"
        )
