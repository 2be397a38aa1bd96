"""Pydantic schemas for parts requisitions.

Quantities are validated as plain integers here; positivity and the
ledger bounds are enforced by the service so that HTTP and direct
callers get the same typed errors.
"""

from datetime import datetime

from pydantic import BaseModel

from jobflow.models.employee import EmployeeRole
from jobflow.models.requisition import RequisitionStatus


class RequisitionCreate(BaseModel):
    job_card_id: str
    product_id: str
    requested_quantity: int
    notes: str | None = None


class ApproveRequest(BaseModel):
    approved_quantity: int
    notes: str | None = None


class DisburseRequest(BaseModel):
    disbursed_quantity: int
    notes: str | None = None


class ApproveAndDisburseRequest(BaseModel):
    approved_quantity: int
    disbursed_quantity: int
    notes: str | None = None


class MarkUsedRequest(BaseModel):
    used_quantity: int
    notes: str | None = None


class RequisitionOut(BaseModel):
    id: str
    job_card_id: str
    product_id: str
    requested_quantity: int
    approved_quantity: int
    disbursed_quantity: int
    used_quantity: int
    unit_cost: float
    total_cost: float | None = None
    status: RequisitionStatus
    notes: str | None = None
    status_notes: str | None = None
    rejection_reason: str | None = None
    requested_by_id: str
    requested_by_role: EmployeeRole
    requested_at: datetime
    approved_by_id: str | None = None
    approved_at: datetime | None = None
    disbursed_by_id: str | None = None
    disbursed_at: datetime | None = None
    used_by_id: str | None = None
    used_at: datetime | None = None
    version: int

    model_config = {"from_attributes": True}


class RequisitionSummary(BaseModel):
    total: int
    pending_approval: int
    disbursed: int
    used: int
    not_available: int
    total_value: float
