"""Pydantic schemas for job cards and their technician roster."""

from datetime import datetime

from pydantic import BaseModel, field_validator

from jobflow.models.job_card import JobCardStatus


class JobCardCreate(BaseModel):
    name: str
    client_id: str
    vehicle_id: str
    service_advisor_id: str | None = None
    supervisor_id: str | None = None
    state_checklist_id: str | None = None
    service_checklist_id: str | None = None
    control_checklist_id: str | None = None
    priority: bool = False
    estimated_completion: datetime | None = None
    deadline: datetime | None = None
    technician_ids: list[str] = []

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name must not be blank")
        return v.strip()


class StatusChange(BaseModel):
    status: JobCardStatus


class FreezeRequest(BaseModel):
    reason: str | None = None


class CloseRequest(BaseModel):
    notes: str | None = None


class PriorityRequest(BaseModel):
    priority: bool


class TechnicianAssign(BaseModel):
    technician_id: str


class JobCardOut(BaseModel):
    id: str
    number: str
    name: str
    client_id: str
    vehicle_id: str
    service_advisor_id: str | None = None
    supervisor_id: str | None = None
    status: JobCardStatus
    frozen_from: JobCardStatus | None = None
    priority: bool
    technician_ids: list[str]
    date_in: datetime
    estimated_completion: datetime | None = None
    deadline: datetime | None = None
    frozen_at: datetime | None = None
    freeze_reason: str | None = None
    closed_at: datetime | None = None
    close_notes: str | None = None
    version: int
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("technician_ids", mode="before")
    @classmethod
    def sorted_ids(cls, v) -> list[str]:
        return sorted(v)
