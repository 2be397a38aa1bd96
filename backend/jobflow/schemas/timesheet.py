"""Pydantic schemas for technician timesheets."""

from datetime import datetime

from pydantic import BaseModel


class ClockInRequest(BaseModel):
    job_card_id: str
    technician_id: str | None = None  # defaults to the caller
    title: str


class ClockOutRequest(BaseModel):
    report: str | None = None


class TimesheetOut(BaseModel):
    id: str
    job_card_id: str
    technician_id: str
    title: str
    report: str | None = None
    clock_in_at: datetime
    clock_out_at: datetime | None = None
    hours_worked: float | None = None

    model_config = {"from_attributes": True}
