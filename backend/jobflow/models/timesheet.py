"""Timesheet: a technician's clock-in/clock-out against a job card.

An open timesheet has ``clock_out_at`` unset.  ``hours_worked`` is filled
on clock-out and rounded to two decimals.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.database import Base


class Timesheet(Base):
    __tablename__ = "timesheets"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    job_card_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("job_cards.id"), nullable=False, index=True
    )
    technician_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("employees.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    report: Mapped[str | None] = mapped_column(Text)

    clock_in_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    clock_out_at: Mapped[datetime | None] = mapped_column(DateTime)
    hours_worked: Mapped[float | None] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    @property
    def is_open(self) -> bool:
        return self.clock_out_at is None
