"""JobCard: one unit of repair work on a client's vehicle.

The lifecycle is an explicit enum column, not something inferred from
which timestamps happen to be set:

    OPEN → IN_PROGRESS → {FROZEN ↔ IN_PROGRESS} → COMPLETED → CLOSED

``frozen_at`` / ``closed_at`` are kept as audit metadata only.  Technicians
are a set held in ``job_card_technicians`` (unique per job card).
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Enum as SAEnum, ForeignKey, Integer,
    String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from jobflow.database import Base


class JobCardStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    FROZEN = "FROZEN"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"


class JobCard(Base):
    __tablename__ = "job_cards"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── External references (opaque ids) ─────────────────────
    client_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    vehicle_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    service_advisor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("employees.id"))
    supervisor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("employees.id"))
    state_checklist_id: Mapped[str | None] = mapped_column(String(36))
    service_checklist_id: Mapped[str | None] = mapped_column(String(36))
    control_checklist_id: Mapped[str | None] = mapped_column(String(36))

    # ── Lifecycle ────────────────────────────────────────────
    status: Mapped[JobCardStatus] = mapped_column(
        SAEnum(JobCardStatus), default=JobCardStatus.OPEN, nullable=False, index=True
    )
    # Active state to return to on unfreeze
    frozen_from: Mapped[JobCardStatus | None] = mapped_column(SAEnum(JobCardStatus))
    priority: Mapped[bool] = mapped_column(Boolean, default=False)

    # ── Dates ────────────────────────────────────────────────
    date_in: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    estimated_completion: Mapped[datetime | None] = mapped_column(DateTime)
    deadline: Mapped[datetime | None] = mapped_column(DateTime)
    frozen_at: Mapped[datetime | None] = mapped_column(DateTime)
    freeze_reason: Mapped[str | None] = mapped_column(Text)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime)
    close_notes: Mapped[str | None] = mapped_column(Text)

    # ── Metadata ─────────────────────────────────────────────
    created_by: Mapped[str | None] = mapped_column(String(36))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    technicians = relationship(
        "JobCardTechnician",
        back_populates="job_card",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def technician_ids(self) -> set[str]:
        return {t.technician_id for t in self.technicians}


class JobCardTechnician(Base):
    __tablename__ = "job_card_technicians"
    __table_args__ = (
        UniqueConstraint("job_card_id", "technician_id", name="uq_job_card_technician"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    job_card_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("job_cards.id"), nullable=False, index=True
    )
    technician_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("employees.id"), nullable=False
    )
    assigned_by: Mapped[str | None] = mapped_column(String(36))
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    job_card = relationship("JobCard", back_populates="technicians")
