"""PartRequisition: a technician's request for parts against a job card.

Lifecycle:
    REQUESTED → APPROVED → DISBURSED → USED | PARTIALLY_USED
    REQUESTED | APPROVED → REJECTED | NOT_AVAILABLE

Quantities obey requested ≥ approved ≥ disbursed ≥ used ≥ 0 at every
committed state.  The service layer checks this before each flush and the
table carries matching CHECK constraints.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint, DateTime, Enum as SAEnum, ForeignKey, Integer,
    Numeric, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.database import Base
from jobflow.models.employee import EmployeeRole


class RequisitionStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    DISBURSED = "DISBURSED"
    USED = "USED"
    PARTIALLY_USED = "PARTIALLY_USED"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    REJECTED = "REJECTED"


TERMINAL_STATUSES = frozenset({
    RequisitionStatus.USED,
    RequisitionStatus.PARTIALLY_USED,
    RequisitionStatus.NOT_AVAILABLE,
    RequisitionStatus.REJECTED,
})

CONSUMED_STATUSES = frozenset({
    RequisitionStatus.USED,
    RequisitionStatus.PARTIALLY_USED,
})


class PartRequisition(Base):
    __tablename__ = "part_requisitions"
    __table_args__ = (
        CheckConstraint("requested_quantity > 0", name="ck_requisition_requested_positive"),
        CheckConstraint(
            "approved_quantity >= 0 AND approved_quantity <= requested_quantity",
            name="ck_requisition_approved_bounds",
        ),
        CheckConstraint(
            "disbursed_quantity >= 0 AND disbursed_quantity <= approved_quantity",
            name="ck_requisition_disbursed_bounds",
        ),
        CheckConstraint(
            "used_quantity >= 0 AND used_quantity <= disbursed_quantity",
            name="ck_requisition_used_bounds",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Links ────────────────────────────────────────────────
    job_card_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("job_cards.id"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False, index=True
    )

    # ── Quantities ───────────────────────────────────────────
    requested_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disbursed_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Cost ─────────────────────────────────────────────────
    # unit_cost is snapshotted from the product at request time
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    # ── Status ───────────────────────────────────────────────
    status: Mapped[RequisitionStatus] = mapped_column(
        SAEnum(RequisitionStatus), default=RequisitionStatus.REQUESTED,
        nullable=False, index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text)
    status_notes: Mapped[str | None] = mapped_column(Text)  # latest transition note
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # ── Audit ────────────────────────────────────────────────
    requested_by_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    requested_by_role: Mapped[EmployeeRole] = mapped_column(SAEnum(EmployeeRole), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    approved_by_id: Mapped[str | None] = mapped_column(String(36))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime)
    disbursed_by_id: Mapped[str | None] = mapped_column(String(36))
    disbursed_at: Mapped[datetime | None] = mapped_column(DateTime)
    used_by_id: Mapped[str | None] = mapped_column(String(36))
    used_at: Mapped[datetime | None] = mapped_column(DateTime)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
