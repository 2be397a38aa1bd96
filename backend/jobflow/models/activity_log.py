"""ActivityLog: immutable audit trail of every committed workflow transition.

Records who did what, when, and to which entity.  Timestamps on the
entities themselves are convenience copies; this table is the history.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.database import Base


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Who ────────────────────────────────────────────────────
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    actor_role: Mapped[str] = mapped_column(String(30), nullable=False)

    # ── What ───────────────────────────────────────────────────
    # created | status_changed | frozen | unfrozen | closed | priority_set |
    # technician_assigned | technician_removed | approved | disbursed |
    # marked_used | rejected | not_available | clocked_in | clocked_out |
    # sent | payment_added | payment_refunded | cancelled | marked_overdue
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # ── Target ─────────────────────────────────────────────────
    # job_card | requisition | invoice | timesheet
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(36))
    entity_code: Mapped[str | None] = mapped_column(String(100))

    # ── Context ────────────────────────────────────────────────
    summary: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict | None] = mapped_column(JSON)

    # ── Timestamp ──────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
