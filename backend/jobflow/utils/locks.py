"""Row locking, version checks, and field locks.

Three concerns share this module because every guarded transition uses
all of them in the same order:

  lock_row()         load the entity with SELECT ... FOR UPDATE (FOR SHARE
                     when read=True), always refreshing the identity map
  flush_versioned()  flush, turning a stale ``version`` into ConflictError
  get_*_locks()      report which fields may no longer be edited, without
                     raising; the caller decides based on what it updates
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from jobflow.models.invoice import InvoiceStatus
from jobflow.services.errors import ConflictError

T = TypeVar("T")


# ── Row access ───────────────────────────────────────────────


async def lock_row(
    db: AsyncSession,
    model: type[T],
    ident: str,
    *,
    read: bool = False,
) -> T | None:
    """Load one row for a read-modify-write.

    ``populate_existing`` makes sure an object already in the session is
    overwritten with the committed row, so state checks never run against
    a stale copy.  Backends without row locks (SQLite) ignore FOR UPDATE.
    """
    result = await db.execute(
        select(model)
        .where(model.id == ident)
        .with_for_update(read=read)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def flush_versioned(db: AsyncSession, entity_label: str = "record") -> None:
    """Flush pending changes; a lost version race becomes ConflictError."""
    try:
        await db.flush()
    except StaleDataError as e:
        raise ConflictError(
            f"The {entity_label} was changed by another request. Reload and retry."
        ) from e


# ── Field locks ──────────────────────────────────────────────


@dataclass
class FieldLock:
    """A single locked field with reason and unlock instructions."""
    field: str
    reason: str
    blocker_type: str   # "invoice_status"
    blocker_ref: str    # human-readable reference (e.g. "INV-000014")
    unlock_hint: str


@dataclass
class LockInfo:
    """Lock state for an entity.  Empty locked_fields means nothing locked."""
    locked_fields: dict[str, FieldLock] = field(default_factory=dict)

    @property
    def is_locked(self) -> bool:
        return len(self.locked_fields) > 0

    def check_update(self, updating_fields: set[str]) -> FieldLock | None:
        """Return the first FieldLock that conflicts, or None."""
        for f in sorted(updating_fields):
            if f in self.locked_fields:
                return self.locked_fields[f]
        return None

    def locked_field_names(self) -> list[str]:
        return list(self.locked_fields.keys())


def _add_locks(
    info: LockInfo,
    field_names: list[str],
    reason: str,
    blocker_type: str,
    blocker_ref: str,
    unlock_hint: str,
) -> None:
    for name in field_names:
        info.locked_fields[name] = FieldLock(
            field=name,
            reason=f"Cannot edit {name}: {reason}",
            blocker_type=blocker_type,
            blocker_ref=blocker_ref,
            unlock_hint=unlock_hint,
        )


# ── Invoice locks (status-based, no DB query needed) ──────────


INVOICE_FINANCIAL_FIELDS = [
    "items", "tax_rate", "discount_percentage",
    "client_id", "vehicle_id", "invoice_date", "due_date",
]


def get_invoice_locks(invoice) -> LockInfo:
    """Financial fields freeze once an invoice is PAID or CANCELLED."""
    info = LockInfo()

    if invoice.status not in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
        return info

    if invoice.status == InvoiceStatus.PAID:
        hint = "Refund a payment to reopen the balance first."
    else:
        hint = "Create a new invoice instead."

    _add_locks(
        info,
        INVOICE_FINANCIAL_FIELDS,
        reason=f"Invoice {invoice.number} is {invoice.status.value}",
        blocker_type="invoice_status",
        blocker_ref=invoice.number,
        unlock_hint=hint,
    )
    return info
