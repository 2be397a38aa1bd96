"""Quantity ledger for parts requisitions.

Every requisition carries four counters that only ever move forward
through the chain

    requested ≥ approved ≥ disbursed ≥ used ≥ 0

A transition that sets one of them calls ``check_within`` first (the new
value must be a positive integer no larger than the previous stage) and
``verify_chain`` just before flush.  Nothing here touches the database.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from jobflow.services.errors import InvalidQuantityError

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class QuantityLedger:
    requested: int
    approved: int = 0
    disbursed: int = 0
    used: int = 0

    @classmethod
    def of(cls, requisition) -> "QuantityLedger":
        return cls(
            requested=requisition.requested_quantity,
            approved=requisition.approved_quantity,
            disbursed=requisition.disbursed_quantity,
            used=requisition.used_quantity,
        )

    @property
    def is_consistent(self) -> bool:
        return self.requested > 0 and self.requested >= self.approved >= self.disbursed >= self.used >= 0


def check_positive(quantity, label: str) -> int:
    """Transition quantities are positive integers; bools are not integers here."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(f"{label} must be a positive whole number, got {quantity!r}")
    return quantity


def check_within(
    quantity,
    upper_bound: int,
    exceeds_error: type[InvalidQuantityError],
    *,
    label: str,
    bound_label: str,
) -> int:
    """Require ``0 < quantity <= upper_bound``, raising the stage-specific error."""
    check_positive(quantity, label)
    if quantity > upper_bound:
        raise exceeds_error(
            f"{label} ({quantity}) exceeds {bound_label} ({upper_bound})"
        )
    return quantity


def verify_chain(requisition) -> None:
    ledger = QuantityLedger.of(requisition)
    if not ledger.is_consistent:
        raise InvalidQuantityError(
            "Quantity chain broken: "
            f"requested={ledger.requested} approved={ledger.approved} "
            f"disbursed={ledger.disbursed} used={ledger.used}"
        )


def compute_total_cost(used_quantity: int, unit_cost) -> Decimal:
    return (Decimal(used_quantity) * Decimal(str(unit_cost))).quantize(
        TWO_PLACES, rounding=ROUND_HALF_UP
    )
