"""Quantity ledger checks (no database)."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from jobflow.services.errors import (
    InvalidQuantityError,
    QuantityExceedsApprovalError,
    QuantityExceedsRequestError,
)
from jobflow.services.ledger import (
    QuantityLedger,
    check_positive,
    check_within,
    compute_total_cost,
    verify_chain,
)


def _req(requested, approved=0, disbursed=0, used=0):
    return SimpleNamespace(
        requested_quantity=requested,
        approved_quantity=approved,
        disbursed_quantity=disbursed,
        used_quantity=used,
    )


@pytest.mark.unit
class TestQuantityLedger:

    @pytest.mark.parametrize("counts", [(1, 0, 0, 0), (10, 8, 8, 5), (5, 5, 5, 5), (3, 3, 0, 0)])
    def test_consistent_chains(self, counts):
        assert QuantityLedger(*counts).is_consistent
        verify_chain(_req(*counts))

    @pytest.mark.parametrize("counts", [(0, 0, 0, 0), (5, 6, 0, 0), (5, 5, 6, 0), (5, 5, 4, 5), (5, 0, 0, -1)])
    def test_broken_chains(self, counts):
        assert not QuantityLedger(*counts).is_consistent
        with pytest.raises(InvalidQuantityError):
            verify_chain(_req(*counts))

    def test_of_reads_requisition_counters(self):
        ledger = QuantityLedger.of(_req(10, 8, 6, 2))
        assert (ledger.requested, ledger.approved, ledger.disbursed, ledger.used) == (10, 8, 6, 2)


@pytest.mark.unit
class TestQuantityChecks:

    @pytest.mark.parametrize("bad", [0, -3, 2.5, "4", True, None])
    def test_check_positive_rejects(self, bad):
        with pytest.raises(InvalidQuantityError):
            check_positive(bad, "Quantity")

    def test_check_within_accepts_bound(self):
        assert check_within(
            8, 8, QuantityExceedsRequestError,
            label="Approved quantity", bound_label="requested quantity",
        ) == 8

    def test_check_within_raises_specific_error(self):
        with pytest.raises(QuantityExceedsApprovalError) as exc:
            check_within(
                6, 5, QuantityExceedsApprovalError,
                label="Disbursed quantity", bound_label="approved quantity",
            )
        assert "exceeds approved quantity (5)" in exc.value.message

    def test_exceeds_errors_are_invalid_quantity(self):
        with pytest.raises(InvalidQuantityError):
            check_within(
                9, 5, QuantityExceedsRequestError,
                label="Approved quantity", bound_label="requested quantity",
            )

    def test_zero_within_bound_is_still_invalid(self):
        with pytest.raises(InvalidQuantityError) as exc:
            check_within(
                0, 5, QuantityExceedsRequestError,
                label="Approved quantity", bound_label="requested quantity",
            )
        assert not isinstance(exc.value, QuantityExceedsRequestError)


@pytest.mark.unit
class TestTotalCost:

    def test_used_times_unit_cost(self):
        assert compute_total_cost(5, Decimal("120.50")) == Decimal("602.50")

    def test_rounds_half_up(self):
        assert compute_total_cost(3, Decimal("0.335")) == Decimal("1.01")
