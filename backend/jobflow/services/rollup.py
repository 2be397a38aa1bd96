"""Invoice rollup: items + rates + payments → financial summary.

Pure arithmetic on ``Decimal``.  Every derived amount is rounded to
cents with ROUND_HALF_UP *before* it feeds the next step, so the
printed figures always add up:

    subtotal       = Σ round(quantity × unit_price)
    discount       = round(subtotal × discount% / 100)
    taxable        = subtotal − discount
    tax            = round(taxable × tax% / 100)
    total          = taxable + tax
    amount_paid    = Σ payments (refunds are negative)
    balance_due    = total − amount_paid

Nothing computed here is ever written back to the database.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # via str so 0.1 stays 0.1 and not its binary expansion
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity, unit_price) -> Decimal:
    return round_money(to_decimal(quantity) * to_decimal(unit_price))


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal

    def is_settled(self, epsilon) -> bool:
        return self.balance_due <= to_decimal(epsilon)

    def as_floats(self) -> dict[str, float]:
        return {k: float(v) for k, v in self.__dict__.items()}


def compute_totals(
    items: Iterable,
    tax_rate,
    discount_percentage,
    payments: Iterable = (),
) -> InvoiceTotals:
    """Compute the summary for any objects exposing quantity/unit_price and amount."""
    subtotal = round_money(sum(
        (line_total(i.quantity, i.unit_price) for i in items), Decimal("0")
    ))
    discount = round_money(subtotal * to_decimal(discount_percentage or 0) / HUNDRED)
    taxable = round_money(subtotal - discount)
    tax = round_money(taxable * to_decimal(tax_rate or 0) / HUNDRED)
    total = round_money(taxable + tax)
    paid = round_money(sum((to_decimal(p.amount) for p in payments), Decimal("0")))
    balance = round_money(total - paid)

    return InvoiceTotals(
        subtotal=subtotal,
        discount_amount=discount,
        taxable_amount=taxable,
        tax_amount=tax,
        total_amount=total,
        amount_paid=paid,
        balance_due=balance,
    )
