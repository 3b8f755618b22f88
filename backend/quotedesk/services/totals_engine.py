"""
Totals Aggregator — fixed cascade: subtotal → discount → tax → grand total.

    subtotal        = Σ quantity × unit_price
    discount_amount = subtotal × discount% / 100
    after_discount  = subtotal − discount_amount
    tax_amount      = after_discount × tax% / 100
    total           = max(0, after_discount + tax_amount)

Percentages are not clamped; range policy belongs to the caller.
"""
from typing import Iterable

from quotedesk.models.quote_schema import QuoteTotals


def compute_totals(items: Iterable, discount_percent: float = 0.0, tax_percent: float = 0.0) -> QuoteTotals:
    """``items`` needs only ``quantity`` and ``unit_price`` attributes."""
    discount_percent = float(discount_percent or 0.0)
    tax_percent = float(tax_percent or 0.0)

    subtotal = 0.0
    for item in items:
        subtotal += item.quantity * item.unit_price

    discount_amount = subtotal * discount_percent / 100
    after_discount = subtotal - discount_amount
    tax_amount = after_discount * tax_percent / 100

    return QuoteTotals(
        subtotal=subtotal,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        after_discount=after_discount,
        tax_percent=tax_percent,
        tax_amount=tax_amount,
        total=max(0.0, after_discount + tax_amount),
    )
