from __future__ import annotations

import math
from typing import Iterable

from invoicer.schemas.invoice import DiscountType, InvoiceTotals, LineItem, RateSettings
from invoicer.utils.numbers import finite_or_zero


def _sum(values: Iterable[float]) -> float:
    # fsum raises on intermediate overflow and on inf - inf
    try:
        return finite_or_zero(math.fsum(values))
    except (OverflowError, ValueError):
        return 0.0


def compute_totals(line_items: Iterable[LineItem], rates: RateSettings) -> InvoiceTotals:
    """Derive the invoice totals from the line items and rate settings.

    Sums use :func:`math.fsum`, which is exact up to the final rounding, so
    the result does not depend on item order. Only ``total`` is floored at
    zero; a discount larger than the subtotal never pushes it negative.
    Results that overflow the float range count as zero, so the function
    never raises.
    """

    subtotal = _sum(item.amount for item in line_items)
    sales_tax = finite_or_zero(subtotal * rates.tax_rate_percent / 100)

    if rates.discount_type is DiscountType.FIXED:
        discount = rates.discount_value
    else:
        discount = finite_or_zero(subtotal * rates.discount_value / 100)

    total = _sum(
        (
            subtotal,
            sales_tax,
            rates.other_tax_amount,
            rates.shipping_amount,
            -discount,
        )
    )

    return InvoiceTotals(
        subtotal=subtotal,
        sales_tax=sales_tax,
        other_tax=rates.other_tax_amount,
        shipping=rates.shipping_amount,
        discount_amount=discount,
        total=max(0.0, total),
    )
