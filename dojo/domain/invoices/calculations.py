"""
Invoice math, all in integer cents

A line item's discount comes off before tax; the invoice total is
subtotal + tax - discount.
"""

from collections.abc import Iterable, Sequence

from ...models_payment import TaxRate
from ...shared.money import multiply_cents, percent_of
from ..payments.taxes import PST_BC, PST_EXEMPT_INVOICE_ITEM_TYPES


def rates_for_item(item_type: str, tax_rate_ids: Iterable[int], tax_rates: Sequence[TaxRate]) -> list[TaxRate]:
    """The selected rates, minus BC PST for enrollment and session items"""
    selected = set(tax_rate_ids)
    rates = [rate for rate in tax_rates if rate.id in selected]
    if item_type in PST_EXEMPT_INVOICE_ITEM_TYPES:
        rates = [rate for rate in rates if rate.name != PST_BC]
    return rates


def calculate_line_item(
    quantity: int,
    unit_price: int,
    tax_rate_ids: Iterable[int],
    tax_rates: Sequence[TaxRate],
    discount_rate: float = 0,
) -> dict:
    line_total = quantity * unit_price
    discount_amount = percent_of(line_total, discount_rate or 0)
    taxable = line_total - discount_amount

    selected = set(tax_rate_ids)
    applied = [rate for rate in tax_rates if rate.id in selected]
    combined_rate = sum(rate.rate for rate in applied)

    return {
        "line_total": line_total,
        "discount_amount": discount_amount,
        "tax_amount": multiply_cents(taxable, combined_rate),
        "final_total": line_total,
        "taxes": [
            {
                "tax_rate_id": rate.id,
                "tax_name_snapshot": rate.name,
                "tax_rate_snapshot": rate.rate,
                "tax_amount": multiply_cents(taxable, rate.rate),
            }
            for rate in applied
        ],
    }


def calculate_invoice_totals(items: Iterable[dict]) -> dict:
    subtotal = tax_amount = discount_amount = 0
    for item in items:
        subtotal += item["line_total"]
        tax_amount += item["tax_amount"]
        discount_amount += item["discount_amount"]

    return {
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "discount_amount": discount_amount,
        "total_amount": subtotal + tax_amount - discount_amount,
    }
