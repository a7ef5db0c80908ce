"""Server-side order totals.

Prices submitted by clients are recomputed here; the client total is never
trusted. Discounts apply before tax. With EXCLUDE the GST is added on top of
the discounted line; with INCLUDE it is carved out of it. GST is reported
split evenly into CGST and SGST.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from src.theaterpos.models.enums import TaxMode
from src.theaterpos.schemas.order import OrderItemIn

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineTotals:
    line_total: Decimal
    discount: Decimal
    tax: Decimal
    base_price: Decimal
    final_total: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal  # grand total minus GST
    gross: Decimal  # sum of undiscounted lines
    discount: Decimal
    tax: Decimal
    cgst: Decimal
    sgst: Decimal
    total: Decimal

    def as_json(self) -> dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "gross": str(self.gross),
            "discount": str(self.discount),
            "tax": str(self.tax),
            "cgst": str(self.cgst),
            "sgst": str(self.sgst),
            "total": str(self.total),
        }


def combined_discount(item_pct: Decimal, order_pct: Decimal) -> Decimal:
    """Stack an order-wide discount on top of an item discount (percent)."""
    keep = (1 - item_pct / HUNDRED) * (1 - order_pct / HUNDRED)
    return (1 - keep) * HUNDRED


def line_totals(
    unit_price: Decimal,
    quantity: int,
    tax_rate: Decimal,
    tax_mode: TaxMode,
    discount_pct: Decimal = Decimal("0"),
) -> LineTotals:
    line_total = unit_price * quantity
    discount = line_total * discount_pct / HUNDRED if discount_pct > 0 else Decimal("0")
    after_discount = line_total - discount

    if tax_mode is TaxMode.INCLUDE:
        tax = after_discount * tax_rate / (HUNDRED + tax_rate)
        base_price = after_discount - tax
    else:
        tax = after_discount * tax_rate / HUNDRED
        base_price = after_discount

    return LineTotals(
        line_total=quantize(line_total),
        discount=quantize(discount),
        tax=quantize(tax),
        base_price=quantize(base_price),
        final_total=quantize(base_price + tax),
    )


def calculate_order_totals(
    items: Iterable[OrderItemIn],
    default_tax_rate: Decimal,
    tax_mode: TaxMode,
    order_discount_pct: Decimal = Decimal("0"),
) -> tuple[OrderTotals, list[dict[str, str]]]:
    """Compute order totals and the per-line breakdown stored with the order.

    Components are accumulated unrounded, rounded once, and the total is
    derived from the rounded components.
    """
    gross = Decimal("0")
    discount = Decimal("0")
    tax = Decimal("0")
    lines: list[dict[str, str]] = []

    for item in items:
        rate = item.tax_rate if item.tax_rate is not None else default_tax_rate
        pct = combined_discount(item.discount_percentage, order_discount_pct)
        line_total = item.unit_price * item.quantity
        line_discount = line_total * pct / HUNDRED if pct > 0 else Decimal("0")
        after_discount = line_total - line_discount
        if tax_mode is TaxMode.INCLUDE:
            line_tax = after_discount * rate / (HUNDRED + rate)
        else:
            line_tax = after_discount * rate / HUNDRED

        gross += line_total
        discount += line_discount
        tax += line_tax

        rounded = line_totals(item.unit_price, item.quantity, rate, tax_mode, pct)
        lines.append(
            {
                "lineTotal": str(rounded.line_total),
                "discount": str(rounded.discount),
                "tax": str(rounded.tax),
                "finalTotal": str(rounded.final_total),
                "taxRate": str(rate),
            }
        )

    gross, discount, tax = quantize(gross), quantize(discount), quantize(tax)
    if tax_mode is TaxMode.INCLUDE:
        total = quantize(gross - discount)
    else:
        total = quantize(gross - discount + tax)
    half = quantize(tax / 2)

    totals = OrderTotals(
        subtotal=quantize(total - tax),
        gross=gross,
        discount=discount,
        tax=tax,
        cgst=half,
        sgst=quantize(tax - half),
        total=total,
    )
    return totals, lines
