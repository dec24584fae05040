from __future__ import annotations

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_UP
from typing import Iterable, Literal

from storecart.core.config import settings
from storecart.schemas.cart import CartItem, CartTotals
from storecart.services.taxes import Number, compute_line_tax, to_decimal


MONEY_QUANT = Decimal("0.01")

MoneyRounding = Literal["half_up", "half_even", "up", "down"]


_ROUNDING_MAP: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
    "up": ROUND_UP,
    "down": ROUND_DOWN,
}


def quantize_money(value: Decimal, *, rounding: MoneyRounding = "half_up") -> Decimal:
    mode = _ROUNDING_MAP.get(str(rounding), ROUND_HALF_UP)
    return Decimal(value).quantize(MONEY_QUANT, rounding=mode)


def summarize_cart(
    items: Iterable[CartItem],
    *,
    tax_enabled: bool | None = None,
    default_tax_percentage: Number | None = None,
    rounding: MoneyRounding | None = None,
) -> CartTotals:
    """Presentation totals for a cart; the backend recomputes at placement."""
    enabled = settings.tax_enabled if tax_enabled is None else tax_enabled
    default_pct = settings.default_tax_percentage if default_tax_percentage is None else default_tax_percentage
    mode = rounding or settings.money_rounding

    item_count = 0
    subtotal = Decimal("0")
    tax = Decimal("0")
    for item in items:
        price = to_decimal(item.unit_price)
        item_count += item.quantity
        subtotal += price * item.quantity
        if enabled:
            rule = item.product.tax if item.product is not None else None
            line_tax = compute_line_tax(price, item.quantity, rule, default_pct)
            tax += quantize_money(line_tax, rounding=mode)

    subtotal = quantize_money(subtotal, rounding=mode)
    tax = quantize_money(tax, rounding=mode)
    return CartTotals(item_count=item_count, subtotal=subtotal, tax=tax, total=subtotal + tax)
