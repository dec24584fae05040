from __future__ import annotations

from decimal import Decimal

from storecart.schemas.cart import TaxRule

Number = Decimal | int | float


def to_decimal(value: Number | None) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _effective_rule(product_tax_rule: TaxRule | None, default_percentage: Number) -> tuple[str, Decimal]:
    if product_tax_rule is not None and to_decimal(product_tax_rule.value) > 0:
        return product_tax_rule.tax_type or "percentage", to_decimal(product_tax_rule.value)
    return "percentage", to_decimal(default_percentage)


def compute_line_tax(
    price: Number,
    quantity: Number,
    product_tax_rule: TaxRule | None,
    default_percentage: Number,
) -> Decimal:
    """Tax for one cart line.

    A product override is used only when it carries a positive value; otherwise
    the store default percentage applies. Flat overrides are charged per unit and
    ignore the price. Inputs are not validated.
    """
    tax_type, value = _effective_rule(product_tax_rule, default_percentage)
    qty = to_decimal(quantity)
    if tax_type == "percentage":
        return to_decimal(price) * qty * value / Decimal("100")
    return value * qty
