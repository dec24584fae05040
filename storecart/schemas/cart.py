from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def identity_key(product_id: str, variation_name: str | None = None) -> str:
    """Key that decides whether two cart lines are the same line."""
    return f"{product_id}::{(variation_name or '').strip()}"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class VariationAttribute(WireModel):
    name: str = ""
    value: str = ""


class TaxRule(WireModel):
    tax_type: str | None = None
    value: float | None = None


class ProductSnapshot(WireModel):
    id: str | None = Field(default=None, alias="_id")
    name: str = ""
    price: float | None = None
    image: str | None = None
    is_active: bool = True
    stock: int | None = None
    tax: TaxRule | None = None


class CartItem(WireModel):
    product_id: str
    variation_name: str | None = ""
    variation_attributes: list[VariationAttribute] = []
    quantity: int
    price: float | None = None
    product: ProductSnapshot | None = None

    @property
    def identity_key(self) -> str:
        return identity_key(self.product_id, self.variation_name)

    @property
    def unit_price(self) -> float:
        if self.price is not None:
            return self.price
        if self.product is not None and self.product.price is not None:
            return self.product.price
        return 0.0


class GuestCartLine(WireModel):
    product_id: str = Field(min_length=1)
    quantity: int
    variation_name: str | None = None
    variation_attributes: list[VariationAttribute] | None = None
    product: ProductSnapshot | None = None

    @property
    def identity_key(self) -> str:
        return identity_key(self.product_id, self.variation_name)

    def to_cart_item(self) -> CartItem:
        snapshot = None
        if self.product is not None:
            # Guest snapshots are rendered as purchasable until the backend says otherwise.
            snapshot = self.product.model_copy(
                update={
                    "id": self.product.id or self.product_id,
                    "is_active": True,
                    "stock": self.product.stock if self.product.stock is not None else 999,
                }
            )
        return CartItem(
            product_id=self.product_id,
            variation_name=self.variation_name or "",
            variation_attributes=list(self.variation_attributes or []),
            quantity=self.quantity,
            product=snapshot,
        )


class MergeLine(WireModel):
    product_id: str
    quantity: int = Field(ge=1)
    variation_name: str | None = None
    variation_attributes: list[VariationAttribute] | None = None


class CartTotals(BaseModel):
    item_count: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal
