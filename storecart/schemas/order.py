from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from storecart.schemas.cart import VariationAttribute, WireModel
from storecart.schemas.checkout import CustomField, ShippingAddress


class OrderItem(WireModel):
    product_id: str
    name: str = ""
    price: float = 0.0
    quantity: int = 1
    variation_name: str | None = None
    variation_attributes: list[VariationAttribute] | None = None


class Order(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str | None = Field(default=None, alias="_id")
    items: list[OrderItem] = []
    total: float | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    coupon_code: str | None = None
    discount_amount: float | None = None
    shipping_amount: float | None = None
    shipping_address: ShippingAddress | None = None


class AddressCreate(WireModel):
    name: str
    address: str
    city: str
    state: str | None = None
    zip: str
    phone: str
    country: str
    custom_fields: list[CustomField] | None = None
