from enum import Enum

from storecart.schemas.cart import WireModel


class CustomField(WireModel):
    key: str
    label: str = ""
    value: str = ""


class ShippingAddress(WireModel):
    name: str = ""
    address: str = ""
    city: str = ""
    state: str | None = None
    zip: str = ""
    phone: str = ""
    country: str | None = None
    custom_fields: list[CustomField] | None = None

    def is_complete(self) -> bool:
        return all(
            (value or "").strip()
            for value in (self.name, self.address, self.city, self.zip, self.phone)
        )


class PendingOrderPayload(WireModel):
    shipping_address: ShippingAddress
    payment_method: str | None = None
    coupon_code: str | None = None
    shipping_method_id: str | None = None
    shipping_amount: float | None = None
    cashfree_payment: dict[str, str] | None = None
    razorpay_payment: dict[str, str] | None = None
    save_address_for_later: bool | None = None


class CheckoutStatus(str, Enum):
    loading = "loading"
    success = "success"
    error = "error"


class CheckoutResult(WireModel):
    status: CheckoutStatus
    order_id: str | None = None
    error: str | None = None
