from __future__ import annotations

from typing import Any

from storecart.core.config import settings
from storecart.schemas.checkout import ShippingAddress
from storecart.schemas.order import AddressCreate
from storecart.services.api_client import ApiClient, unwrap_data


def address_from_shipping(shipping: ShippingAddress) -> AddressCreate:
    return AddressCreate(
        name=shipping.name,
        address=shipping.address,
        city=shipping.city,
        state=shipping.state,
        zip=shipping.zip,
        phone=shipping.phone,
        country=shipping.country or settings.default_country,
        custom_fields=shipping.custom_fields,
    )


class AddressClient:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def create(self, address: AddressCreate) -> Any:
        return unwrap_data(await self.api.post("/addresses", json=address.to_wire()))

