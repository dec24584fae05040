from __future__ import annotations

from urllib.parse import quote

from pydantic import ValidationError

from storecart.schemas.checkout import PendingOrderPayload
from storecart.schemas.order import Order
from storecart.services.api_client import ApiClient, ApiError, unwrap_data


def _parse_order(body: object) -> Order | None:
    data = unwrap_data(body)
    if not isinstance(data, dict):
        return None
    try:
        return Order.model_validate(data)
    except ValidationError as exc:
        raise ApiError("Malformed order response") from exc


class OrdersClient:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def place_order(self, payload: PendingOrderPayload) -> Order | None:
        """Submit an order; returns None when the backend reply has no order body."""
        body = payload.to_wire()
        body["paymentMethod"] = payload.payment_method or "cod"
        return _parse_order(await self.api.post("/orders", json=body))

    async def list_my_orders(self) -> list[Order]:
        data = unwrap_data(await self.api.get("/orders"))
        if not isinstance(data, list):
            return []
        return [Order.model_validate(raw) for raw in data if isinstance(raw, dict)]

    async def get_order(self, order_id: str) -> Order | None:
        return _parse_order(await self.api.get(f"/orders/{quote(order_id, safe='')}"))
