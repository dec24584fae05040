from __future__ import annotations

from typing import Any, Sequence
from urllib.parse import quote

from pydantic import ValidationError

from storecart.schemas.cart import CartItem, MergeLine, VariationAttribute
from storecart.services.api_client import ApiClient, ApiError, unwrap_data


class NotAuthenticatedError(RuntimeError):
    """Raised when the server cart is used without a shopper session."""


def parse_cart_items(body: Any) -> list[CartItem] | None:
    """Items from a `{data: {items}}` response, or None when the shape is missing."""
    data = unwrap_data(body)
    if not isinstance(data, dict):
        return None
    raw_items = data.get("items")
    if not isinstance(raw_items, list):
        return None
    try:
        return [CartItem.model_validate(raw) for raw in raw_items]
    except ValidationError as exc:
        raise ApiError("Malformed cart response") from exc


class RemoteCartClient:
    """Server-side cart of an authenticated shopper."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    def _require_session(self) -> None:
        if not self.api.auth.is_user_session:
            raise NotAuthenticatedError("A shopper session is required for the server cart")

    async def get(self) -> list[CartItem] | None:
        self._require_session()
        return parse_cart_items(await self.api.get("/cart"))

    async def add(
        self,
        product_id: str,
        quantity: int = 1,
        *,
        variation_name: str | None = None,
        variation_attributes: Sequence[VariationAttribute] | None = None,
        price: float | None = None,
    ) -> list[CartItem] | None:
        self._require_session()
        payload: dict[str, Any] = {"productId": product_id, "quantity": quantity or 1}
        if variation_name:
            payload["variationName"] = variation_name
        if variation_attributes:
            payload["variationAttributes"] = [attr.to_wire() for attr in variation_attributes]
        if price is not None:
            payload["price"] = price
        return parse_cart_items(await self.api.post("/cart", json=payload))

    async def update(self, product_id: str, quantity: int, *, variation_name: str | None = None) -> list[CartItem] | None:
        self._require_session()
        payload: dict[str, Any] = {"productId": product_id, "quantity": quantity}
        if variation_name:
            payload["variationName"] = variation_name
        return parse_cart_items(await self.api.put("/cart", json=payload))

    async def remove(self, product_id: str, *, variation_name: str | None = None) -> list[CartItem] | None:
        self._require_session()
        params = {"variationName": variation_name} if variation_name else None
        body = await self.api.delete(f"/cart/items/{quote(product_id, safe='')}", params=params)
        return parse_cart_items(body)

    async def merge(self, items: Sequence[MergeLine]) -> list[CartItem] | None:
        self._require_session()
        body = await self.api.post("/cart/merge", json={"items": [item.to_wire() for item in items]})
        return parse_cart_items(body)

    async def clear(self) -> list[CartItem] | None:
        self._require_session()
        return parse_cart_items(await self.api.delete("/cart"))
