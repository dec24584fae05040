from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Sequence

from storecart.core import metrics
from storecart.schemas.auth import AuthState
from storecart.schemas.cart import (
    CartItem,
    CartTotals,
    GuestCartLine,
    ProductSnapshot,
    VariationAttribute,
    identity_key,
)
from storecart.services import pricing
from storecart.services.api_client import ApiClient, ApiError
from storecart.services.cart_merge import merge_guest_cart
from storecart.services.guest_cart import GuestCartStore
from storecart.services.remote_cart import RemoteCartClient
from storecart.services.storage import STORAGE_ERRORS

logger = logging.getLogger(__name__)

GUEST_CART_UNAVAILABLE_MESSAGE = "Your cart could not be saved. Please try again."

CartSubscriber = Callable[["CartState"], Any]


@dataclass(frozen=True)
class CartState:
    items: tuple[CartItem, ...] = ()
    loading: bool = True
    is_authenticated: bool = False
    # Set when the server cart could not be read back; items are then empty on purpose.
    unavailable: bool = False
    error: str | None = None

    @property
    def count(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass
class _Subscription:
    callback: CartSubscriber
    active: bool = field(default=True)


def _find_line(lines: Sequence[GuestCartLine], key: str) -> int:
    for idx, line in enumerate(lines):
        if line.identity_key == key:
            return idx
    return -1


class CartStateManager:
    """Routes cart operations to the guest store or the server cart.

    The manager never owns cart data: the guest store owns it for anonymous
    visitors and the backend owns it for shoppers. It keeps the last snapshot
    for rendering and pushes every change to subscribers.
    """

    def __init__(
        self,
        *,
        guest: GuestCartStore,
        api: ApiClient,
        auth: AuthState | None = None,
    ) -> None:
        self.guest = guest
        self._api = api
        self._auth = auth or AuthState.anonymous()
        self._remote = self._build_remote(self._auth)
        self._state = CartState(is_authenticated=self._auth.is_user_session)
        self._subscriptions: list[_Subscription] = []

    def _build_remote(self, auth: AuthState) -> RemoteCartClient | None:
        if not auth.is_user_session:
            return None
        return RemoteCartClient(self._api.with_auth(auth))

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def auth(self) -> AuthState:
        return self._auth

    @property
    def is_authenticated(self) -> bool:
        return self._remote is not None

    def totals(self, **kwargs: Any) -> CartTotals:
        return pricing.summarize_cart(self._state.items, **kwargs)

    def subscribe(self, callback: CartSubscriber) -> Callable[[], None]:
        subscription = _Subscription(callback)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            subscription.active = False
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def _publish(self, **changes: Any) -> None:
        if "items" in changes:
            changes["items"] = tuple(changes["items"])
        self._state = replace(self._state, **changes)
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.callback(self._state)
            except Exception:
                logger.exception("cart_subscriber_failed")

    def _publish_guest(self, lines: Sequence[GuestCartLine]) -> None:
        self._publish(
            items=[line.to_cart_item() for line in lines],
            loading=False,
            is_authenticated=False,
            unavailable=False,
            error=None,
        )

    def _publish_unavailable(self, exc: ApiError, operation: str) -> None:
        metrics.record_cart_unavailable()
        logger.warning(
            "server_cart_unavailable",
            extra={"operation": operation, "error": exc.message, "status_code": exc.status_code},
        )
        self._publish(items=[], loading=False, unavailable=True, error=exc.message)

    def _publish_guest_unavailable(self, exc: Exception, operation: str) -> None:
        metrics.record_storage_failure()
        logger.warning("guest_cart_unavailable", extra={"operation": operation, "error": str(exc)})
        self._publish(items=[], loading=False, unavailable=True, error=GUEST_CART_UNAVAILABLE_MESSAGE)

    async def _store_guest(self, lines: Sequence[GuestCartLine], operation: str) -> CartState:
        try:
            await self.guest.save(lines)
        except STORAGE_ERRORS as exc:
            self._publish_guest_unavailable(exc, operation)
            return self._state
        self._publish_guest(lines)
        return self._state

    def _adopt(self, items: Sequence[CartItem] | None) -> None:
        if items is None:
            return
        self._publish(items=items, loading=False, unavailable=False, error=None)

    async def refresh_cart(self) -> CartState:
        if self._remote is None:
            self._publish_guest(await self.guest.load())
            return self._state

        self._publish(loading=True, is_authenticated=True)
        try:
            items = await self._remote.get()
        except ApiError as exc:
            self._publish_unavailable(exc, "refresh")
            return self._state
        self._publish(items=items or [], loading=False, unavailable=False, error=None)
        return self._state

    async def add_to_cart(
        self,
        product_id: str,
        quantity: int = 1,
        product: ProductSnapshot | None = None,
        *,
        variation_name: str | None = None,
        variation_attributes: Sequence[VariationAttribute] | None = None,
        price: float | None = None,
    ) -> CartState:
        qty = max(1, quantity)
        if self._remote is None:
            lines = await self.guest.load()
            idx = _find_line(lines, identity_key(product_id, variation_name))
            if idx >= 0:
                lines[idx].quantity += qty
            else:
                lines.append(
                    GuestCartLine(
                        product_id=product_id,
                        quantity=qty,
                        variation_name=variation_name or None,
                        variation_attributes=list(variation_attributes) if variation_attributes else None,
                        product=product,
                    )
                )
            return await self._store_guest(lines, "add")

        try:
            items = await self._remote.add(
                product_id,
                qty,
                variation_name=variation_name,
                variation_attributes=variation_attributes,
                price=price,
            )
        except ApiError as exc:
            self._publish(error=exc.message)
            return self._state
        self._adopt(items)
        return self._state

    async def update_quantity(
        self, product_id: str, quantity: int, variation_name: str | None = None
    ) -> CartState:
        if self._remote is None:
            lines = await self.guest.load()
            idx = _find_line(lines, identity_key(product_id, variation_name))
            if idx < 0:
                return self._state
            if quantity <= 0:
                del lines[idx]
            else:
                lines[idx].quantity = quantity
            return await self._store_guest(lines, "update")

        try:
            items = await self._remote.update(product_id, quantity, variation_name=variation_name)
        except ApiError as exc:
            self._publish(error=exc.message)
            return self._state
        self._adopt(items)
        return self._state

    async def remove_from_cart(self, product_id: str, variation_name: str | None = None) -> CartState:
        if self._remote is None:
            key = identity_key(product_id, variation_name)
            lines = [line for line in await self.guest.load() if line.identity_key != key]
            return await self._store_guest(lines, "remove")

        try:
            items = await self._remote.remove(product_id, variation_name=variation_name)
        except ApiError as exc:
            # A removal that may not have landed must not leave the line purchasable.
            self._publish_unavailable(exc, "remove")
            return self._state
        self._publish(items=items or [], loading=False, unavailable=False, error=None)
        return self._state

    async def clear_cart(self) -> CartState:
        if self._remote is None:
            try:
                await self.guest.clear()
            except STORAGE_ERRORS as exc:
                self._publish_guest_unavailable(exc, "clear")
                return self._state
            self._publish_guest([])
            return self._state

        try:
            items = await self._remote.clear()
        except ApiError as exc:
            self._publish_unavailable(exc, "clear")
            return self._state
        self._publish(items=items or [], loading=False, unavailable=False, error=None)
        return self._state

    async def merge_guest_cart_then_refresh(self) -> CartState:
        if self._remote is None:
            return await self.refresh_cart()
        items = await merge_guest_cart(self.guest, self._remote)
        if items is None:
            return await self.refresh_cart()
        self._publish(items=items, loading=False, is_authenticated=True, unavailable=False, error=None)
        return self._state

    async def set_auth(self, auth: AuthState) -> CartState:
        """Switch identity; guest-to-shopper always goes through the merge."""
        was_user = self._auth.is_user_session
        self._auth = auth
        self._remote = self._build_remote(auth)
        self._publish(is_authenticated=auth.is_user_session)
        if auth.is_user_session and not was_user:
            return await self.merge_guest_cart_then_refresh()
        return await self.refresh_cart()
