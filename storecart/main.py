from __future__ import annotations

from dataclasses import dataclass

import httpx

from storecart.core.redis_client import close_redis
from storecart.schemas.auth import AuthState
from storecart.services.addresses import AddressClient
from storecart.services.api_client import ApiClient
from storecart.services.cart import CartStateManager
from storecart.services.checkout import CheckoutConfirmationFlow
from storecart.services.guest_cart import GuestCartStore
from storecart.services.orders import OrdersClient
from storecart.services.session import read_auth_state, store_auth_state
from storecart.services.storage import KeyValueStorage, MemoryStorage, build_durable_storage


@dataclass
class Storefront:
    """Cart and checkout wiring for one shopper tab."""

    durable: KeyValueStorage
    session: KeyValueStorage
    api: ApiClient
    cart: CartStateManager

    async def login(self, auth: AuthState) -> None:
        await store_auth_state(self.durable, auth)
        await self.cart.set_auth(auth)

    async def logout(self) -> None:
        await store_auth_state(self.durable, AuthState.anonymous())
        await self.cart.set_auth(AuthState.anonymous())

    async def close(self) -> None:
        await close_redis()

    def checkout_flow(self) -> CheckoutConfirmationFlow:
        api = self.api.with_auth(self.cart.auth)
        return CheckoutConfirmationFlow(
            session_storage=self.session,
            orders=OrdersClient(api),
            addresses=AddressClient(api),
        )


async def get_storefront(
    *,
    durable: KeyValueStorage | None = None,
    session: KeyValueStorage | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Storefront:
    durable_storage = durable if durable is not None else build_durable_storage()
    session_storage = session if session is not None else MemoryStorage()
    api = ApiClient(transport=transport)
    auth = await read_auth_state(durable_storage)
    cart = CartStateManager(guest=GuestCartStore(durable_storage), api=api, auth=auth)
    await cart.refresh_cart()
    return Storefront(durable=durable_storage, session=session_storage, api=api, cart=cart)
