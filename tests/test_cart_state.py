import pytest

from storecart.core import metrics
from storecart.schemas.auth import AuthState, SessionKind
from storecart.schemas.cart import ProductSnapshot
from storecart.services.api_client import ApiClient
from storecart.services.cart import GUEST_CART_UNAVAILABLE_MESSAGE, CartState, CartStateManager
from storecart.services.guest_cart import GuestCartStore

from conftest import BrokenStorage, FakeBackend


def _keys(state: CartState) -> list[tuple[str, int]]:
    return [(item.identity_key, item.quantity) for item in state.items]


@pytest.fixture
def guest_manager(guest_store: GuestCartStore, api: ApiClient) -> CartStateManager:
    return CartStateManager(guest=guest_store, api=api)


@pytest.fixture
def user_manager(guest_store: GuestCartStore, api: ApiClient, user_auth: AuthState) -> CartStateManager:
    return CartStateManager(guest=guest_store, api=api, auth=user_auth)


@pytest.mark.anyio("asyncio")
async def test_guest_adds_coalesce_into_one_line(guest_manager: CartStateManager, backend: FakeBackend) -> None:
    await guest_manager.add_to_cart("p1", 1, ProductSnapshot(name="Mug", price=10))
    state = await guest_manager.add_to_cart("p1", 2)
    assert _keys(state) == [("p1::", 3)]
    assert state.count == 3
    assert state.loading is False
    assert state.is_authenticated is False
    assert backend.calls == []
    assert [line.quantity for line in await guest_manager.guest.load()] == [3]


@pytest.mark.anyio("asyncio")
async def test_guest_identity_includes_variation(guest_manager: CartStateManager) -> None:
    await guest_manager.add_to_cart("p1", 1, variation_name="Red")
    await guest_manager.add_to_cart("p1", 1, variation_name="Blue")
    await guest_manager.add_to_cart("p1", 1)
    state = await guest_manager.add_to_cart("p1", 4, variation_name="Red")
    assert _keys(state) == [("p1::Red", 5), ("p1::Blue", 1), ("p1::", 1)]
    assert len({item.identity_key for item in state.items}) == len(state.items)


@pytest.mark.anyio("asyncio")
async def test_guest_add_clamps_quantity_to_one(guest_manager: CartStateManager) -> None:
    state = await guest_manager.add_to_cart("p1", 0)
    assert _keys(state) == [("p1::", 1)]


@pytest.mark.anyio("asyncio")
async def test_guest_update_and_remove(guest_manager: CartStateManager) -> None:
    await guest_manager.add_to_cart("p1", 2)
    await guest_manager.add_to_cart("p2", 1, variation_name="XL")

    state = await guest_manager.update_quantity("p1", 7)
    assert _keys(state) == [("p1::", 7), ("p2::XL", 1)]

    state = await guest_manager.update_quantity("p2", 0, "XL")
    assert _keys(state) == [("p1::", 7)]

    state = await guest_manager.update_quantity("missing", 3)
    assert _keys(state) == [("p1::", 7)]

    state = await guest_manager.remove_from_cart("p1")
    assert state.items == ()
    assert await guest_manager.guest.load() == []


@pytest.mark.anyio("asyncio")
async def test_guest_refresh_reads_storage(guest_manager: CartStateManager, guest_store: GuestCartStore) -> None:
    assert guest_manager.state.loading is True
    other_tab = CartStateManager(guest=guest_store, api=guest_manager._api)
    await other_tab.add_to_cart("p9", 2)
    state = await guest_manager.refresh_cart()
    assert _keys(state) == [("p9::", 2)]
    assert state.loading is False


@pytest.mark.anyio("asyncio")
async def test_remote_adopts_server_items_verbatim(user_manager: CartStateManager, backend: FakeBackend) -> None:
    backend.items = [{"productId": "p1", "quantity": 4, "variationName": "", "price": 80, "product": {"name": "Lamp", "price": 99}}]
    state = await user_manager.refresh_cart()
    assert state.is_authenticated is True
    assert _keys(state) == [("p1::", 4)]
    assert state.items[0].unit_price == 80

    state = await user_manager.add_to_cart("p2", 1)
    assert _keys(state) == [("p1::", 4), ("p2::", 1)]

    state = await user_manager.update_quantity("p1", 0)
    assert _keys(state) == [("p2::", 1)]
    assert backend.calls_to("PUT", "/cart") == [{"productId": "p1", "quantity": 0}]


@pytest.mark.anyio("asyncio")
async def test_remote_add_error_keeps_items_and_reports(user_manager: CartStateManager, backend: FakeBackend) -> None:
    backend.items = [{"productId": "p1", "quantity": 1}]
    await user_manager.refresh_cart()
    backend.fail("POST", "/cart", status=400, message="Insufficient stock")
    state = await user_manager.add_to_cart("p1", 50)
    assert _keys(state) == [("p1::", 1)]
    assert state.error == "Insufficient stock"
    assert state.unavailable is False


@pytest.mark.anyio("asyncio")
async def test_remote_remove_error_empties_cart(user_manager: CartStateManager, backend: FakeBackend) -> None:
    backend.items = [{"productId": "p1", "quantity": 1}, {"productId": "p2", "quantity": 2}]
    await user_manager.refresh_cart()
    backend.fail("DELETE", "/cart/items/p1")
    state = await user_manager.remove_from_cart("p1")
    assert state.items == ()
    assert state.unavailable is True
    assert state.error == "Server exploded"
    assert metrics.snapshot()["cart_unavailable"] == 1

    backend.failures.clear()
    state = await user_manager.refresh_cart()
    assert _keys(state) == [("p1::", 1), ("p2::", 2)]
    assert state.unavailable is False
    assert state.error is None


@pytest.mark.anyio("asyncio")
async def test_remote_refresh_error_is_empty_not_stale(user_manager: CartStateManager, backend: FakeBackend) -> None:
    backend.items = [{"productId": "p1", "quantity": 1}]
    await user_manager.refresh_cart()
    backend.fail("GET", "/cart", status=503, message="Maintenance")
    state = await user_manager.refresh_cart()
    assert state.items == ()
    assert state.unavailable is True
    assert state.loading is False


@pytest.mark.anyio("asyncio")
async def test_clear_cart(user_manager: CartStateManager, guest_manager: CartStateManager, backend: FakeBackend) -> None:
    backend.items = [{"productId": "p1", "quantity": 1}]
    state = await user_manager.clear_cart()
    assert state.items == ()
    assert backend.items == []

    await guest_manager.add_to_cart("p1")
    state = await guest_manager.clear_cart()
    assert state.items == ()


@pytest.mark.anyio("asyncio")
async def test_subscribers_see_every_change(guest_manager: CartStateManager) -> None:
    seen: list[int] = []
    unsubscribe = guest_manager.subscribe(lambda state: seen.append(state.count))

    def broken(state: CartState) -> None:
        raise RuntimeError("render failed")

    guest_manager.subscribe(broken)
    await guest_manager.add_to_cart("p1")
    await guest_manager.add_to_cart("p1", 2)
    unsubscribe()
    await guest_manager.add_to_cart("p1")
    assert seen == [1, 3]
    assert guest_manager.state.count == 4


@pytest.mark.anyio("asyncio")
async def test_admin_session_uses_guest_cart(guest_store: GuestCartStore, api: ApiClient, backend: FakeBackend) -> None:
    manager = CartStateManager(guest=guest_store, api=api, auth=AuthState(token="adm", kind=SessionKind.admin))
    state = await manager.add_to_cart("p1")
    assert manager.is_authenticated is False
    assert _keys(state) == [("p1::", 1)]
    assert backend.calls == []


@pytest.mark.anyio("asyncio")
async def test_totals_follow_current_items(guest_manager: CartStateManager) -> None:
    await guest_manager.add_to_cart("p1", 2, ProductSnapshot(name="Mug", price=100))
    totals = guest_manager.totals(tax_enabled=True, default_tax_percentage=5)
    assert totals.item_count == 2
    assert str(totals.total) == "210.00"


@pytest.mark.anyio("asyncio")
async def test_guest_refresh_with_unreachable_storage_shows_empty_cart(api: ApiClient) -> None:
    manager = CartStateManager(guest=GuestCartStore(BrokenStorage()), api=api)
    state = await manager.refresh_cart()
    assert state.items == ()
    assert state.loading is False
    assert metrics.snapshot()["storage_failures"] == 1


@pytest.mark.anyio("asyncio")
async def test_guest_writes_with_unreachable_storage_flag_the_cart_unavailable(api: ApiClient) -> None:
    manager = CartStateManager(guest=GuestCartStore(BrokenStorage()), api=api)
    seen: list[CartState] = []
    manager.subscribe(seen.append)

    for state in (
        await manager.add_to_cart("p1", 2),
        await manager.remove_from_cart("p1"),
        await manager.clear_cart(),
    ):
        assert state.items == ()
        assert state.unavailable is True
        assert state.error == GUEST_CART_UNAVAILABLE_MESSAGE
        assert state.loading is False
    assert seen[-1].unavailable is True


@pytest.mark.anyio("asyncio")
async def test_guest_save_recovers_once_storage_is_back(api: ApiClient, guest_store: GuestCartStore) -> None:
    manager = CartStateManager(guest=guest_store, api=api)
    real_storage = guest_store.storage
    guest_store.storage = BrokenStorage()
    assert (await manager.add_to_cart("p1")).unavailable is True

    guest_store.storage = real_storage
    state = await manager.add_to_cart("p1")
    assert state.unavailable is False
    assert state.error is None
    assert _keys(state) == [("p1::", 1)]
