import json
from collections.abc import Generator
from typing import Any

import httpx
import pytest

from storecart.core import metrics
from storecart.schemas.auth import AuthState, SessionKind
from storecart.services.api_client import ApiClient
from storecart.services.guest_cart import GuestCartStore
from storecart.services.storage import MemoryStorage

API_BASE = "https://shop.test/api"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_metrics() -> Generator[None, None, None]:
    metrics.reset()
    yield
    metrics.reset()


class FakeBackend:
    """In-memory stand-in for the storefront REST backend."""

    def __init__(self) -> None:
        self.items: list[dict[str, Any]] = []
        self.calls: list[tuple[str, str, Any]] = []
        self.failures: dict[tuple[str, str], tuple[int, dict[str, Any]]] = {}
        self.order_response: tuple[int, dict[str, Any]] = (201, {"success": True, "data": {"_id": "o1"}})
        self.address_response: tuple[int, dict[str, Any]] = (201, {"success": True, "data": {"_id": "a1"}})

    def fail(self, method: str, path: str, status: int = 500, message: str = "Server exploded") -> None:
        self.failures[(method, path)] = (status, {"success": False, "message": message})

    def calls_to(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body in self.calls if m == method and p == path]

    def _line_index(self, product_id: str, variation_name: str) -> int:
        for idx, item in enumerate(self.items):
            if item["productId"] == product_id and item.get("variationName", "") == variation_name:
                return idx
        return -1

    def _add(self, body: dict[str, Any]) -> None:
        variation = body.get("variationName") or ""
        idx = self._line_index(body["productId"], variation)
        qty = max(1, int(body.get("quantity") or 1))
        if idx >= 0:
            self.items[idx]["quantity"] += qty
            return
        self.items.append(
            {
                "productId": body["productId"],
                "quantity": qty,
                "variationName": variation,
                "variationAttributes": body.get("variationAttributes") or [],
                "product": {"_id": body["productId"], "name": f"Product {body['productId']}", "price": 100},
            }
        )

    def _cart(self) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": {"items": self.items}})

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        failure = self.failures.get((request.method, path))
        if failure is not None:
            status, payload = failure
            return httpx.Response(status, json=payload)

        if path == "/cart" and request.method == "GET":
            return self._cart()
        if path == "/cart" and request.method == "POST":
            self._add(body)
            return self._cart()
        if path == "/cart" and request.method == "PUT":
            idx = self._line_index(body["productId"], body.get("variationName") or "")
            if idx >= 0:
                if body["quantity"] <= 0:
                    del self.items[idx]
                else:
                    self.items[idx]["quantity"] = body["quantity"]
            return self._cart()
        if path == "/cart" and request.method == "DELETE":
            self.items = []
            return self._cart()
        if path.startswith("/cart/items/") and request.method == "DELETE":
            product_id = path.removeprefix("/cart/items/")
            variation = request.url.params.get("variationName", "")
            self.items = [
                item
                for item in self.items
                if not (item["productId"] == product_id and item.get("variationName", "") == variation)
            ]
            return self._cart()
        if path == "/cart/merge" and request.method == "POST":
            for line in body["items"]:
                self._add(line)
            return self._cart()
        if path == "/orders" and request.method == "POST":
            status, payload = self.order_response
            return httpx.Response(status, json=payload)
        if path == "/orders" and request.method == "GET":
            return httpx.Response(200, json={"success": True, "data": [{"_id": "o1", "total": 310.5, "paymentMethod": "cashfree"}]})
        if path.startswith("/orders/") and request.method == "GET":
            return httpx.Response(200, json={"success": True, "data": {"_id": path.removeprefix("/orders/"), "items": []}})
        if path == "/addresses" and request.method == "POST":
            status, payload = self.address_response
            return httpx.Response(status, json=payload)
        return httpx.Response(404, json={"success": False, "message": "Not found"})


class BrokenStorage:
    """Storage whose medium is unreachable."""

    def __init__(self, message: str = "storage down") -> None:
        self.message = message

    async def get(self, key: str) -> str | None:
        raise ConnectionError(self.message)

    async def set(self, key: str, value: str) -> None:
        raise ConnectionError(self.message)

    async def delete(self, key: str) -> None:
        raise ConnectionError(self.message)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def api(backend: FakeBackend) -> ApiClient:
    return ApiClient(API_BASE, transport=httpx.MockTransport(backend.handler))


@pytest.fixture
def user_auth() -> AuthState:
    return AuthState(token="user-token", kind=SessionKind.user)


@pytest.fixture
def durable() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def guest_store(durable: MemoryStorage) -> GuestCartStore:
    return GuestCartStore(durable)
