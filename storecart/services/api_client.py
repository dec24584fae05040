from __future__ import annotations

import logging
from typing import Any

import httpx

from storecart.core.config import settings
from storecart.schemas.auth import AuthState

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Something went wrong"


class ApiError(Exception):
    """Backend or transport failure, carrying the message meant for the shopper."""

    def __init__(self, message: str, *, status_code: int | None = None, errors: list[Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        for field in ("message", "error"):
            value = body.get(field)
            if isinstance(value, str) and value.strip():
                return value
    return DEFAULT_ERROR_MESSAGE


class ApiClient:
    """JSON client for the storefront REST backend."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        auth: AuthState | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.auth = auth or AuthState.anonymous()
        self.timeout = settings.http_timeout_seconds if timeout is None else timeout
        self._transport = transport

    def with_auth(self, auth: AuthState) -> "ApiClient":
        return ApiClient(self.base_url, auth=auth, timeout=self.timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.auth.token:
            headers["Authorization"] = f"Bearer {self.auth.token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.request(method, path, json=json, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("api_request_failed", extra={"method": method, "path": path, "error": str(exc)})
            raise ApiError(str(exc) or DEFAULT_ERROR_MESSAGE) from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if not resp.is_success:
            errors = body.get("errors") if isinstance(body, dict) else None
            raise ApiError(
                _error_message(body),
                status_code=resp.status_code,
                errors=errors if isinstance(errors, list) else None,
            )
        return body

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)


def unwrap_data(body: Any) -> Any:
    """Return the `data` member of a `{success, data}` envelope, if any."""
    if isinstance(body, dict):
        return body.get("data")
    return None
