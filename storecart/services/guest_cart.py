from __future__ import annotations

import json
import logging
from typing import Any, Sequence

from pydantic import ValidationError

from storecart.core import metrics
from storecart.core.config import settings
from storecart.core.redis_client import json_dumps
from storecart.schemas.cart import GuestCartLine
from storecart.services.storage import STORAGE_ERRORS, KeyValueStorage

logger = logging.getLogger(__name__)


class GuestCartDecodeError(ValueError):
    """Stored guest cart could not be decoded into cart lines."""


def decode_guest_cart(raw: str | None) -> list[GuestCartLine]:
    if not raw:
        return []
    try:
        parsed: Any = json.loads(raw)
    except ValueError as exc:
        raise GuestCartDecodeError("Guest cart is not valid JSON") from exc
    if not isinstance(parsed, list):
        raise GuestCartDecodeError(f"Guest cart must be a list, got {type(parsed).__name__}")
    try:
        return [GuestCartLine.model_validate(entry) for entry in parsed]
    except ValidationError as exc:
        raise GuestCartDecodeError("Guest cart contains malformed lines") from exc


def encode_guest_cart(lines: Sequence[GuestCartLine]) -> str:
    return json_dumps([line.to_wire() for line in lines])


class GuestCartStore:
    """Anonymous cart kept under a single durable key."""

    def __init__(self, storage: KeyValueStorage, *, key: str | None = None) -> None:
        self.storage = storage
        self.key = key or settings.guest_cart_key

    async def load(self) -> list[GuestCartLine]:
        try:
            raw = await self.storage.get(self.key)
        except STORAGE_ERRORS as exc:
            metrics.record_storage_failure()
            logger.warning("guest_cart_read_failed", extra={"key": self.key, "error": str(exc)})
            return []
        try:
            return decode_guest_cart(raw)
        except GuestCartDecodeError as exc:
            # Corrupt state reads as an empty cart; the next save overwrites it.
            metrics.record_guest_cart_decode_failure()
            logger.warning("guest_cart_decode_failed", extra={"key": self.key, "error": str(exc)})
            return []

    async def save(self, lines: Sequence[GuestCartLine]) -> None:
        await self.storage.set(self.key, encode_guest_cart(lines))

    async def clear(self) -> None:
        await self.storage.delete(self.key)
