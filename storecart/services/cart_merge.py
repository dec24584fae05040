from __future__ import annotations

import logging
from typing import Sequence

from storecart.core import metrics
from storecart.schemas.cart import CartItem, GuestCartLine, MergeLine
from storecart.services.api_client import ApiError
from storecart.services.guest_cart import GuestCartStore
from storecart.services.remote_cart import RemoteCartClient
from storecart.services.storage import STORAGE_ERRORS

logger = logging.getLogger(__name__)


def merge_lines(lines: Sequence[GuestCartLine]) -> list[MergeLine]:
    """Guest lines as submitted for merging; lines holding no units are left out."""
    dropped = [line.identity_key for line in lines if line.quantity <= 0]
    if dropped:
        logger.warning("guest_cart_lines_skipped", extra={"lines": dropped})
    return [
        MergeLine(
            product_id=line.product_id,
            quantity=line.quantity,
            variation_name=line.variation_name or None,
            variation_attributes=line.variation_attributes or None,
        )
        for line in lines
        if line.quantity > 0
    ]


async def _clear_guest(guest: GuestCartStore) -> None:
    try:
        await guest.clear()
    except STORAGE_ERRORS as exc:
        metrics.record_storage_failure()
        logger.error("guest_cart_clear_failed", extra={"key": guest.key, "error": str(exc)})


async def merge_guest_cart(guest: GuestCartStore, remote: RemoteCartClient) -> list[CartItem] | None:
    """Hand the guest cart over to the shopper's server cart, at most once.

    Returns the merged server items, or None when the caller has to refresh from
    the server (nothing to merge, merge failed, or the reply had no items). The
    guest key is cleared whatever happens, so a retry can never submit the same
    lines twice. Quantity conflicts are resolved by the backend.
    """
    lines = merge_lines(await guest.load())
    if not lines:
        await _clear_guest(guest)
        return None

    try:
        items = await remote.merge(lines)
    except ApiError as exc:
        metrics.record_cart_merge_failure()
        logger.warning(
            "guest_cart_merge_failed",
            extra={"lines": len(lines), "error": exc.message, "status_code": exc.status_code},
        )
        return None
    finally:
        await _clear_guest(guest)

    metrics.record_cart_merge()
    logger.info("guest_cart_merged", extra={"lines": len(lines)})
    return items
