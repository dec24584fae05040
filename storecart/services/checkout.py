from __future__ import annotations

import logging
from typing import Mapping
from urllib.parse import parse_qs, urlsplit

from pydantic import ValidationError

from storecart.core import metrics
from storecart.core.config import settings
from storecart.core.logging_config import flow_id_ctx_var, payment_method_ctx_var
from storecart.schemas.checkout import CheckoutResult, CheckoutStatus, PendingOrderPayload
from storecart.services.addresses import AddressClient, address_from_shipping
from storecart.services.api_client import ApiError
from storecart.services.orders import OrdersClient
from storecart.services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

MISSING_REFERENCE_MESSAGE = "Missing order reference. Return from the payment page or try checkout again."
SESSION_EXPIRED_MESSAGE = "Checkout session expired. Please place your order again from the cart."
SESSION_INVALID_MESSAGE = "Checkout session is invalid. Please place your order again from the cart."
ORDER_INCOMPLETE_MESSAGE = "Order could not be completed."
GENERIC_ERROR_MESSAGE = "Something went wrong."

_REFERENCE_PARAMS = ("cf_order_id", "order_id")

# payment method -> (payload field, key inside that field)
_GATEWAY_REFERENCE_FIELDS: dict[str, tuple[str, str]] = {
    "cashfree": ("cashfree_payment", "order_id"),
    "razorpay": ("razorpay_payment", "razorpay_order_id"),
}


class UnsupportedGatewayError(ValueError):
    pass


def extract_gateway_reference(source: str | Mapping[str, str] | None) -> str | None:
    """Gateway order reference from a return URL or its parsed query parameters."""
    if source is None:
        return None
    if isinstance(source, str):
        query = parse_qs(urlsplit(source).query)
        params = {name: values[0] for name, values in query.items() if values}
    else:
        params = dict(source)
    for name in _REFERENCE_PARAMS:
        value = (params.get(name) or "").strip()
        if value:
            return value
    return None


def attach_gateway_reference(payload: PendingOrderPayload, reference: str) -> PendingOrderPayload:
    method = (payload.payment_method or "cashfree").strip().lower()
    target = _GATEWAY_REFERENCE_FIELDS.get(method)
    if target is None:
        raise UnsupportedGatewayError(f"Payment method {method!r} does not use a payment gateway redirect.")
    field_name, ref_key = target
    return payload.model_copy(update={"payment_method": method, field_name: {ref_key: reference}})


async def begin_checkout(
    session_storage: KeyValueStorage, payload: PendingOrderPayload, *, key: str | None = None
) -> None:
    """Persist the order draft for the tab before redirecting to the gateway."""
    draft = payload.model_copy(update={"cashfree_payment": None, "razorpay_payment": None})
    await session_storage.set(key or settings.checkout_payload_key, draft.model_dump_json(by_alias=True, exclude_none=True))


class CheckoutConfirmationFlow:
    """Finalizes an order when the payment gateway sends the shopper back.

    Each pending payload is submitted at most once: it is removed from session
    storage right after the placement attempt, whatever the outcome, so a reload
    of the return page reports an expired session instead of placing again.
    """

    def __init__(
        self,
        *,
        session_storage: KeyValueStorage,
        orders: OrdersClient,
        addresses: AddressClient | None = None,
        key: str | None = None,
    ) -> None:
        self.session_storage = session_storage
        self.orders = orders
        self.addresses = addresses
        self.key = key or settings.checkout_payload_key
        self.result = CheckoutResult(status=CheckoutStatus.loading)

    def _fail(self, message: str) -> CheckoutResult:
        metrics.record_checkout_failure()
        logger.warning("checkout_confirmation_failed", extra={"error": message})
        self.result = CheckoutResult(status=CheckoutStatus.error, error=message)
        return self.result

    async def _discard_payload(self) -> None:
        try:
            await self.session_storage.delete(self.key)
        except Exception as exc:
            logger.warning("checkout_payload_delete_failed", extra={"key": self.key, "error": str(exc)})

    async def run(self, source: str | Mapping[str, str] | None) -> CheckoutResult:
        self.result = CheckoutResult(status=CheckoutStatus.loading)
        reference = extract_gateway_reference(source)
        flow_token = flow_id_ctx_var.set(reference)
        method_token = payment_method_ctx_var.set(None)
        try:
            return await self._confirm(reference)
        finally:
            payment_method_ctx_var.reset(method_token)
            flow_id_ctx_var.reset(flow_token)

    async def _confirm(self, reference: str | None) -> CheckoutResult:
        if not reference:
            return self._fail(MISSING_REFERENCE_MESSAGE)

        try:
            raw = await self.session_storage.get(self.key)
        except Exception as exc:
            logger.exception("checkout_payload_read_failed")
            return self._fail(str(exc) or GENERIC_ERROR_MESSAGE)
        if not raw:
            return self._fail(SESSION_EXPIRED_MESSAGE)

        try:
            payload = attach_gateway_reference(PendingOrderPayload.model_validate_json(raw), reference)
        except ValidationError:
            await self._discard_payload()
            return self._fail(SESSION_INVALID_MESSAGE)
        except UnsupportedGatewayError as exc:
            await self._discard_payload()
            return self._fail(str(exc))

        payment_method_ctx_var.set(payload.payment_method)
        try:
            order = await self.orders.place_order(payload)
        except ApiError as exc:
            return self._fail(exc.message)
        except Exception as exc:
            logger.exception("checkout_place_order_crashed")
            return self._fail(str(exc) or GENERIC_ERROR_MESSAGE)
        finally:
            await self._discard_payload()

        if order is None or not order.id:
            return self._fail(ORDER_INCOMPLETE_MESSAGE)

        metrics.record_order_placed()
        logger.info("checkout_order_placed", extra={"order_id": order.id})
        self.result = CheckoutResult(status=CheckoutStatus.success, order_id=order.id)
        await self._save_address_for_later(payload)
        return self.result

    async def _save_address_for_later(self, payload: PendingOrderPayload) -> None:
        if not payload.save_address_for_later or self.addresses is None:
            return
        if not payload.shipping_address.is_complete():
            return
        try:
            await self.addresses.create(address_from_shipping(payload.shipping_address))
        except Exception as exc:
            # Best effort: the order stays placed.
            logger.warning("save_address_for_later_failed", extra={"error": str(exc)})
