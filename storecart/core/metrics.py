from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_guest_cart_decode_failure() -> None:
    _inc("guest_cart_decode_failures")


def record_cart_merge() -> None:
    _inc("cart_merges")


def record_cart_merge_failure() -> None:
    _inc("cart_merge_failures")


def record_cart_unavailable() -> None:
    _inc("cart_unavailable")


def record_storage_failure() -> None:
    _inc("storage_failures")


def record_order_placed() -> None:
    _inc("orders_placed")


def record_checkout_failure() -> None:
    _inc("checkout_failures")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
