from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from storecart.core.config import settings

flow_id_ctx_var: ContextVar[str | None] = ContextVar("flow_id", default=None)
payment_method_ctx_var: ContextVar[str | None] = ContextVar("payment_method", default=None)

# Attributes every LogRecord carries; anything else on a record came in through `extra`.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}


class CheckoutContextFilter(logging.Filter):
    """Stamp records with the gateway reference and payment method of the running checkout."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.flow_id = flow_id_ctx_var.get() or "-"
        record.payment_method = payment_method_ctx_var.get() or "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "flow_id": getattr(record, "flow_id", "-"),
            "payment_method": getattr(record, "payment_method", "-"),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key in payload or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(json_logs: bool | None = None, level: int = logging.INFO) -> None:
    """Install one root handler that knows about the running checkout."""
    if json_logs is None:
        json_logs = settings.json_logs
    handler = logging.StreamHandler()
    handler.addFilter(CheckoutContextFilter())
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s [%(flow_id)s %(payment_method)s] %(message)s")
        )

    logging.basicConfig(level=level, handlers=[handler], force=True)
