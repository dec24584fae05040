from __future__ import annotations

import logging

from storecart.core.config import settings
from storecart.schemas.auth import AuthState, SessionKind
from storecart.services.storage import STORAGE_ERRORS, KeyValueStorage

logger = logging.getLogger(__name__)


async def read_auth_state(storage: KeyValueStorage) -> AuthState:
    """Read the token and session kind persisted by the login flow.

    An unreadable store resolves to an anonymous session.
    """
    try:
        token = await storage.get(settings.auth_token_key)
        raw_kind = (await storage.get(settings.auth_kind_key) or "").strip().lower()
    except STORAGE_ERRORS as exc:
        logger.warning("auth_state_read_failed", extra={"error": str(exc)})
        return AuthState.anonymous()
    try:
        kind = SessionKind(raw_kind) if raw_kind else None
    except ValueError:
        kind = None
    return AuthState(token=token or None, kind=kind)


async def store_auth_state(storage: KeyValueStorage, auth: AuthState) -> None:
    if not auth.token or auth.kind is None:
        await clear_auth_state(storage)
        return
    await storage.set(settings.auth_token_key, auth.token)
    await storage.set(settings.auth_kind_key, auth.kind.value)


async def clear_auth_state(storage: KeyValueStorage) -> None:
    await storage.delete(settings.auth_token_key)
    await storage.delete(settings.auth_kind_key)
