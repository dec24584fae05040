from enum import Enum

from pydantic import BaseModel, ConfigDict


class SessionKind(str, Enum):
    user = "user"
    admin = "admin"


class AuthState(BaseModel):
    """Bearer token plus the kind of session it belongs to."""

    model_config = ConfigDict(frozen=True)

    token: str | None = None
    kind: SessionKind | None = None

    @classmethod
    def anonymous(cls) -> "AuthState":
        return cls()

    @property
    def is_user_session(self) -> bool:
        # Admin sessions are a separate identity and never own a shopper cart.
        return bool((self.token or "").strip()) and self.kind == SessionKind.user
