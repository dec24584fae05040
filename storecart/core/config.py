from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="STORECART_", case_sensitive=False
    )

    app_name: str = "storecart"
    app_version: str = "0.1.0"
    environment: str = "local"

    api_base_url: str = "http://localhost:5000/api"
    http_timeout_seconds: float = 10.0

    guest_cart_key: str = "guest_cart"
    checkout_payload_key: str = "checkout_cashfree_payload"
    auth_token_key: str = "token"
    auth_kind_key: str = "userType"

    durable_storage_backend: Literal["memory", "file", "redis"] = "file"
    durable_storage_path: str = ".storecart"
    redis_url: str | None = None

    tax_enabled: bool = True
    default_tax_percentage: float = 0.0
    money_rounding: Literal["half_up", "half_even", "up", "down"] = "half_up"
    default_country: str = "IN"

    json_logs: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
