"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup - if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from x402_escrow.config import get_settings
    settings = get_settings()
    print(settings.chain_id)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the x402 payment escrow."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Network / EIP-712 domain ---
    chain_id: int = 31337
    token_name: str = "USDC"
    token_version: str = "1"
    token_address: str = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    token_decimals: int = 6

    # --- Escrow identities ---
    escrow_address: str = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
    administrator_address: str = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
    # The identity the HTTP API acts as when it drives the escrow.
    operator_address: str = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
    # Comma-separated list of coordinators authorized at startup.
    coordinator_addresses: str = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

    # --- Payments ---
    payment_timeout_seconds: int = 3600

    # --- Event store (SQLAlchemy) ---
    event_store_enabled: bool = False
    database_url: str = "sqlite:///./payment_events.db"
    db_echo_sql: bool = False

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def coordinator_address_list(self) -> list[str]:
        """Parse comma-separated coordinator addresses into a list."""
        if not self.coordinator_addresses:
            return []
        return [a.strip() for a in self.coordinator_addresses.split(",") if a.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
