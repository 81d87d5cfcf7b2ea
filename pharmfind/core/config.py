"""Application configuration."""
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "PharmFind Fulfillment"

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./pharmfind.db"
    order_store: Literal["memory", "json", "sql"] = "memory"
    order_store_path: str = "./data/orders.json"

    # Catalogue
    catalog_file: Optional[str] = None

    # Pricing
    delivery_fee_per_pharmacy: float = 1.0

    # Review
    min_rejection_reason_length: int = 10

    # Dispatch polling
    dispatch_polling_enabled: bool = True
    dispatch_poll_interval_seconds: float = 15.0

    # Logging
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
