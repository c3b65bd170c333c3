"""Configuration settings for the ranch ledger."""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), validation_alias="RANCH_DATA_DIR")
    ledger_file: str = Field(default="ledger.json", validation_alias="LEDGER_FILE")
    managers_file: str = Field(default="managers.json", validation_alias="MANAGERS_FILE")
    stock_file: str = Field(default="stock_config.json", validation_alias="STOCK_FILE")

    # Activity feed / inventory collaborator
    feed_api_url: str = Field(
        default="http://localhost:3001", validation_alias="FEED_API_URL"
    )
    feed_timeout: float = Field(default=15.0, validation_alias="FEED_TIMEOUT")
    feed_max_retries: int = Field(default=3, validation_alias="FEED_MAX_RETRIES")

    # Accountability policy
    liability_alert_threshold: Decimal = Field(
        default=Decimal("200"), validation_alias="LIABILITY_ALERT_THRESHOLD"
    )
    automated_deposit_amounts: list[Decimal] = Field(
        default_factory=lambda: [Decimal("160")],
        validation_alias="AUTOMATED_DEPOSIT_AMOUNTS",
    )
    fallback_unit_price: Decimal = Field(
        default=Decimal("0.50"), validation_alias="FALLBACK_UNIT_PRICE"
    )
    sync_workers: int = Field(default=4, validation_alias="SYNC_WORKERS")

    # Access control for liability resets
    admin_token: SecretStr = Field(
        default=SecretStr(""), validation_alias="ADMIN_TOKEN"
    )

    # HTTP API
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8000, validation_alias="API_PORT")

    # WebSocket
    ws_host: str = Field(default="0.0.0.0", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")
    ws_enabled: bool = Field(default=True, validation_alias="WS_ENABLED")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / self.ledger_file

    @property
    def managers_path(self) -> Path:
        return self.data_dir / self.managers_file

    @property
    def stock_path(self) -> Path:
        return self.data_dir / self.stock_file


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
