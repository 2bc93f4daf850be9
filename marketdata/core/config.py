"""Application configuration management."""
from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from marketdata.domain import ALL_TIMEFRAMES, DEFAULT_SOURCE_PRECEDENCE, DataSource, Timeframe
from marketdata.symbols import CANONICAL_SYMBOLS


def _split_csv(value: object) -> object:
    """Accept either a JSON array or a comma separated string from the environment."""

    if not isinstance(value, str):
        return value
    stripped = value.strip()
    if stripped.startswith("["):
        return json.loads(stripped)
    return [item.strip() for item in stripped.split(",") if item.strip()]


class Settings(BaseSettings):
    """Typed application settings loaded from the environment."""

    db_url: str = Field(default="sqlite+aiosqlite:///./marketdata.db", validation_alias="DB_URL")
    env: Literal["local", "dev", "prod"] = Field(default="local", validation_alias="ENV")
    git_sha: str | None = Field(default=None, validation_alias="GIT_SHA")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost", "http://localhost:3000"],
        validation_alias="CORS_ALLOWED_ORIGINS",
    )

    livecoinwatch_api_key: SecretStr | None = Field(default=None, validation_alias="LIVECOINWATCH_API_KEY")
    coinmarketcap_api_key: SecretStr | None = Field(default=None, validation_alias="COINMARKETCAP_API_KEY")
    livecoinwatch_base_url: str = Field(
        default="https://api.livecoinwatch.com", validation_alias="LIVECOINWATCH_BASE_URL"
    )
    coinmarketcap_base_url: str = Field(
        default="https://pro-api.coinmarketcap.com", validation_alias="COINMARKETCAP_BASE_URL"
    )
    http_timeout_seconds: float = Field(default=10.0, gt=0, validation_alias="HTTP_TIMEOUT_SECONDS")
    source_max_retries: int = Field(default=3, ge=1, validation_alias="SOURCE_MAX_RETRIES")
    source_backoff_seconds: float = Field(default=1.0, ge=0, validation_alias="SOURCE_BACKOFF_SECONDS")
    default_candle_limit: int = Field(default=500, ge=1, le=1000, validation_alias="DEFAULT_CANDLE_LIMIT")
    source_precedence: Annotated[list[DataSource], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SOURCE_PRECEDENCE),
        validation_alias="SOURCE_PRECEDENCE",
    )
    single_flight: bool = Field(default=False, validation_alias="MARKETDATA_SINGLE_FLIGHT")

    tracked_symbols: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(CANONICAL_SYMBOLS),
        validation_alias="TRACKED_SYMBOLS",
    )
    sync_timeframes: Annotated[list[Timeframe], NoDecode] = Field(
        default_factory=lambda: list(ALL_TIMEFRAMES),
        validation_alias="SYNC_TIMEFRAMES",
    )
    scheduler_enabled: bool = Field(default=True, validation_alias="SCHEDULER_ENABLED")
    cache_sweep_interval_seconds: int = Field(default=60, ge=1, validation_alias="CACHE_SWEEP_INTERVAL_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False, populate_by_name=True
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_cors(cls, value: object) -> object:
        if isinstance(value, str):
            origins = _split_csv(value)
            return origins or ["http://localhost", "http://localhost:3000"]
        return value

    @field_validator("source_precedence", "tracked_symbols", mode="before")
    @classmethod
    def _split_lists(cls, value: object) -> object:
        return _split_csv(value)

    @field_validator("sync_timeframes", mode="before")
    @classmethod
    def _parse_timeframes(cls, value: object) -> object:
        items = _split_csv(value)
        if isinstance(items, list):
            return [Timeframe.parse(item) for item in items]
        return items

    @field_validator("tracked_symbols")
    @classmethod
    def _upper_symbols(cls, value: list[str]) -> list[str]:
        return [symbol.upper() for symbol in value]

    @property
    def is_local(self) -> bool:
        return self.env == "local"

    def require_production_secrets(self) -> None:
        if self.is_local:
            return
        missing = [
            name
            for name, secret in (
                ("LIVECOINWATCH_API_KEY", self.livecoinwatch_api_key),
                ("COINMARKETCAP_API_KEY", self.coinmarketcap_api_key),
            )
            if secret is None or not secret.get_secret_value()
        ]
        if missing:
            raise ValueError(f"{', '.join(missing)} must be set in non-local environments.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    settings = Settings()
    settings.require_production_secrets()
    return settings
