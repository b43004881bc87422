"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the stock reconciliation core, loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - relative sqlite file by default, override via env for PostgreSQL
    database_url: str = "sqlite:///./data/livebase.db"

    # Redis - optional, backs the stock snapshot cache when set
    redis_url: Optional[str] = None

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Stock snapshot cache
    stock_cache_ttl_seconds: int = 600  # 10 minutes
    stock_cache_max_entries: int = 10000

    # Low-stock threshold resolution
    low_stock_setting_key: str = "stock.low_quantity_threshold"
    low_stock_fallback_boxes: int = 5

    # Costing
    cost_decimal_places: int = 2

    # Listing
    default_page_size: int = 20
    max_page_size: int = 500

    # Display language used when resolving multilingual goods names
    default_locale: str = "zh_CN"

    @field_validator("stock_cache_ttl_seconds")
    @classmethod
    def validate_cache_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("stock_cache_ttl_seconds must be positive")
        return v

    @field_validator("low_stock_fallback_boxes")
    @classmethod
    def validate_fallback_boxes(cls, v: int) -> int:
        if v < 0:
            raise ValueError("low_stock_fallback_boxes cannot be negative")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
