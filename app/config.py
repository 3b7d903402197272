"""
Application configuration using pydantic-settings.
Loads environment variables for database, pricing and booking policy.
"""
from typing import Dict
from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "postgresql+asyncpg://localhost/parking"

    # Admin API
    admin_api_key: str = ""

    # App settings
    app_name: str = "Parking Booking API"
    debug: bool = False
    log_level: str = "INFO"

    # Pricing
    penalty_multiplier: float = 1.5
    space_type_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {
            "regular": 1.0,
            "handicapped": 1.0,
            "ev-charging": 1.2,
            "reserved": 1.5,
        }
    )
    extension_applies_type_multiplier: bool = False

    # Cancellation refund tiers (hours until start)
    full_refund_hours: float = 24
    partial_refund_hours: float = 2
    partial_refund_percentage: float = 50

    # Slot enumeration
    slot_minutes: int = 60

    # Concurrency
    space_lock_timeout_seconds: float = 10.0
    booking_write_max_attempts: int = 3

    # Expiry
    active_expiry_grace_hours: float = 24
    expiry_sweep_interval_seconds: int = 300

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
