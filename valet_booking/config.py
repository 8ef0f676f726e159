"""
Centralized configuration with environment variable overrides.

Pricing, slot granularity, storage and logging settings are configurable
here. Nothing is hardcoded in the scheduling or ledger logic.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from valet_booking.logging_context import RequestIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("memory", "sqlite")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_decimal(env_var: str, default: str) -> Decimal:
    """Parse a decimal amount from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return Decimal(raw)
    except (InvalidOperation, TypeError):
        raise ValueError(
            f"Invalid decimal for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BookingConfig:
    """Scheduling and pricing settings."""

    hourly_rate: Decimal = _safe_decimal("HOURLY_RATE", "10")
    slot_step_minutes: int = _safe_int("SLOT_STEP_MINUTES", "30")
    notes_max_length: int = _safe_int("NOTES_MAX_LENGTH", "500")
    timezone: str = os.getenv("BOOKING_TIMEZONE", "UTC")
    default_page_size: int = _safe_int("DEFAULT_PAGE_SIZE", "10")
    max_page_size: int = _safe_int("MAX_PAGE_SIZE", "100")


@dataclass(frozen=True)
class StorageConfig:
    """Which booking store backs the ledger."""

    backend: str = os.getenv("STORAGE_BACKEND", "memory")
    database_path: str = os.getenv("DATABASE_PATH", "instance/valet_booking.db")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    booking: BookingConfig = field(default_factory=BookingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "valet-booking")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.booking.hourly_rate < 0:
        raise ValueError(f"HOURLY_RATE must be >= 0, got {config.booking.hourly_rate}")
    if not 1 <= config.booking.slot_step_minutes <= 24 * 60:
        raise ValueError(
            f"SLOT_STEP_MINUTES must be between 1 and 1440, got {config.booking.slot_step_minutes}"
        )
    if config.booking.notes_max_length < 0:
        raise ValueError(
            f"NOTES_MAX_LENGTH must be >= 0, got {config.booking.notes_max_length}"
        )
    if config.booking.default_page_size < 1:
        raise ValueError(
            f"DEFAULT_PAGE_SIZE must be >= 1, got {config.booking.default_page_size}"
        )
    if config.booking.max_page_size < config.booking.default_page_size:
        raise ValueError(
            "MAX_PAGE_SIZE must be >= DEFAULT_PAGE_SIZE, "
            f"got {config.booking.max_page_size}"
        )
    try:
        ZoneInfo(config.booking.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"BOOKING_TIMEZONE is not a known timezone: {config.booking.timezone!r}"
        ) from None
    if config.storage.backend not in STORAGE_BACKENDS:
        raise ValueError(
            f"STORAGE_BACKEND must be one of {STORAGE_BACKENDS}, got {config.storage.backend!r}"
        )


def _build_log_handler() -> logging.Handler:
    """Stream handler whose records always carry a ``request_id``."""
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    return handler


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        handlers=[_build_log_handler()],
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
