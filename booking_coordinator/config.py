"""
Centralized configuration with environment variable overrides.

Lifecycle policy switches, query limits and logging settings live here.
The retry ceiling itself is fixed per booking and is not configurable.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from booking_coordinator.logging_context import BookingIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    normalized = str(raw).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class LifecycleConfig:
    """Booking lifecycle policy."""

    reset_retry_on_revive: bool = _safe_bool("RESET_RETRY_ON_REVIVE", "false")
    default_customer_name: str = os.getenv("DEFAULT_CUSTOMER_NAME", "Guest Customer")
    default_cancel_reason: str = os.getenv("DEFAULT_CANCEL_REASON", "No reason provided")


@dataclass(frozen=True)
class QueryConfig:
    """Read-side query limits."""

    event_query_limit: int = _safe_int("EVENT_QUERY_LIMIT", "100")
    max_event_query_limit: int = _safe_int("MAX_EVENT_QUERY_LIMIT", "1000")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    queries: QueryConfig = field(default_factory=QueryConfig)
    seed_default_providers: bool = _safe_bool("SEED_DEFAULT_PROVIDERS", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "booking-coordinator")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.queries.event_query_limit < 1:
        raise ValueError(
            f"EVENT_QUERY_LIMIT must be >= 1, got {config.queries.event_query_limit}"
        )
    if config.queries.max_event_query_limit < config.queries.event_query_limit:
        raise ValueError(
            "MAX_EVENT_QUERY_LIMIT must be >= EVENT_QUERY_LIMIT, "
            f"got {config.queries.max_event_query_limit}"
        )
    if not config.lifecycle.default_customer_name.strip():
        raise ValueError("DEFAULT_CUSTOMER_NAME must not be blank")
    if not config.lifecycle.default_cancel_reason.strip():
        raise ValueError("DEFAULT_CANCEL_REASON must not be blank")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] [%(booking_id)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, BookingIdFilter) for f in handler.filters):
            handler.addFilter(BookingIdFilter())
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
