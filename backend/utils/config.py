"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration injected into every layer."""

    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    storage_timeout_seconds: float
    admin_token: str | None
    seed_demo_data: bool
    demo_tenant_slug: str
    default_timezone: str
    default_currency: str
    default_max_rooms: int
    default_max_bookings_per_month: int
    tenant_host_suffix: str
    allow_tenant_header: bool
    session_ttl_seconds: int
    max_sessions: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Boom Booking Allocation Engine"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("DATABASE_PATH", "data/boom_booking.db")),
        storage_timeout_seconds=_env_float("STORAGE_TIMEOUT_SECONDS", 5.0),
        admin_token=os.getenv("ADMIN_TOKEN") or None,
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        demo_tenant_slug=os.getenv("DEMO_TENANT_SLUG", "demo"),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "America/New_York"),
        default_currency=os.getenv("DEFAULT_CURRENCY", "USD"),
        default_max_rooms=_env_int("DEFAULT_MAX_ROOMS", 10),
        default_max_bookings_per_month=_env_int("DEFAULT_MAX_BOOKINGS_PER_MONTH", 500),
        tenant_host_suffix=os.getenv("TENANT_HOST_SUFFIX", "boomkaraoke.com"),
        allow_tenant_header=_env_bool("ALLOW_TENANT_HEADER", False),
        session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", 8 * 3600),
        max_sessions=_env_int("MAX_SESSIONS", 1000),
    )
