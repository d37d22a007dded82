"""Tenant directory: identifier resolution and tenant provisioning."""

from __future__ import annotations

import sqlite3
from datetime import time
from decimal import Decimal
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.domain.constraints import validate_tenant_slug
from backend.domain.errors import (
    InvalidTenantError,
    TenantInactiveError,
    TenantNotFoundError,
    TenantSlugTakenError,
)
from backend.domain.models import BusinessHours, Tenant
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

TenantIdentifier = Union[int, str]

# Weekday 0 is Sunday.
DEFAULT_BUSINESS_HOURS = (
    BusinessHours(day_of_week=0, open_time=time(10, 0), close_time=time(21, 0)),
    BusinessHours(day_of_week=1, open_time=time(9, 0), close_time=time(22, 0)),
    BusinessHours(day_of_week=2, open_time=time(9, 0), close_time=time(22, 0)),
    BusinessHours(day_of_week=3, open_time=time(9, 0), close_time=time(22, 0)),
    BusinessHours(day_of_week=4, open_time=time(9, 0), close_time=time(22, 0)),
    BusinessHours(day_of_week=5, open_time=time(9, 0), close_time=time(23, 0)),
    BusinessHours(day_of_week=6, open_time=time(10, 0), close_time=time(23, 0)),
)

_IGNORED_SUBDOMAINS = {"www", "api"}


def tenant_slug_from_host(host: Optional[str], base_domain: str) -> Optional[str]:
    """Extract the tenant slug from a ``<slug>.<base_domain>`` host header.

    Returns ``None`` when the host carries no tenant subdomain. There is no
    default tenant.
    """
    if not host:
        return None
    hostname = host.split(":", 1)[0].strip().lower().rstrip(".")
    suffix = "." + base_domain.strip().lower().lstrip(".")
    if not hostname.endswith(suffix):
        return None
    subdomain = hostname[: -len(suffix)]
    if not subdomain or "." in subdomain or subdomain in _IGNORED_SUBDOMAINS:
        return None
    return subdomain


class TenantDirectory:
    """Resolves tenant identifiers to active tenants."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def resolve_tenant(self, identifier: TenantIdentifier) -> Tenant:
        with self._repository.transaction(write=False) as conn:
            return self.resolve_in(conn, identifier)

    def resolve_in(self, conn: sqlite3.Connection, identifier: TenantIdentifier) -> Tenant:
        """Resolve inside an already-open transaction.

        Integers are tenant ids (token claims); strings are slugs.
        """
        if isinstance(identifier, bool):
            raise TenantNotFoundError("Tenant identifier is invalid")
        if isinstance(identifier, int):
            tenant = self._repository.fetch_tenant_by_id(conn, identifier)
        else:
            slug = identifier.strip().lower()
            tenant = self._repository.fetch_tenant_by_slug(conn, slug) if slug else None
        if tenant is None:
            raise TenantNotFoundError(f"Tenant '{identifier}' not found")
        if not tenant.is_active:
            raise TenantInactiveError(f"Tenant '{tenant.slug}' is inactive")
        return tenant

    def create_tenant(
        self,
        *,
        name: str,
        slug: str,
        email: str,
        timezone_name: Optional[str] = None,
        currency: Optional[str] = None,
        max_rooms: Optional[int] = None,
        max_bookings_per_month: Optional[int] = None,
        seed_defaults: bool = True,
    ) -> Tenant:
        """Register a tenant, seeding default opening hours and a starter room."""
        validate_tenant_slug(slug)
        if not name.strip():
            raise InvalidTenantError("Tenant name is required")
        resolved_timezone = timezone_name or self._settings.default_timezone
        try:
            ZoneInfo(resolved_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise InvalidTenantError(f"Unknown timezone '{resolved_timezone}'") from exc

        with self._repository.transaction() as conn:
            if self._repository.fetch_tenant_by_slug(conn, slug) is not None:
                raise TenantSlugTakenError(
                    f"Tenant slug '{slug}' already exists. Please choose a different one."
                )
            tenant_id = self._repository.insert_tenant(
                conn,
                name=name.strip(),
                slug=slug,
                email=email,
                timezone_name=resolved_timezone,
                currency=currency or self._settings.default_currency,
                max_rooms=max_rooms or self._settings.default_max_rooms,
                max_bookings_per_month=(
                    max_bookings_per_month or self._settings.default_max_bookings_per_month
                ),
            )
            if seed_defaults:
                self._repository.replace_business_hours(conn, tenant_id, DEFAULT_BUSINESS_HOURS)
                self._repository.insert_room(
                    conn,
                    tenant_id=tenant_id,
                    name="Main Room",
                    capacity=4,
                    category="Standard",
                    description="Main karaoke room",
                    price_per_hour=Decimal("25.00"),
                )
            tenant = self._repository.fetch_tenant_by_id(conn, tenant_id)
        logger.info("Tenant %s registered with id %s", slug, tenant_id)
        return tenant

    def deactivate_tenant(self, identifier: TenantIdentifier) -> Tenant:
        with self._repository.transaction() as conn:
            tenant = self.resolve_in(conn, identifier)
            self._repository.set_tenant_active(conn, tenant.tenant_id, False)
            updated = self._repository.fetch_tenant_by_id(conn, tenant.tenant_id)
        logger.info("Tenant %s deactivated", tenant.slug)
        return updated

    def ensure_demo_tenant(self) -> Optional[Tenant]:
        """Seed the configured demo tenant once; skipped when it already exists."""
        if not self._settings.seed_demo_data:
            return None
        slug = self._settings.demo_tenant_slug
        with self._repository.transaction(write=False) as conn:
            existing = self._repository.fetch_tenant_by_slug(conn, slug)
        if existing is not None:
            logger.info("Demo tenant '%s' already present; skipping seed", slug)
            return existing
        return self.create_tenant(
            name="Boom Karaoke Demo",
            slug=slug,
            email=f"admin@{slug}.example.com",
        )
