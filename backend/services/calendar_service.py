"""Business-hours calendar: per-tenant weekly opening windows."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from backend.domain.constraints import validate_business_hours
from backend.domain.errors import InvalidBusinessHoursError
from backend.domain.models import BusinessHours, Tenant
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def day_of_week(value: datetime) -> int:
    """Weekday index with 0 = Sunday, matching stored business hours."""
    return value.isoweekday() % 7


def interval_fits_hours(
    hours: Optional[BusinessHours],
    local_start: datetime,
    local_end: datetime,
) -> bool:
    """Check a tenant-local interval against one weekday's opening window.

    A missing record counts as closed. The interval must stay on the calendar
    day of its start; crossing midnight fails.
    """
    if hours is None or hours.is_closed:
        return False
    if hours.open_time is None or hours.close_time is None:
        return False
    if local_end.date() != local_start.date():
        return False
    return (
        hours.open_time <= local_start.time()
        and local_end.time() <= hours.close_time
    )


class BusinessHoursCalendar:
    """Validates reservation intervals against opening hours."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def is_within_open_hours(
        self,
        conn: sqlite3.Connection,
        tenant: Tenant,
        start: datetime,
        end: datetime,
    ) -> bool:
        zone = ZoneInfo(tenant.timezone)
        local_start = start.astimezone(zone)
        local_end = end.astimezone(zone)
        hours = self._repository.fetch_business_hours(
            conn,
            tenant.tenant_id,
            day_of_week(local_start),
        )
        return interval_fits_hours(hours, local_start, local_end)

    def get_business_hours(self, tenant: Tenant) -> list[BusinessHours]:
        with self._repository.transaction(write=False) as conn:
            return self._repository.list_business_hours(conn, tenant.tenant_id)

    def set_business_hours(
        self,
        tenant: Tenant,
        hours: Iterable[BusinessHours],
    ) -> list[BusinessHours]:
        """Replace the tenant's whole week in one transaction."""
        records = list(hours)
        validate_business_hours(records)
        with self._repository.transaction() as conn:
            try:
                self._repository.replace_business_hours(conn, tenant.tenant_id, records)
            except sqlite3.IntegrityError as exc:
                raise InvalidBusinessHoursError(f"Business hours rejected: {exc}") from exc
            updated = self._repository.list_business_hours(conn, tenant.tenant_id)
        logger.info(
            "Business hours replaced for tenant %s (%s days)",
            tenant.tenant_id,
            len(records),
        )
        return updated
