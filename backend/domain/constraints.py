"""Domain-level validation rules for rooms, opening hours and intervals."""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from backend.domain.errors import (
    InvalidBusinessHoursError,
    InvalidIntervalError,
    InvalidRoomError,
    InvalidTenantError,
)
from backend.domain.models import BusinessHours


TENANT_SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")


def intervals_overlap(
    first_start: datetime,
    first_end: datetime,
    second_start: datetime,
    second_end: datetime,
) -> bool:
    """Half-open overlap test: [s1, e1) and [s2, e2) share an instant."""
    return first_start < second_end and second_start < first_end


def validate_interval(
    start: datetime,
    end: datetime,
    *,
    now: Optional[datetime] = None,
) -> None:
    if start.tzinfo is None or end.tzinfo is None:
        raise InvalidIntervalError("start_time and end_time must be timezone-aware")
    if end <= start:
        raise InvalidIntervalError("End time must be after start time")
    if now is not None and start < now:
        raise InvalidIntervalError("Start time cannot be in the past")


def validate_business_hours(hours: Iterable[BusinessHours]) -> None:
    seen_days: set[int] = set()
    for record in hours:
        if not 0 <= record.day_of_week <= 6:
            raise InvalidBusinessHoursError(
                "Invalid day_of_week. Must be 0-6 (0 = Sunday)"
            )
        if record.day_of_week in seen_days:
            raise InvalidBusinessHoursError(
                f"Duplicate business hours for day_of_week {record.day_of_week}"
            )
        seen_days.add(record.day_of_week)
        if record.is_closed:
            continue
        if record.open_time is None or record.close_time is None:
            raise InvalidBusinessHoursError(
                "open_time and close_time are required when is_closed is false"
            )
        if record.open_time.microsecond or record.close_time.microsecond:
            raise InvalidBusinessHoursError(
                "open_time and close_time must not carry fractional seconds"
            )
        if record.close_time <= record.open_time:
            raise InvalidBusinessHoursError(
                f"close_time must be after open_time for day_of_week {record.day_of_week}"
            )


def validate_room_fields(
    *,
    name: Optional[str] = None,
    capacity: Optional[int] = None,
    category: Optional[str] = None,
    price_per_hour: Optional[Decimal] = None,
) -> None:
    if name is not None and not name.strip():
        raise InvalidRoomError("Room name must not be empty")
    if capacity is not None and capacity <= 0:
        raise InvalidRoomError("Room capacity must be a positive integer")
    if category is not None and not category.strip():
        raise InvalidRoomError("Room category must not be empty")
    if price_per_hour is not None and price_per_hour < 0:
        raise InvalidRoomError("price_per_hour must be >= 0")


def validate_tenant_slug(slug: str) -> None:
    if len(slug.strip()) < 2:
        raise InvalidTenantError("Tenant slug must be at least 2 characters")
    if TENANT_SLUG_PATTERN.fullmatch(slug) is None:
        raise InvalidTenantError(
            "Tenant slug can only contain lowercase letters, numbers, and hyphens"
        )
