"""Tests for the pure domain rules.

Covers half-open overlap, interval validation, opening-hours records and
tenant slugs.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

import pytest

from backend.domain.constraints import (
    intervals_overlap,
    validate_business_hours,
    validate_interval,
    validate_room_fields,
    validate_tenant_slug,
)
from backend.domain.errors import (
    InvalidBusinessHoursError,
    InvalidIntervalError,
    InvalidRoomError,
    InvalidTenantError,
)
from backend.domain.models import BusinessHours


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, 20, hour, minute, tzinfo=timezone.utc)


# --- intervals_overlap ---

def test_back_to_back_intervals_do_not_overlap() -> None:
    assert not intervals_overlap(at(10), at(11), at(11), at(12))
    assert not intervals_overlap(at(11), at(12), at(10), at(11))


def test_partial_overlap_is_detected() -> None:
    assert intervals_overlap(at(10), at(11, 30), at(11), at(12))


def test_containment_is_overlap() -> None:
    assert intervals_overlap(at(10), at(14), at(11), at(12))
    assert intervals_overlap(at(11), at(12), at(10), at(14))


def test_identical_intervals_overlap() -> None:
    assert intervals_overlap(at(10), at(11), at(10), at(11))


# --- validate_interval ---

def test_valid_interval_passes() -> None:
    validate_interval(at(10), at(11), now=at(9))


def test_end_before_start_raises() -> None:
    with pytest.raises(InvalidIntervalError, match="End time must be after start time"):
        validate_interval(at(11), at(10))


def test_zero_length_interval_raises() -> None:
    with pytest.raises(InvalidIntervalError):
        validate_interval(at(10), at(10))


def test_start_in_the_past_raises() -> None:
    with pytest.raises(InvalidIntervalError, match="past"):
        validate_interval(at(10), at(11), now=at(10) + timedelta(seconds=1))


def test_naive_datetimes_are_rejected() -> None:
    with pytest.raises(InvalidIntervalError):
        validate_interval(datetime(2026, 10, 20, 10), datetime(2026, 10, 20, 11))


# --- validate_business_hours ---

def test_default_week_passes() -> None:
    validate_business_hours(
        [BusinessHours(day, time(9, 0), time(22, 0)) for day in range(7)]
    )


def test_closed_day_does_not_need_times() -> None:
    validate_business_hours([BusinessHours(0, None, None, is_closed=True)])


def test_day_out_of_range_raises() -> None:
    with pytest.raises(InvalidBusinessHoursError):
        validate_business_hours([BusinessHours(7, time(9, 0), time(22, 0))])


def test_duplicate_day_raises() -> None:
    with pytest.raises(InvalidBusinessHoursError, match="Duplicate"):
        validate_business_hours(
            [
                BusinessHours(1, time(9, 0), time(22, 0)),
                BusinessHours(1, time(10, 0), time(20, 0)),
            ]
        )


def test_close_before_open_raises() -> None:
    with pytest.raises(InvalidBusinessHoursError):
        validate_business_hours([BusinessHours(2, time(22, 0), time(9, 0))])


def test_open_day_without_times_raises() -> None:
    with pytest.raises(InvalidBusinessHoursError):
        validate_business_hours([BusinessHours(2, None, time(22, 0))])


# --- rooms and tenants ---

def test_room_capacity_must_be_positive() -> None:
    with pytest.raises(InvalidRoomError):
        validate_room_fields(capacity=0)


def test_room_name_must_not_be_blank() -> None:
    with pytest.raises(InvalidRoomError):
        validate_room_fields(name="   ")


@pytest.mark.parametrize("slug", ["alpha", "boom-karaoke", "k9"])
def test_valid_tenant_slugs_pass(slug: str) -> None:
    validate_tenant_slug(slug)


@pytest.mark.parametrize("slug", ["a", "Alpha", "boom_karaoke", "boom karaoke"])
def test_invalid_tenant_slugs_raise(slug: str) -> None:
    with pytest.raises(InvalidTenantError):
        validate_tenant_slug(slug)
