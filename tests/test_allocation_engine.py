from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from backend.domain.errors import (
    AlreadyCancelledError,
    BookingNotActiveError,
    BookingNotFoundError,
    InvalidBookingError,
    InvalidIntervalError,
    OutsideBusinessHoursError,
    RoomInactiveError,
    RoomNotFoundError,
    StorageUnavailableError,
    TenantInactiveError,
    TenantLimitExceededError,
    TimeSlotConflictError,
)
from backend.domain.models import (
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    BookingPatch,
    Customer,
    Room,
    SwapTarget,
    Tenant,
)
from backend.repository.data_repository import DataRepository
from backend.services.allocation_service import AllocationEngine
from backend.services.conflict_service import IntervalConflictDetector
from backend.services.room_service import RoomCatalog
from backend.services.tenant_service import TenantDirectory
from backend.utils.config import get_settings


# Monday 2026-10-19 08:00 UTC; bookings below land on Tuesday (open 09:00-22:00).
NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
GUEST = Customer(name="Jamie Rivera", email="jamie@example.com", phone="555-0100")


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    return replace(
        get_settings(),
        database_path=tmp_path / filename,
        seed_demo_data=False,
        admin_token=None,
        default_timezone="UTC",
        storage_timeout_seconds=5.0,
    )


def tue(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, 20, hour, minute, tzinfo=timezone.utc)


@dataclass
class Fixture:
    repository: DataRepository
    directory: TenantDirectory
    engine: AllocationEngine
    tenant: Tenant
    main_room: Room
    vip_room: Room


def _build_fixture(tmp_path, filename: str = "allocation.db", **tenant_overrides) -> Fixture:
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    directory = TenantDirectory(repository=repository, settings=settings)
    tenant = directory.create_tenant(
        name="Alpha Karaoke",
        slug="alpha",
        email="owner@alpha.example.com",
        **tenant_overrides,
    )
    catalog = RoomCatalog(repository=repository, settings=settings, clock=lambda: NOW)
    vip_room = catalog.create_room(
        tenant,
        name="VIP Lounge",
        capacity=10,
        category="VIP",
        price_per_hour=Decimal("40.00"),
    )
    main_room = next(room for room in catalog.list_rooms(tenant) if room.name == "Main Room")
    engine = AllocationEngine(
        repository=repository,
        settings=settings,
        tenant_directory=directory,
        clock=lambda: NOW,
    )
    return Fixture(repository, directory, engine, tenant, main_room, vip_room)


# --- create ---

def test_create_prices_and_returns_booking(tmp_path) -> None:
    fx = _build_fixture(tmp_path)

    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11, 30))

    assert booking.booking_id > 0
    assert booking.status == STATUS_CONFIRMED
    assert booking.total_price == Decimal("37.50")
    assert booking.start_time == tue(10)
    assert booking.end_time == tue(11, 30)
    assert booking.room_name == "Main Room"
    assert booking.customer.name == "Jamie Rivera"


def test_back_to_back_bookings_are_allowed(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    second = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(11), tue(12))

    assert second.start_time == tue(11)


def test_overlapping_booking_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(12))

    with pytest.raises(TimeSlotConflictError):
        fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(11), tue(13))


def test_same_slot_in_another_room_is_allowed(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(12))

    booking = fx.engine.create(fx.tenant.tenant_id, fx.vip_room.room_id, GUEST, tue(10), tue(12))

    assert booking.total_price == Decimal("80.00")


def test_cancelled_booking_frees_its_slot(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    first = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    fx.engine.cancel(fx.tenant.tenant_id, first.booking_id)

    again = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    assert again.booking_id != first.booking_id


def test_create_outside_business_hours_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)

    with pytest.raises(OutsideBusinessHoursError):
        fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(21, 30), tue(22, 30))


def test_create_in_the_past_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    past = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)

    with pytest.raises(InvalidIntervalError, match="past"):
        fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, past, tue(10))


def test_inverted_interval_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)

    with pytest.raises(InvalidIntervalError):
        fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(12), tue(11))


def test_blank_customer_name_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)

    with pytest.raises(InvalidBookingError):
        fx.engine.create(
            fx.tenant.tenant_id,
            fx.main_room.room_id,
            Customer(name="   "),
            tue(10),
            tue(11),
        )


def test_unknown_room_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)

    with pytest.raises(RoomNotFoundError):
        fx.engine.create(fx.tenant.tenant_id, 9999, GUEST, tue(10), tue(11))


def test_inactive_room_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    catalog = RoomCatalog(repository=fx.repository, clock=lambda: NOW)
    catalog.deactivate_room(fx.tenant, fx.vip_room.room_id)

    with pytest.raises(RoomInactiveError):
        fx.engine.create(fx.tenant.tenant_id, fx.vip_room.room_id, GUEST, tue(10), tue(11))


def test_naive_timestamps_use_tenant_timezone(tmp_path) -> None:
    fx = _build_fixture(tmp_path, timezone_name="America/New_York")

    booking = fx.engine.create(
        fx.tenant.tenant_id,
        fx.main_room.room_id,
        GUEST,
        datetime(2026, 10, 20, 10, 0),
        datetime(2026, 10, 20, 11, 0),
    )

    assert booking.start_time == datetime(2026, 10, 20, 14, 0, tzinfo=timezone.utc)


def test_tenant_can_be_resolved_by_slug(tmp_path) -> None:
    fx = _build_fixture(tmp_path)

    booking = fx.engine.create("alpha", fx.main_room.room_id, GUEST, tue(10), tue(11))

    assert booking.tenant_id == fx.tenant.tenant_id


def test_inactive_tenant_cannot_book(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    fx.directory.deactivate_tenant(fx.tenant.tenant_id)

    with pytest.raises(TenantInactiveError):
        fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))


def test_monthly_quota_is_enforced(tmp_path) -> None:
    fx = _build_fixture(tmp_path, max_bookings_per_month=1)
    fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    with pytest.raises(TenantLimitExceededError):
        fx.engine.create(fx.tenant.tenant_id, fx.vip_room.room_id, GUEST, tue(10), tue(11))

    # Tuesday 2026-11-03 falls in the next month.
    november = fx.engine.create(
        fx.tenant.tenant_id,
        fx.main_room.room_id,
        GUEST,
        datetime(2026, 11, 3, 10, 0, tzinfo=timezone.utc),
        datetime(2026, 11, 3, 11, 0, tzinfo=timezone.utc),
    )
    assert november.booking_id > 0


# --- tenant isolation ---

def test_tenants_cannot_see_or_use_each_others_records(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    other = fx.directory.create_tenant(
        name="Beta Karaoke",
        slug="beta",
        email="owner@beta.example.com",
    )
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    with pytest.raises(BookingNotFoundError):
        fx.engine.get_booking(other.tenant_id, booking.booking_id)
    with pytest.raises(RoomNotFoundError):
        fx.engine.create(other.tenant_id, fx.main_room.room_id, GUEST, tue(12), tue(13))
    assert fx.engine.list_bookings(other.tenant_id) == []


def test_foreign_tenant_cannot_mutate_bookings(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    other = fx.directory.create_tenant(
        name="Beta Karaoke",
        slug="beta",
        email="owner@beta.example.com",
    )
    other_room = RoomCatalog(repository=fx.repository, clock=lambda: NOW).list_rooms(other)[0]
    owned = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    foreign = fx.engine.create(other.tenant_id, other_room.room_id, GUEST, tue(14), tue(15))

    attempts = [
        lambda: fx.engine.update(other.tenant_id, owned.booking_id, BookingPatch(notes="hijacked")),
        lambda: fx.engine.cancel(other.tenant_id, owned.booking_id),
        lambda: fx.engine.move(other.tenant_id, owned.booking_id, other_room.room_id, tue(16), tue(17)),
        lambda: fx.engine.resize(other.tenant_id, owned.booking_id, tue(10), tue(12)),
        lambda: fx.engine.delete(other.tenant_id, owned.booking_id),
        # Swap initiated by the foreign tenant naming the owner's booking as target.
        lambda: fx.engine.move(
            other.tenant_id,
            foreign.booking_id,
            other_room.room_id,
            tue(10),
            tue(11),
            target=SwapTarget(
                booking_id=owned.booking_id,
                new_start_time=tue(14),
                new_end_time=tue(15),
            ),
        ),
        # Owner's tenant naming the foreign booking as swap target.
        lambda: fx.engine.move(
            fx.tenant.tenant_id,
            owned.booking_id,
            fx.main_room.room_id,
            tue(14),
            tue(15),
            target=SwapTarget(
                booking_id=foreign.booking_id,
                new_start_time=tue(10),
                new_end_time=tue(11),
            ),
        ),
    ]
    for attempt in attempts:
        with pytest.raises(BookingNotFoundError):
            attempt()

    # Moving an owned booking into another tenant's room fails on the room.
    with pytest.raises(RoomNotFoundError):
        fx.engine.move(fx.tenant.tenant_id, owned.booking_id, other_room.room_id, tue(16), tue(17))

    assert fx.engine.get_booking(fx.tenant.tenant_id, owned.booking_id) == owned
    assert fx.engine.get_booking(other.tenant_id, foreign.booking_id) == foreign


def test_conflict_detector_reports_active_overlaps_only(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    detector = IntervalConflictDetector(repository=fx.repository)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    room_id = fx.main_room.room_id

    with fx.repository.transaction(write=False) as conn:
        assert detector.has_conflict(conn, fx.tenant, room_id, tue(10, 30), tue(11, 30))
        assert not detector.has_conflict(conn, fx.tenant, room_id, tue(11), tue(12))
        assert not detector.has_conflict(
            conn,
            fx.tenant,
            room_id,
            tue(10, 30),
            tue(11, 30),
            exclude_booking_ids=(booking.booking_id,),
        )

    fx.engine.cancel(fx.tenant.tenant_id, booking.booking_id)
    with fx.repository.transaction(write=False) as conn:
        assert not detector.has_conflict(conn, fx.tenant, room_id, tue(10), tue(11))


# --- update ---

def test_update_extends_booking_without_self_conflict(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    updated = fx.engine.update(
        fx.tenant.tenant_id,
        booking.booking_id,
        BookingPatch(end_time=tue(12)),
    )

    assert updated.end_time == tue(12)
    assert updated.total_price == Decimal("50.00")


def test_update_into_occupied_slot_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(12), tue(13))

    with pytest.raises(TimeSlotConflictError):
        fx.engine.update(
            fx.tenant.tenant_id,
            booking.booking_id,
            BookingPatch(end_time=tue(12, 30)),
        )

    assert fx.engine.get_booking(fx.tenant.tenant_id, booking.booking_id).end_time == tue(11)


def test_update_details_only_keeps_slot_and_price(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    updated = fx.engine.update(
        fx.tenant.tenant_id,
        booking.booking_id,
        BookingPatch(notes="Birthday party", customer_phone="555-0199"),
    )

    assert updated.notes == "Birthday party"
    assert updated.customer.phone == "555-0199"
    assert updated.start_time == booking.start_time
    assert updated.total_price == booking.total_price


def test_update_with_empty_patch_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    with pytest.raises(InvalidBookingError):
        fx.engine.update(fx.tenant.tenant_id, booking.booking_id, BookingPatch())


def test_cancelled_booking_slot_cannot_be_changed(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    fx.engine.cancel(fx.tenant.tenant_id, booking.booking_id)

    with pytest.raises(BookingNotActiveError):
        fx.engine.update(
            fx.tenant.tenant_id,
            booking.booking_id,
            BookingPatch(start_time=tue(12), end_time=tue(13)),
        )


# --- cancel / delete ---

def test_cancel_twice_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    cancelled = fx.engine.cancel(fx.tenant.tenant_id, booking.booking_id)
    assert cancelled.status == STATUS_CANCELLED

    with pytest.raises(AlreadyCancelledError):
        fx.engine.cancel(fx.tenant.tenant_id, booking.booking_id)


def test_delete_removes_booking(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    removed = fx.engine.delete(fx.tenant.tenant_id, booking.booking_id)

    assert removed.booking_id == booking.booking_id
    with pytest.raises(BookingNotFoundError):
        fx.engine.get_booking(fx.tenant.tenant_id, booking.booking_id)


# --- move / resize / swap ---

def test_move_to_another_room_reprices(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    result = fx.engine.move(
        fx.tenant.tenant_id,
        booking.booking_id,
        fx.vip_room.room_id,
        tue(14),
        tue(15),
    )

    assert not result.is_swap
    assert result.booking.room_id == fx.vip_room.room_id
    assert result.booking.room_name == "VIP Lounge"
    assert result.booking.total_price == Decimal("40.00")


def test_resize_keeps_room(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    booking = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    resized = fx.engine.resize(fx.tenant.tenant_id, booking.booking_id, tue(10), tue(10, 30))

    assert resized.room_id == fx.main_room.room_id
    assert resized.total_price == Decimal("12.50")


def test_swap_adjacent_bookings_in_same_room(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    first = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    second = fx.engine.create(
        fx.tenant.tenant_id,
        fx.main_room.room_id,
        Customer(name="Sam Lee"),
        tue(11),
        tue(12),
    )

    result = fx.engine.move(
        fx.tenant.tenant_id,
        first.booking_id,
        fx.main_room.room_id,
        tue(11),
        tue(12),
        target=SwapTarget(
            booking_id=second.booking_id,
            new_start_time=tue(10),
            new_end_time=tue(11),
        ),
    )

    assert result.is_swap
    assert result.booking.start_time == tue(11)
    assert result.counterpart.start_time == tue(10)
    assert result.counterpart.room_id == fx.main_room.room_id


def test_failed_swap_leaves_both_bookings_unchanged(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    first = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    second = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(11), tue(12))

    with pytest.raises(OutsideBusinessHoursError):
        fx.engine.move(
            fx.tenant.tenant_id,
            first.booking_id,
            fx.main_room.room_id,
            tue(11),
            tue(12),
            target=SwapTarget(
                booking_id=second.booking_id,
                new_start_time=tue(22),
                new_end_time=tue(23),
            ),
        )

    assert fx.engine.get_booking(fx.tenant.tenant_id, first.booking_id) == first
    assert fx.engine.get_booking(fx.tenant.tenant_id, second.booking_id) == second


def test_swap_into_each_others_overlap_is_rejected(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    first = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    second = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(11), tue(12))

    with pytest.raises(TimeSlotConflictError):
        fx.engine.move(
            fx.tenant.tenant_id,
            first.booking_id,
            fx.main_room.room_id,
            tue(13),
            tue(14),
            target=SwapTarget(
                booking_id=second.booking_id,
                new_start_time=tue(13, 30),
                new_end_time=tue(14, 30),
            ),
        )


# --- queries ---

def test_list_bookings_filters_and_orders_by_start(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    late = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(15), tue(16))
    early = fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
    vip = fx.engine.create(fx.tenant.tenant_id, fx.vip_room.room_id, GUEST, tue(12), tue(13))
    fx.engine.cancel(fx.tenant.tenant_id, vip.booking_id)

    everything = fx.engine.list_bookings(fx.tenant.tenant_id)
    main_only = fx.engine.list_bookings(fx.tenant.tenant_id, room_id=fx.main_room.room_id)
    cancelled = fx.engine.list_bookings(fx.tenant.tenant_id, status=STATUS_CANCELLED)

    assert [item.booking_id for item in everything] == [early.booking_id, vip.booking_id, late.booking_id]
    assert [item.booking_id for item in main_only] == [early.booking_id, late.booking_id]
    assert [item.booking_id for item in cancelled] == [vip.booking_id]


# --- storage and concurrency ---

def test_storage_failure_is_reported_as_unavailable(tmp_path, monkeypatch) -> None:
    fx = _build_fixture(tmp_path)

    def locked_connection():
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(fx.repository, "_connect", locked_connection)

    with pytest.raises(StorageUnavailableError) as exc_info:
        fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))

    assert exc_info.value.retryable
    assert not isinstance(exc_info.value, TimeSlotConflictError)


def test_schema_errors_are_not_reported_as_unavailable(tmp_path) -> None:
    fx = _build_fixture(tmp_path)

    with pytest.raises(sqlite3.OperationalError, match="no such table"):
        with fx.repository.transaction(write=False) as conn:
            conn.execute("SELECT * FROM missing_table;")

    with fx.repository.transaction() as conn:
        conn.execute("DROP TABLE bookings;")
    with pytest.raises(sqlite3.OperationalError):
        fx.engine.list_bookings(fx.tenant.tenant_id)


def test_concurrent_creates_for_same_slot_commit_once(tmp_path) -> None:
    fx = _build_fixture(tmp_path)
    barrier = threading.Barrier(4)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt() -> None:
        barrier.wait()
        try:
            fx.engine.create(fx.tenant.tenant_id, fx.main_room.room_id, GUEST, tue(10), tue(11))
            result = "created"
        except TimeSlotConflictError:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["conflict", "conflict", "conflict", "created"]
    assert len(fx.engine.list_bookings(fx.tenant.tenant_id)) == 1
