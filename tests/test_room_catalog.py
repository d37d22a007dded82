from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from backend.domain.errors import (
    InvalidRoomError,
    RoomHasActiveBookingsError,
    RoomNameTakenError,
    RoomNotFoundError,
    TenantLimitExceededError,
)
from backend.domain.models import Customer
from backend.repository.data_repository import DataRepository
from backend.services.allocation_service import AllocationEngine
from backend.services.room_service import RoomCatalog
from backend.services.tenant_service import TenantDirectory
from backend.utils.config import get_settings


NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    return replace(
        get_settings(),
        database_path=tmp_path / filename,
        seed_demo_data=False,
        admin_token=None,
        default_timezone="UTC",
    )


def _build_catalog(tmp_path, filename: str, **tenant_overrides):
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
    return repository, directory, catalog, tenant


def test_new_tenant_gets_default_room(tmp_path) -> None:
    _, _, catalog, tenant = _build_catalog(tmp_path, "rooms_default.db")

    rooms = catalog.list_rooms(tenant)

    assert len(rooms) == 1
    assert rooms[0].name == "Main Room"
    assert rooms[0].capacity == 4
    assert rooms[0].price_per_hour == Decimal("25.00")


def test_create_and_filter_rooms(tmp_path) -> None:
    _, _, catalog, tenant = _build_catalog(tmp_path, "rooms_create.db")

    vip = catalog.create_room(
        tenant,
        name="  VIP Lounge ",
        capacity=10,
        category="VIP",
        price_per_hour=Decimal("40.00"),
        description="Private lounge",
    )

    assert vip.name == "VIP Lounge"
    assert vip.is_active
    assert [room.name for room in catalog.list_rooms(tenant, category="VIP")] == ["VIP Lounge"]
    assert catalog.list_categories(tenant) == ["Standard", "VIP"]
    assert vip.to_dict()["price_per_hour"] == "40.00"


def test_duplicate_room_name_is_rejected(tmp_path) -> None:
    _, _, catalog, tenant = _build_catalog(tmp_path, "rooms_duplicate.db")

    with pytest.raises(RoomNameTakenError):
        catalog.create_room(tenant, name="Main Room", capacity=2, category="Standard")


def test_same_room_name_allowed_for_other_tenant(tmp_path) -> None:
    _, directory, catalog, _ = _build_catalog(tmp_path, "rooms_other_tenant.db")
    other = directory.create_tenant(
        name="Beta Karaoke",
        slug="beta",
        email="owner@beta.example.com",
        seed_defaults=False,
    )

    room = catalog.create_room(other, name="Main Room", capacity=6, category="Standard")

    assert room.tenant_id == other.tenant_id


def test_room_limit_is_enforced(tmp_path) -> None:
    _, _, catalog, tenant = _build_catalog(tmp_path, "rooms_limit.db", max_rooms=1)

    with pytest.raises(TenantLimitExceededError):
        catalog.create_room(tenant, name="Second", capacity=2, category="Standard")


def test_invalid_room_fields_are_rejected(tmp_path) -> None:
    _, _, catalog, tenant = _build_catalog(tmp_path, "rooms_invalid.db")

    with pytest.raises(InvalidRoomError):
        catalog.create_room(
            tenant,
            name="Cheap",
            capacity=2,
            category="Standard",
            price_per_hour=Decimal("-1"),
        )


def test_update_room_changes_only_supplied_fields(tmp_path) -> None:
    _, _, catalog, tenant = _build_catalog(tmp_path, "rooms_update.db")
    main_room = catalog.list_rooms(tenant)[0]

    updated = catalog.update_room(tenant, main_room.room_id, capacity=6)

    assert updated.capacity == 6
    assert updated.name == "Main Room"
    assert updated.price_per_hour == Decimal("25.00")


def test_unknown_room_is_not_found(tmp_path) -> None:
    _, _, catalog, tenant = _build_catalog(tmp_path, "rooms_missing.db")

    with pytest.raises(RoomNotFoundError):
        catalog.get_room(tenant, 404)


def test_deactivate_rejected_while_future_bookings_exist(tmp_path) -> None:
    repository, directory, catalog, tenant = _build_catalog(tmp_path, "rooms_deactivate.db")
    main_room = catalog.list_rooms(tenant)[0]
    engine = AllocationEngine(
        repository=repository,
        settings=_build_test_settings(tmp_path, "rooms_deactivate.db"),
        tenant_directory=directory,
        clock=lambda: NOW,
    )
    booking = engine.create(
        tenant.tenant_id,
        main_room.room_id,
        Customer(name="Jamie Rivera"),
        datetime(2026, 10, 20, 10, 0, tzinfo=timezone.utc),
        datetime(2026, 10, 20, 11, 0, tzinfo=timezone.utc),
    )

    with pytest.raises(RoomHasActiveBookingsError):
        catalog.deactivate_room(tenant, main_room.room_id)

    engine.cancel(tenant.tenant_id, booking.booking_id)
    deactivated = catalog.deactivate_room(tenant, main_room.room_id)

    assert not deactivated.is_active
    assert catalog.list_rooms(tenant, is_active=True) == []
    assert catalog.list_categories(tenant) == []
