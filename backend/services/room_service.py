"""Room catalog: per-tenant bookable rooms."""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from backend.domain.constraints import validate_room_fields
from backend.domain.errors import (
    RoomHasActiveBookingsError,
    RoomNameTakenError,
    RoomNotFoundError,
    TenantLimitExceededError,
)
from backend.domain.models import Room, Tenant
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RoomCatalog:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._clock = clock or _utc_now

    def list_rooms(
        self,
        tenant: Tenant,
        *,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> list[Room]:
        with self._repository.transaction(write=False) as conn:
            return self._repository.list_rooms(
                conn,
                tenant.tenant_id,
                category=category,
                is_active=is_active,
            )

    def list_categories(self, tenant: Tenant) -> list[str]:
        with self._repository.transaction(write=False) as conn:
            return self._repository.list_room_categories(conn, tenant.tenant_id)

    def get_room(self, tenant: Tenant, room_id: int) -> Room:
        with self._repository.transaction(write=False) as conn:
            return self._require_room(conn, tenant, room_id)

    def _require_room(self, conn: sqlite3.Connection, tenant: Tenant, room_id: int) -> Room:
        room = self._repository.fetch_room(conn, tenant.tenant_id, room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        return room

    def create_room(
        self,
        tenant: Tenant,
        *,
        name: str,
        capacity: int,
        category: str,
        price_per_hour: Decimal = Decimal("0"),
        description: Optional[str] = None,
    ) -> Room:
        validate_room_fields(
            name=name,
            capacity=capacity,
            category=category,
            price_per_hour=price_per_hour,
        )
        with self._repository.transaction() as conn:
            active_rooms = self._repository.count_active_rooms(conn, tenant.tenant_id)
            if active_rooms >= tenant.max_rooms:
                raise TenantLimitExceededError(
                    f"Tenant '{tenant.slug}' has reached its limit of {tenant.max_rooms} rooms"
                )
            try:
                room_id = self._repository.insert_room(
                    conn,
                    tenant_id=tenant.tenant_id,
                    name=name.strip(),
                    capacity=capacity,
                    category=category.strip(),
                    price_per_hour=price_per_hour,
                    description=description,
                )
            except sqlite3.IntegrityError as exc:
                raise RoomNameTakenError(f"A room named '{name}' already exists") from exc
            room = self._require_room(conn, tenant, room_id)
        logger.info("Room %s created for tenant %s", room.room_id, tenant.tenant_id)
        return room

    def update_room(
        self,
        tenant: Tenant,
        room_id: int,
        *,
        name: Optional[str] = None,
        capacity: Optional[int] = None,
        category: Optional[str] = None,
        price_per_hour: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> Room:
        validate_room_fields(
            name=name,
            capacity=capacity,
            category=category,
            price_per_hour=price_per_hour,
        )
        with self._repository.transaction() as conn:
            current = self._require_room(conn, tenant, room_id)
            updated = replace(
                current,
                name=name.strip() if name is not None else current.name,
                capacity=capacity if capacity is not None else current.capacity,
                category=category.strip() if category is not None else current.category,
                price_per_hour=(
                    price_per_hour if price_per_hour is not None else current.price_per_hour
                ),
                description=description if description is not None else current.description,
            )
            try:
                self._repository.save_room(conn, updated)
            except sqlite3.IntegrityError as exc:
                raise RoomNameTakenError(f"A room named '{name}' already exists") from exc
            room = self._require_room(conn, tenant, room_id)
        logger.info("Room %s updated for tenant %s", room_id, tenant.tenant_id)
        return room

    def deactivate_room(self, tenant: Tenant, room_id: int) -> Room:
        """Soft-delete a room that has no future confirmed/pending bookings."""
        with self._repository.transaction() as conn:
            current = self._require_room(conn, tenant, room_id)
            upcoming = self._repository.count_future_active_bookings(
                conn,
                tenant.tenant_id,
                room_id,
                self._clock(),
            )
            if upcoming > 0:
                raise RoomHasActiveBookingsError(
                    f"Cannot delete room with active bookings ({upcoming} upcoming)"
                )
            self._repository.save_room(conn, replace(current, is_active=False))
            room = self._require_room(conn, tenant, room_id)
        logger.info("Room %s deactivated for tenant %s", room_id, tenant.tenant_id)
        return room
