"""Interval conflict detection over a room's active bookings."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Iterable, Optional

from backend.domain.models import Tenant
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings


class IntervalConflictDetector:
    """Answers whether ``[start, end)`` overlaps an active booking of a room.

    Only confirmed/pending bookings of the same tenant and room count.
    ``exclude_booking_ids`` removes bookings whose current slot is being
    vacated by the operation under validation (the booking itself on update,
    both sides of a swap).
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def find_conflicts(
        self,
        conn: sqlite3.Connection,
        tenant: Tenant,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_ids: Iterable[int] = (),
    ) -> list[int]:
        return self._repository.find_conflicting_booking_ids(
            conn,
            tenant_id=tenant.tenant_id,
            room_id=room_id,
            start=start,
            end=end,
            exclude_booking_ids=tuple(sorted(set(exclude_booking_ids))),
        )

    def has_conflict(
        self,
        conn: sqlite3.Connection,
        tenant: Tenant,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_ids: Iterable[int] = (),
    ) -> bool:
        return bool(
            self.find_conflicts(conn, tenant, room_id, start, end, exclude_booking_ids)
        )
