"""Allocation engine: admits, prices and commits booking mutations.

Every mutation runs inside one write transaction of the booking ledger and
validates in a fixed order before anything is written:

    tenant -> room -> interval -> business hours -> conflicts -> price -> write

A failure at any step raises and rolls the transaction back, so callers never
observe a partial mutation. Swaps validate both bookings as a pair and write
both rows in the same transaction.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from backend.domain.constraints import intervals_overlap, validate_interval
from backend.domain.errors import (
    AlreadyCancelledError,
    BookingNotActiveError,
    BookingNotFoundError,
    InvalidBookingError,
    OutsideBusinessHoursError,
    RoomInactiveError,
    RoomNotFoundError,
    TenantLimitExceededError,
    TimeSlotConflictError,
)
from backend.domain.models import (
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    Booking,
    BookingPatch,
    Customer,
    MoveResult,
    Room,
    SwapTarget,
    Tenant,
)
from backend.repository.data_repository import DataRepository
from backend.services.calendar_service import BusinessHoursCalendar
from backend.services.conflict_service import IntervalConflictDetector
from backend.services.pricing_service import compute_price
from backend.services.tenant_service import TenantDirectory, TenantIdentifier
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

CREATABLE_STATUSES = (STATUS_CONFIRMED, STATUS_PENDING)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SlotPlan:
    """A validated room/interval with its computed price."""

    room: Room
    start: datetime
    end: datetime
    total_price: Decimal


class AllocationEngine:
    """Orchestrates tenant, room, calendar, conflict and pricing checks."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        tenant_directory: Optional[TenantDirectory] = None,
        calendar: Optional[BusinessHoursCalendar] = None,
        conflict_detector: Optional[IntervalConflictDetector] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._tenants = tenant_directory or TenantDirectory(
            repository=self._repository,
            settings=self._settings,
        )
        self._calendar = calendar or BusinessHoursCalendar(
            repository=self._repository,
            settings=self._settings,
        )
        self._conflicts = conflict_detector or IntervalConflictDetector(
            repository=self._repository,
            settings=self._settings,
        )
        self._clock = clock or _utc_now

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking(self, tenant_ref: TenantIdentifier, booking_id: int) -> Booking:
        with self._repository.transaction(write=False) as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            return self._require_booking(conn, tenant, booking_id)

    def list_bookings(
        self,
        tenant_ref: TenantIdentifier,
        *,
        room_id: Optional[int] = None,
        status: Optional[str] = None,
        starts_from: Optional[datetime] = None,
        ends_until: Optional[datetime] = None,
    ) -> list[Booking]:
        with self._repository.transaction(write=False) as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            return self._repository.list_bookings(
                conn,
                tenant.tenant_id,
                room_id=room_id,
                status=status,
                starts_from=self._localize(tenant, starts_from) if starts_from else None,
                ends_until=self._localize(tenant, ends_until) if ends_until else None,
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        tenant_ref: TenantIdentifier,
        room_id: int,
        customer: Customer,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
        status: str = STATUS_CONFIRMED,
    ) -> Booking:
        if status not in CREATABLE_STATUSES:
            raise InvalidBookingError(f"New bookings cannot start as '{status}'")
        with self._repository.transaction() as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            customer = self._clean_customer(customer)
            plan = self._plan_slot(
                conn,
                tenant,
                room_id,
                self._localize(tenant, start),
                self._localize(tenant, end),
            )
            self._check_monthly_quota(conn, tenant, plan.start)
            booking_id = self._repository.insert_booking(
                conn,
                tenant_id=tenant.tenant_id,
                room_id=plan.room.room_id,
                customer=customer,
                start=plan.start,
                end=plan.end,
                status=status,
                total_price=plan.total_price,
                notes=notes,
            )
            booking = self._require_booking(conn, tenant, booking_id)
        logger.info(
            "Booking %s created for tenant %s in room %s (%s - %s, total %s)",
            booking.booking_id,
            tenant.tenant_id,
            booking.room_id,
            booking.start_time.isoformat(),
            booking.end_time.isoformat(),
            booking.total_price,
        )
        return booking

    def update(
        self,
        tenant_ref: TenantIdentifier,
        booking_id: int,
        patch: BookingPatch,
    ) -> Booking:
        """Apply a partial update; slot changes are re-validated and re-priced."""
        if patch.is_empty:
            raise InvalidBookingError("No valid updates provided")
        with self._repository.transaction() as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            current = self._require_booking(conn, tenant, booking_id)
            updated = self._apply_details(current, patch)
            if patch.changes_slot:
                self._require_active(current)
                plan = self._plan_slot(
                    conn,
                    tenant,
                    patch.room_id if patch.room_id is not None else current.room_id,
                    self._localize(tenant, patch.start_time or current.start_time),
                    self._localize(tenant, patch.end_time or current.end_time),
                    exclude_booking_ids=(current.booking_id,),
                    previous_start=current.start_time,
                )
                updated = self._apply_plan(updated, plan)
            self._repository.save_booking(conn, updated)
            booking = self._require_booking(conn, tenant, booking_id)
        logger.info("Booking %s updated for tenant %s", booking_id, tenant.tenant_id)
        return booking

    def cancel(self, tenant_ref: TenantIdentifier, booking_id: int) -> Booking:
        with self._repository.transaction() as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            current = self._require_booking(conn, tenant, booking_id)
            if current.status == STATUS_CANCELLED:
                raise AlreadyCancelledError(f"Booking {booking_id} is already cancelled")
            self._require_active(current)
            self._repository.set_booking_status(conn, tenant.tenant_id, booking_id, STATUS_CANCELLED)
            booking = self._require_booking(conn, tenant, booking_id)
        logger.info("Booking %s cancelled for tenant %s", booking_id, tenant.tenant_id)
        return booking

    def move(
        self,
        tenant_ref: TenantIdentifier,
        booking_id: int,
        new_room_id: int,
        new_start: datetime,
        new_end: datetime,
        target: Optional[SwapTarget] = None,
    ) -> MoveResult:
        """Relocate a booking, or swap it with ``target`` atomically."""
        if target is not None:
            return self._swap(tenant_ref, booking_id, new_room_id, new_start, new_end, target)

        with self._repository.transaction() as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            current = self._require_booking(conn, tenant, booking_id)
            self._require_active(current)
            plan = self._plan_slot(
                conn,
                tenant,
                new_room_id,
                self._localize(tenant, new_start),
                self._localize(tenant, new_end),
                exclude_booking_ids=(current.booking_id,),
                previous_start=current.start_time,
            )
            self._repository.save_booking(conn, self._apply_plan(current, plan))
            booking = self._require_booking(conn, tenant, booking_id)
        logger.info(
            "Booking %s moved to room %s for tenant %s",
            booking_id,
            booking.room_id,
            tenant.tenant_id,
        )
        return MoveResult(booking=booking)

    def resize(
        self,
        tenant_ref: TenantIdentifier,
        booking_id: int,
        new_start: datetime,
        new_end: datetime,
    ) -> Booking:
        """Change a booking's interval while keeping its room."""
        with self._repository.transaction() as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            current = self._require_booking(conn, tenant, booking_id)
            self._require_active(current)
            plan = self._plan_slot(
                conn,
                tenant,
                current.room_id,
                self._localize(tenant, new_start),
                self._localize(tenant, new_end),
                exclude_booking_ids=(current.booking_id,),
                previous_start=current.start_time,
            )
            self._repository.save_booking(conn, self._apply_plan(current, plan))
            booking = self._require_booking(conn, tenant, booking_id)
        logger.info("Booking %s resized for tenant %s", booking_id, tenant.tenant_id)
        return booking

    def delete(self, tenant_ref: TenantIdentifier, booking_id: int) -> Booking:
        """Physically remove a booking record; ``cancel`` is the audited path."""
        with self._repository.transaction() as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            current = self._require_booking(conn, tenant, booking_id)
            self._repository.delete_booking(conn, tenant.tenant_id, booking_id)
        logger.info("Booking %s deleted for tenant %s", booking_id, tenant.tenant_id)
        return current

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _swap(
        self,
        tenant_ref: TenantIdentifier,
        booking_id: int,
        new_room_id: int,
        new_start: datetime,
        new_end: datetime,
        target: SwapTarget,
    ) -> MoveResult:
        if target.booking_id == booking_id:
            raise InvalidBookingError("A booking cannot be swapped with itself")

        with self._repository.transaction() as conn:
            tenant = self._tenants.resolve_in(conn, tenant_ref)
            first = self._require_booking(conn, tenant, booking_id)
            second = self._require_booking(conn, tenant, target.booking_id)
            self._require_active(first)
            self._require_active(second)

            # Both current slots are being vacated, so neither side may
            # conflict with the other's old position.
            vacated = (first.booking_id, second.booking_id)
            first_plan = self._plan_slot(
                conn,
                tenant,
                new_room_id,
                self._localize(tenant, new_start),
                self._localize(tenant, new_end),
                exclude_booking_ids=vacated,
                previous_start=first.start_time,
            )
            second_plan = self._plan_slot(
                conn,
                tenant,
                target.new_room_id if target.new_room_id is not None else second.room_id,
                self._localize(tenant, target.new_start_time),
                self._localize(tenant, target.new_end_time),
                exclude_booking_ids=vacated,
                previous_start=second.start_time,
            )
            if first_plan.room.room_id == second_plan.room.room_id and intervals_overlap(
                first_plan.start,
                first_plan.end,
                second_plan.start,
                second_plan.end,
            ):
                logger.warning(
                    "Swap of bookings %s and %s rejected: new slots overlap",
                    first.booking_id,
                    second.booking_id,
                )
                raise TimeSlotConflictError("Swapped bookings would overlap each other")

            self._repository.save_booking(conn, self._apply_plan(first, first_plan))
            self._repository.save_booking(conn, self._apply_plan(second, second_plan))
            moved = self._require_booking(conn, tenant, first.booking_id)
            counterpart = self._require_booking(conn, tenant, second.booking_id)
        logger.info(
            "Bookings %s and %s swapped for tenant %s",
            moved.booking_id,
            counterpart.booking_id,
            tenant.tenant_id,
        )
        return MoveResult(booking=moved, counterpart=counterpart)

    def _plan_slot(
        self,
        conn: sqlite3.Connection,
        tenant: Tenant,
        room_id: int,
        start: datetime,
        end: datetime,
        *,
        exclude_booking_ids: Iterable[int] = (),
        previous_start: Optional[datetime] = None,
    ) -> SlotPlan:
        """Run room, interval, hours and conflict checks; price the slot.

        The past-start rule applies to new bookings and to any change of an
        existing booking's start instant.
        """
        room = self._require_bookable_room(conn, tenant, room_id)

        enforce_future = previous_start is None or start != previous_start
        validate_interval(start, end, now=self._clock() if enforce_future else None)

        if not self._calendar.is_within_open_hours(conn, tenant, start, end):
            raise OutsideBusinessHoursError(
                "Requested time is outside business hours for "
                f"{start.astimezone(ZoneInfo(tenant.timezone)).strftime('%A %Y-%m-%d')}"
            )

        conflicts = self._conflicts.find_conflicts(
            conn,
            tenant,
            room.room_id,
            start,
            end,
            exclude_booking_ids,
        )
        if conflicts:
            logger.warning(
                "Time slot conflict for tenant %s room %s: overlaps bookings %s",
                tenant.tenant_id,
                room.room_id,
                conflicts,
            )
            raise TimeSlotConflictError("Time slot conflicts with existing booking")

        return SlotPlan(
            room=room,
            start=start,
            end=end,
            total_price=compute_price(room.price_per_hour, start, end),
        )

    def _require_bookable_room(
        self,
        conn: sqlite3.Connection,
        tenant: Tenant,
        room_id: int,
    ) -> Room:
        room = self._repository.fetch_room(conn, tenant.tenant_id, room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        if not room.is_active:
            raise RoomInactiveError(f"Room {room_id} is not active")
        return room

    def _require_booking(
        self,
        conn: sqlite3.Connection,
        tenant: Tenant,
        booking_id: int,
    ) -> Booking:
        booking = self._repository.fetch_booking(conn, tenant.tenant_id, booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def _require_active(booking: Booking) -> None:
        if not booking.is_active:
            raise BookingNotActiveError(
                f"Booking {booking.booking_id} is {booking.status} and cannot be changed"
            )

    def _check_monthly_quota(
        self,
        conn: sqlite3.Connection,
        tenant: Tenant,
        start: datetime,
    ) -> None:
        local_start = start.astimezone(ZoneInfo(tenant.timezone))
        month_start = local_start.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if month_start.month == 12:
            next_month = month_start.replace(year=month_start.year + 1, month=1)
        else:
            next_month = month_start.replace(month=month_start.month + 1)
        booked = self._repository.count_active_bookings_starting_between(
            conn,
            tenant.tenant_id,
            month_start,
            next_month,
        )
        if booked >= tenant.max_bookings_per_month:
            raise TenantLimitExceededError(
                f"Tenant '{tenant.slug}' has reached its limit of "
                f"{tenant.max_bookings_per_month} bookings for {month_start:%Y-%m}"
            )

    @staticmethod
    def _localize(tenant: Tenant, value: datetime) -> datetime:
        """Interpret naive timestamps in the tenant's timezone."""
        if value.tzinfo is None:
            return value.replace(tzinfo=ZoneInfo(tenant.timezone))
        return value

    @staticmethod
    def _clean_customer(customer: Customer) -> Customer:
        name = (customer.name or "").strip()
        if not name:
            raise InvalidBookingError("Customer name is required")
        return replace(customer, name=name)

    def _apply_details(self, booking: Booking, patch: BookingPatch) -> Booking:
        customer = booking.customer
        if patch.customer_name is not None:
            customer = self._clean_customer(replace(customer, name=patch.customer_name))
        if patch.customer_email is not None:
            customer = replace(customer, email=patch.customer_email)
        if patch.customer_phone is not None:
            customer = replace(customer, phone=patch.customer_phone)
        return replace(
            booking,
            customer=customer,
            notes=patch.notes if patch.notes is not None else booking.notes,
        )

    @staticmethod
    def _apply_plan(booking: Booking, plan: SlotPlan) -> Booking:
        return replace(
            booking,
            room_id=plan.room.room_id,
            start_time=plan.start,
            end_time=plan.end,
            total_price=plan.total_price,
            room_name=plan.room.name,
            room_category=plan.room.category,
        )
