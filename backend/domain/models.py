"""Domain models for tenants, rooms, opening hours and bookings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from typing import Any, Optional


STATUS_CONFIRMED = "confirmed"
STATUS_PENDING = "pending"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"

BOOKING_STATUSES = (STATUS_CONFIRMED, STATUS_PENDING, STATUS_CANCELLED, STATUS_COMPLETED)
# Only these statuses occupy a room's timeline.
ACTIVE_BOOKING_STATUSES = (STATUS_CONFIRMED, STATUS_PENDING)


@dataclass(frozen=True)
class Tenant:
    tenant_id: int
    name: str
    slug: str
    email: str
    is_active: bool
    timezone: str
    currency: str
    max_rooms: int
    max_bookings_per_month: int


@dataclass(frozen=True)
class Room:
    room_id: int
    tenant_id: int
    name: str
    capacity: int
    category: str
    price_per_hour: Decimal
    is_active: bool
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.room_id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "capacity": self.capacity,
            "category": self.category,
            "description": self.description,
            "price_per_hour": str(self.price_per_hour),
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class BusinessHours:
    """Opening window for one weekday (0 = Sunday ... 6 = Saturday)."""

    day_of_week: int
    open_time: Optional[time]
    close_time: Optional[time]
    is_closed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "open_time": _format_clock(self.open_time),
            "close_time": _format_clock(self.close_time),
            "is_closed": self.is_closed,
        }


def _format_clock(value: Optional[time]) -> Optional[str]:
    """``HH:MM``, or ``HH:MM:SS`` when the value carries seconds."""
    if value is None:
        return None
    return value.strftime("%H:%M:%S" if value.second else "%H:%M")


@dataclass(frozen=True)
class Customer:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class Booking:
    booking_id: int
    tenant_id: int
    room_id: int
    customer: Customer
    start_time: datetime
    end_time: datetime
    status: str
    total_price: Decimal
    notes: Optional[str] = None
    room_name: Optional[str] = None
    room_category: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.booking_id,
            "tenant_id": self.tenant_id,
            "room_id": self.room_id,
            "room_name": self.room_name,
            "room_category": self.room_category,
            "customer_name": self.customer.name,
            "customer_email": self.customer.email,
            "customer_phone": self.customer.phone,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "status": self.status,
            "notes": self.notes,
            "total_price": str(self.total_price),
        }


@dataclass(frozen=True)
class BookingPatch:
    """Partial booking update; ``None`` means "leave unchanged"."""

    room_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None

    @property
    def changes_slot(self) -> bool:
        return (
            self.room_id is not None
            or self.start_time is not None
            or self.end_time is not None
        )

    @property
    def is_empty(self) -> bool:
        return not self.changes_slot and all(
            value is None
            for value in (
                self.customer_name,
                self.customer_email,
                self.customer_phone,
                self.notes,
            )
        )


@dataclass(frozen=True)
class SwapTarget:
    """Counterpart booking and the slot it takes over in a swap.

    ``new_room_id`` defaults to the counterpart's current room.
    """

    booking_id: int
    new_start_time: datetime
    new_end_time: datetime
    new_room_id: Optional[int] = None


@dataclass(frozen=True)
class MoveResult:
    booking: Booking
    counterpart: Optional[Booking] = None

    @property
    def is_swap(self) -> bool:
        return self.counterpart is not None
