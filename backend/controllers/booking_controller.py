"""HTTP controller layer for booking allocation."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from backend.controllers.dependencies import (
    get_allocation_engine,
    get_current_tenant,
    to_http_exception,
)
from backend.domain.errors import BookingEngineError
from backend.domain.models import (
    BOOKING_STATUSES,
    STATUS_CONFIRMED,
    Booking,
    BookingPatch,
    Customer,
    SwapTarget,
    Tenant,
)
from backend.services.allocation_service import CREATABLE_STATUSES, AllocationEngine
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class CreateBookingRequest(BaseModel):
    """Input DTO; legacy camelCase names are accepted and normalized here."""

    room_id: int = Field(gt=0, validation_alias=_alias("room_id", "roomId"))
    customer_name: str = Field(
        min_length=1,
        validation_alias=_alias("customer_name", "customerName"),
    )
    customer_email: Optional[str] = Field(
        default=None,
        validation_alias=_alias("customer_email", "customerEmail"),
    )
    customer_phone: Optional[str] = Field(
        default=None,
        validation_alias=_alias("customer_phone", "customerPhone"),
    )
    start_time: datetime = Field(validation_alias=_alias("start_time", "startTime"))
    end_time: datetime = Field(validation_alias=_alias("end_time", "endTime"))
    notes: Optional[str] = None
    status: str = STATUS_CONFIRMED

    @field_validator("customer_name")
    @classmethod
    def strip_customer_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Customer name is required")
        return value

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        if value not in CREATABLE_STATUSES:
            raise ValueError(f"status must be one of {', '.join(CREATABLE_STATUSES)}")
        return value


class UpdateBookingRequest(BaseModel):
    room_id: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=_alias("room_id", "roomId"),
    )
    start_time: Optional[datetime] = Field(
        default=None,
        validation_alias=_alias("start_time", "startTime"),
    )
    end_time: Optional[datetime] = Field(
        default=None,
        validation_alias=_alias("end_time", "endTime"),
    )
    customer_name: Optional[str] = Field(
        default=None,
        validation_alias=_alias("customer_name", "customerName"),
    )
    customer_email: Optional[str] = Field(
        default=None,
        validation_alias=_alias("customer_email", "customerEmail"),
    )
    customer_phone: Optional[str] = Field(
        default=None,
        validation_alias=_alias("customer_phone", "customerPhone"),
    )
    notes: Optional[str] = None

    def to_patch(self) -> BookingPatch:
        return BookingPatch(
            room_id=self.room_id,
            start_time=self.start_time,
            end_time=self.end_time,
            customer_name=self.customer_name,
            customer_email=self.customer_email,
            customer_phone=self.customer_phone,
            notes=self.notes,
        )


class MoveBookingRequest(BaseModel):
    new_room_id: int = Field(gt=0, validation_alias=_alias("new_room_id", "newRoomId"))
    new_start_time: datetime = Field(
        validation_alias=_alias("new_start_time", "newStartTime"),
    )
    new_end_time: datetime = Field(validation_alias=_alias("new_end_time", "newEndTime"))
    target_booking_id: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=_alias("target_booking_id", "targetBookingId"),
    )
    target_new_room_id: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=_alias("target_new_room_id", "targetNewRoomId"),
    )
    target_new_start_time: Optional[datetime] = Field(
        default=None,
        validation_alias=_alias("target_new_start_time", "targetNewStartTime"),
    )
    target_new_end_time: Optional[datetime] = Field(
        default=None,
        validation_alias=_alias("target_new_end_time", "targetNewEndTime"),
    )

    @model_validator(mode="after")
    def validate_swap_fields(self) -> "MoveBookingRequest":
        if self.target_booking_id is None:
            return self
        if self.target_new_start_time is None or self.target_new_end_time is None:
            raise ValueError(
                "target_new_start_time and target_new_end_time are required for a swap"
            )
        return self

    def to_swap_target(self) -> Optional[SwapTarget]:
        if self.target_booking_id is None:
            return None
        return SwapTarget(
            booking_id=self.target_booking_id,
            new_room_id=self.target_new_room_id,
            new_start_time=self.target_new_start_time,
            new_end_time=self.target_new_end_time,
        )


class ResizeBookingRequest(BaseModel):
    new_start_time: datetime = Field(
        validation_alias=_alias("new_start_time", "newStartTime", "start_time", "startTime"),
    )
    new_end_time: datetime = Field(
        validation_alias=_alias("new_end_time", "newEndTime", "end_time", "endTime"),
    )


class BookingResponse(BaseModel):
    id: int = Field(gt=0)
    tenant_id: int = Field(gt=0)
    room_id: int = Field(gt=0)
    room_name: Optional[str] = None
    room_category: Optional[str] = None
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: str
    notes: Optional[str] = None
    total_price: str

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(**booking.to_dict())


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]


class MoveBookingResponse(BaseModel):
    booking: BookingResponse
    counterpart: Optional[BookingResponse] = None


def _unexpected(action: str, exc: Exception) -> HTTPException:
    logger.exception("Unexpected failure while trying to %s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: CreateBookingRequest,
    tenant: Tenant = Depends(get_current_tenant),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> BookingResponse:
    try:
        booking = engine.create(
            tenant.tenant_id,
            payload.room_id,
            Customer(
                name=payload.customer_name,
                email=payload.customer_email,
                phone=payload.customer_phone,
            ),
            payload.start_time,
            payload.end_time,
            notes=payload.notes,
            status=payload.status,
        )
        return BookingResponse.from_booking(booking)
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("create booking", exc) from exc


@router.get(
    "/bookings",
    response_model=BookingListResponse,
    status_code=status.HTTP_200_OK,
)
async def list_bookings(
    room_id: Optional[int] = Query(default=None, gt=0),
    booking_status: Optional[str] = Query(default=None, alias="status"),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    tenant: Tenant = Depends(get_current_tenant),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> BookingListResponse:
    if booking_status is not None and booking_status not in BOOKING_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"status must be one of {', '.join(BOOKING_STATUSES)}",
        )
    try:
        bookings = engine.list_bookings(
            tenant.tenant_id,
            room_id=room_id,
            status=booking_status,
            starts_from=start_date,
            ends_until=end_date,
        )
        return BookingListResponse(
            bookings=[BookingResponse.from_booking(item) for item in bookings]
        )
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("list bookings", exc) from exc


@router.get(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def get_booking(
    booking_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> BookingResponse:
    try:
        return BookingResponse.from_booking(engine.get_booking(tenant.tenant_id, booking_id))
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("fetch booking", exc) from exc


@router.put(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def update_booking(
    booking_id: int,
    payload: UpdateBookingRequest,
    tenant: Tenant = Depends(get_current_tenant),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> BookingResponse:
    try:
        booking = engine.update(tenant.tenant_id, booking_id, payload.to_patch())
        return BookingResponse.from_booking(booking)
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("update booking", exc) from exc


@router.put(
    "/bookings/{booking_id}/cancel",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def cancel_booking(
    booking_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> BookingResponse:
    try:
        return BookingResponse.from_booking(engine.cancel(tenant.tenant_id, booking_id))
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("cancel booking", exc) from exc


@router.put(
    "/bookings/{booking_id}/move",
    response_model=MoveBookingResponse,
    status_code=status.HTTP_200_OK,
)
async def move_booking(
    booking_id: int,
    payload: MoveBookingRequest,
    tenant: Tenant = Depends(get_current_tenant),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> MoveBookingResponse:
    """Move one booking, or swap two when target fields are supplied."""
    try:
        result = engine.move(
            tenant.tenant_id,
            booking_id,
            payload.new_room_id,
            payload.new_start_time,
            payload.new_end_time,
            target=payload.to_swap_target(),
        )
        return MoveBookingResponse(
            booking=BookingResponse.from_booking(result.booking),
            counterpart=(
                BookingResponse.from_booking(result.counterpart)
                if result.counterpart is not None
                else None
            ),
        )
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("move booking", exc) from exc


@router.put(
    "/bookings/{booking_id}/resize",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def resize_booking(
    booking_id: int,
    payload: ResizeBookingRequest,
    tenant: Tenant = Depends(get_current_tenant),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> BookingResponse:
    try:
        booking = engine.resize(
            tenant.tenant_id,
            booking_id,
            payload.new_start_time,
            payload.new_end_time,
        )
        return BookingResponse.from_booking(booking)
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("resize booking", exc) from exc


@router.delete(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def delete_booking(
    booking_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> BookingResponse:
    try:
        return BookingResponse.from_booking(engine.delete(tenant.tenant_id, booking_id))
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("delete booking", exc) from exc
