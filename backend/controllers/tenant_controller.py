"""HTTP controller layer for tenant context, rooms and business hours."""

from __future__ import annotations

from datetime import time
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import AliasChoices, BaseModel, Field

from backend.controllers.dependencies import (
    bearer_scheme,
    get_auth_service,
    get_business_hours_calendar,
    get_current_tenant,
    get_room_catalog,
    get_tenant_directory,
    settings_from_state,
    to_http_exception,
)
from backend.domain.errors import BookingEngineError
from backend.domain.models import BusinessHours, Room, Tenant
from backend.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from backend.services.calendar_service import BusinessHoursCalendar
from backend.services.room_service import RoomCatalog
from backend.services.tenant_service import TenantDirectory
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["tenant"])


class HealthResponse(BaseModel):
    status: str
    app_name: str
    version: str


class LoginRequest(BaseModel):
    tenant_slug: str = Field(
        min_length=2,
        validation_alias=AliasChoices("tenant_slug", "tenantSlug", "slug"),
    )
    admin_token: str = Field(
        min_length=1,
        validation_alias=AliasChoices("admin_token", "adminToken"),
    )


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    tenant_id: int
    tenant_slug: str


class TenantResponse(BaseModel):
    id: int = Field(gt=0)
    name: str
    slug: str
    email: str
    timezone: str
    currency: str
    max_rooms: int
    max_bookings_per_month: int

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "TenantResponse":
        return cls(
            id=tenant.tenant_id,
            name=tenant.name,
            slug=tenant.slug,
            email=tenant.email,
            timezone=tenant.timezone,
            currency=tenant.currency,
            max_rooms=tenant.max_rooms,
            max_bookings_per_month=tenant.max_bookings_per_month,
        )


class CreateRoomRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    capacity: int = Field(gt=0)
    category: str = Field(min_length=1, max_length=50)
    price_per_hour: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        validation_alias=AliasChoices("price_per_hour", "pricePerHour"),
    )
    description: Optional[str] = None


class UpdateRoomRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    capacity: Optional[int] = Field(default=None, gt=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    price_per_hour: Optional[Decimal] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("price_per_hour", "pricePerHour"),
    )
    description: Optional[str] = None


class RoomResponse(BaseModel):
    id: int = Field(gt=0)
    tenant_id: int = Field(gt=0)
    name: str
    capacity: int
    category: str
    description: Optional[str] = None
    price_per_hour: str
    is_active: bool

    @classmethod
    def from_room(cls, room: Room) -> "RoomResponse":
        return cls(**room.to_dict())


class RoomListResponse(BaseModel):
    rooms: list[RoomResponse]


class CategoryListResponse(BaseModel):
    categories: list[str]


class BusinessHoursEntry(BaseModel):
    day_of_week: int = Field(
        ge=0,
        le=6,
        validation_alias=AliasChoices("day_of_week", "dayOfWeek"),
    )
    open_time: Optional[time] = Field(
        default=None,
        validation_alias=AliasChoices("open_time", "openTime"),
    )
    close_time: Optional[time] = Field(
        default=None,
        validation_alias=AliasChoices("close_time", "closeTime"),
    )
    is_closed: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_closed", "isClosed"),
    )

    def to_domain(self) -> BusinessHours:
        return BusinessHours(
            day_of_week=self.day_of_week,
            open_time=self.open_time,
            close_time=self.close_time,
            is_closed=self.is_closed,
        )


class BusinessHoursRequest(BaseModel):
    hours: list[BusinessHoursEntry] = Field(min_length=1)


class BusinessHoursRow(BaseModel):
    day_of_week: int
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    is_closed: bool


class BusinessHoursResponse(BaseModel):
    hours: list[BusinessHoursRow]


def _hours_response(records: list[BusinessHours]) -> BusinessHoursResponse:
    return BusinessHoursResponse(
        hours=[BusinessHoursRow(**record.to_dict()) for record in records]
    )


def _unexpected(action: str, exc: Exception) -> HTTPException:
    logger.exception("Unexpected failure while trying to %s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health(request: Request) -> HealthResponse:
    settings = settings_from_state(request)
    return HealthResponse(status="ok", app_name=settings.app_name, version=settings.app_version)


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    tenant_directory: TenantDirectory = Depends(get_tenant_directory),
) -> LoginResponse:
    """Exchange the admin token for a bearer session bound to one tenant."""
    try:
        tenant = tenant_directory.resolve_tenant(payload.tenant_slug)
        bearer = auth_service.login(payload.admin_token, tenant.slug)
        return LoginResponse(
            access_token=bearer,
            tenant_id=tenant.tenant_id,
            tenant_slug=tenant.slug,
        )
    except (AdminTokenNotConfiguredError, InvalidAdminTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected login failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to login",
        ) from exc


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> Response:
    if credentials is not None:
        auth_service.logout(credentials.credentials)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/tenant", response_model=TenantResponse, status_code=status.HTTP_200_OK)
async def current_tenant(tenant: Tenant = Depends(get_current_tenant)) -> TenantResponse:
    return TenantResponse.from_tenant(tenant)


@router.get("/rooms", response_model=RoomListResponse, status_code=status.HTTP_200_OK)
async def list_rooms(
    category: Optional[str] = None,
    is_active: Optional[bool] = Query(default=None),
    tenant: Tenant = Depends(get_current_tenant),
    catalog: RoomCatalog = Depends(get_room_catalog),
) -> RoomListResponse:
    try:
        rooms = catalog.list_rooms(tenant, category=category, is_active=is_active)
        return RoomListResponse(rooms=[RoomResponse.from_room(room) for room in rooms])
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("list rooms", exc) from exc


@router.get(
    "/rooms/categories",
    response_model=CategoryListResponse,
    status_code=status.HTTP_200_OK,
)
async def list_room_categories(
    tenant: Tenant = Depends(get_current_tenant),
    catalog: RoomCatalog = Depends(get_room_catalog),
) -> CategoryListResponse:
    try:
        return CategoryListResponse(categories=catalog.list_categories(tenant))
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("list room categories", exc) from exc


@router.get("/rooms/{room_id}", response_model=RoomResponse, status_code=status.HTTP_200_OK)
async def get_room(
    room_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    catalog: RoomCatalog = Depends(get_room_catalog),
) -> RoomResponse:
    try:
        return RoomResponse.from_room(catalog.get_room(tenant, room_id))
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("fetch room", exc) from exc


@router.post("/rooms", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: CreateRoomRequest,
    tenant: Tenant = Depends(get_current_tenant),
    catalog: RoomCatalog = Depends(get_room_catalog),
) -> RoomResponse:
    try:
        room = catalog.create_room(
            tenant,
            name=payload.name,
            capacity=payload.capacity,
            category=payload.category,
            price_per_hour=payload.price_per_hour,
            description=payload.description,
        )
        return RoomResponse.from_room(room)
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("create room", exc) from exc


@router.put("/rooms/{room_id}", response_model=RoomResponse, status_code=status.HTTP_200_OK)
async def update_room(
    room_id: int,
    payload: UpdateRoomRequest,
    tenant: Tenant = Depends(get_current_tenant),
    catalog: RoomCatalog = Depends(get_room_catalog),
) -> RoomResponse:
    try:
        room = catalog.update_room(
            tenant,
            room_id,
            name=payload.name,
            capacity=payload.capacity,
            category=payload.category,
            price_per_hour=payload.price_per_hour,
            description=payload.description,
        )
        return RoomResponse.from_room(room)
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("update room", exc) from exc


@router.delete("/rooms/{room_id}", response_model=RoomResponse, status_code=status.HTTP_200_OK)
async def delete_room(
    room_id: int,
    tenant: Tenant = Depends(get_current_tenant),
    catalog: RoomCatalog = Depends(get_room_catalog),
) -> RoomResponse:
    """Soft-delete: the room is deactivated, its history is kept."""
    try:
        return RoomResponse.from_room(catalog.deactivate_room(tenant, room_id))
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("delete room", exc) from exc


@router.get(
    "/business-hours",
    response_model=BusinessHoursResponse,
    status_code=status.HTTP_200_OK,
)
async def get_business_hours(
    tenant: Tenant = Depends(get_current_tenant),
    calendar: BusinessHoursCalendar = Depends(get_business_hours_calendar),
) -> BusinessHoursResponse:
    try:
        return _hours_response(calendar.get_business_hours(tenant))
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("fetch business hours", exc) from exc


@router.put(
    "/business-hours",
    response_model=BusinessHoursResponse,
    status_code=status.HTTP_200_OK,
)
async def set_business_hours(
    payload: BusinessHoursRequest,
    tenant: Tenant = Depends(get_current_tenant),
    calendar: BusinessHoursCalendar = Depends(get_business_hours_calendar),
) -> BusinessHoursResponse:
    try:
        records = calendar.set_business_hours(
            tenant,
            [entry.to_domain() for entry in payload.hours],
        )
        return _hours_response(records)
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("update business hours", exc) from exc
