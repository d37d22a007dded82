"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.domain.errors import (
    BookingEngineError,
    ConflictError,
    DomainRuleError,
    NotFoundError,
    StorageUnavailableError,
    TenantInactiveError,
    TenantNotFoundError,
    ValidationError,
)
from backend.domain.models import Tenant
from backend.services.allocation_service import AllocationEngine
from backend.services.auth_service import AuthService, InvalidAdminTokenError
from backend.services.calendar_service import BusinessHoursCalendar
from backend.services.room_service import RoomCatalog
from backend.services.tenant_service import TenantDirectory, tenant_slug_from_host
from backend.utils.config import Settings, get_settings


bearer_scheme = HTTPBearer(auto_error=False)

TENANT_HEADER = "X-Tenant-Slug"
STORAGE_RETRY_AFTER_SECONDS = "1"


def to_http_exception(exc: BookingEngineError) -> HTTPException:
    """Translate an engine error into the HTTP status callers branch on."""
    detail = {"code": exc.code, "message": str(exc)}
    if isinstance(exc, (NotFoundError, TenantInactiveError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    if isinstance(exc, DomainRuleError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    if isinstance(exc, StorageUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            headers={"Retry-After": STORAGE_RETRY_AFTER_SECONDS},
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def _service_from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name.replace('_', ' ').capitalize()} is not initialized",
        )
    return service


def settings_from_state(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        service = AuthService(settings=settings_from_state(request))
        request.app.state.auth_service = service
    return service


def get_tenant_directory(request: Request) -> TenantDirectory:
    return _service_from_state(request, "tenant_directory")


def get_allocation_engine(request: Request) -> AllocationEngine:
    return _service_from_state(request, "allocation_engine")


def get_room_catalog(request: Request) -> RoomCatalog:
    return _service_from_state(request, "room_catalog")


def get_business_hours_calendar(request: Request) -> BusinessHoursCalendar:
    return _service_from_state(request, "business_hours_calendar")


async def get_current_tenant(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
    tenant_directory: TenantDirectory = Depends(get_tenant_directory),
) -> Tenant:
    """Resolve the tenant the request acts on.

    With auth enabled the tenant is taken from the bearer session only.
    The tenant header or Host subdomain is honoured only when auth is off and
    ``allow_tenant_header`` is set (local development); otherwise the request
    is refused.
    """
    settings = settings_from_state(request)
    if not auth_service.auth_enabled and not settings.allow_tenant_header:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication is not configured; set ADMIN_TOKEN to enable access",
        )
    if auth_service.auth_enabled:
        if credentials is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authorization header with Bearer token is required",
            )
        try:
            tenant_ref = auth_service.tenant_for_bearer_token(credentials.credentials)
        except InvalidAdminTokenError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(exc),
            ) from exc
    else:
        tenant_ref = request.headers.get(TENANT_HEADER) or tenant_slug_from_host(
            request.headers.get("host"),
            settings.tenant_host_suffix,
        )
        if not tenant_ref:
            raise to_http_exception(TenantNotFoundError("No tenant identified"))

    try:
        return tenant_directory.resolve_tenant(tenant_ref)
    except BookingEngineError as exc:
        raise to_http_exception(exc) from exc
