"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.booking_controller import router as booking_router
from backend.controllers.tenant_controller import router as tenant_router
from backend.repository.data_repository import DataRepository
from backend.services.allocation_service import AllocationEngine
from backend.services.auth_service import AuthService
from backend.services.calendar_service import BusinessHoursCalendar
from backend.services.conflict_service import IntervalConflictDetector
from backend.services.room_service import RoomCatalog
from backend.services.tenant_service import TenantDirectory
from backend.utils.config import Settings, get_settings
from backend.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    Every service shares one repository, so one database file backs the app.
    """
    settings = settings or get_settings()
    configure_logging(settings=settings)

    # --- Repository (per-call SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services ---
    tenant_directory = TenantDirectory(repository=repository, settings=settings)
    calendar = BusinessHoursCalendar(repository=repository, settings=settings)
    conflict_detector = IntervalConflictDetector(repository=repository, settings=settings)
    room_catalog = RoomCatalog(repository=repository, settings=settings)
    allocation_engine = AllocationEngine(
        repository=repository,
        settings=settings,
        tenant_directory=tenant_directory,
        calendar=calendar,
        conflict_detector=conflict_detector,
    )
    auth_service = AuthService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(tenant_router)
    app.include_router(booking_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.tenant_directory = tenant_directory
    app.state.business_hours_calendar = calendar
    app.state.room_catalog = room_catalog
    app.state.allocation_engine = allocation_engine
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    The schema must exist before the demo tenant is seeded.
    """
    repository: DataRepository = app.state.repository
    tenant_directory: TenantDirectory = app.state.tenant_directory

    logger.info("Startup: initializing database schema at %s", repository.database_path)
    repository.initialize_database()

    logger.info("Startup: seeding demo tenant (skipped if disabled or present)")
    tenant_directory.ensure_demo_tenant()

    logger.info("Startup complete, booking engine ready")


# Module-level app object for uvicorn
app = create_app()
