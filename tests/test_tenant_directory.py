from __future__ import annotations

from dataclasses import replace
from datetime import time

import pytest

from backend.domain.errors import (
    InvalidTenantError,
    TenantInactiveError,
    TenantNotFoundError,
    TenantSlugTakenError,
)
from backend.repository.data_repository import DataRepository
from backend.services.calendar_service import BusinessHoursCalendar
from backend.services.tenant_service import TenantDirectory, tenant_slug_from_host
from backend.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str, **overrides):
    get_settings.cache_clear()
    base = replace(
        get_settings(),
        database_path=tmp_path / filename,
        seed_demo_data=False,
        admin_token=None,
        default_timezone="UTC",
    )
    return replace(base, **overrides)


def _build_directory(tmp_path, filename: str, **overrides):
    settings = _build_test_settings(tmp_path, filename, **overrides)
    repository = DataRepository(settings)
    repository.initialize_database()
    return repository, settings, TenantDirectory(repository=repository, settings=settings)


def test_resolve_by_id_and_slug(tmp_path) -> None:
    _, _, directory = _build_directory(tmp_path, "tenants_resolve.db")
    tenant = directory.create_tenant(name="Alpha Karaoke", slug="alpha", email="a@example.com")

    assert directory.resolve_tenant(tenant.tenant_id) == tenant
    assert directory.resolve_tenant("alpha") == tenant
    assert directory.resolve_tenant(" ALPHA ") == tenant


def test_unknown_tenant_is_not_found(tmp_path) -> None:
    _, _, directory = _build_directory(tmp_path, "tenants_unknown.db")

    with pytest.raises(TenantNotFoundError):
        directory.resolve_tenant("ghost")
    with pytest.raises(TenantNotFoundError):
        directory.resolve_tenant(42)


def test_inactive_tenant_is_rejected(tmp_path) -> None:
    _, _, directory = _build_directory(tmp_path, "tenants_inactive.db")
    tenant = directory.create_tenant(name="Alpha Karaoke", slug="alpha", email="a@example.com")

    deactivated = directory.deactivate_tenant("alpha")

    assert not deactivated.is_active
    with pytest.raises(TenantInactiveError):
        directory.resolve_tenant(tenant.tenant_id)


def test_create_tenant_applies_defaults_and_seeds_week(tmp_path) -> None:
    repository, settings, directory = _build_directory(tmp_path, "tenants_defaults.db")

    tenant = directory.create_tenant(name="Alpha Karaoke", slug="alpha", email="a@example.com")
    hours = BusinessHoursCalendar(repository=repository, settings=settings).get_business_hours(tenant)

    assert tenant.timezone == "UTC"
    assert tenant.currency == settings.default_currency
    assert tenant.max_rooms == settings.default_max_rooms
    assert [record.day_of_week for record in hours] == list(range(7))
    assert (hours[0].open_time, hours[0].close_time) == (time(10, 0), time(21, 0))
    assert (hours[5].open_time, hours[5].close_time) == (time(9, 0), time(23, 0))


def test_duplicate_slug_is_rejected(tmp_path) -> None:
    _, _, directory = _build_directory(tmp_path, "tenants_duplicate.db")
    directory.create_tenant(name="Alpha Karaoke", slug="alpha", email="a@example.com")

    with pytest.raises(TenantSlugTakenError):
        directory.create_tenant(name="Alpha Again", slug="alpha", email="b@example.com")


def test_invalid_slug_and_timezone_are_rejected(tmp_path) -> None:
    _, _, directory = _build_directory(tmp_path, "tenants_invalid.db")

    with pytest.raises(InvalidTenantError):
        directory.create_tenant(name="Alpha", slug="Alpha_Karaoke", email="a@example.com")
    with pytest.raises(InvalidTenantError):
        directory.create_tenant(
            name="Alpha",
            slug="alpha",
            email="a@example.com",
            timezone_name="Mars/Olympus_Mons",
        )


def test_demo_tenant_seed_is_idempotent(tmp_path) -> None:
    _, _, directory = _build_directory(
        tmp_path,
        "tenants_demo.db",
        seed_demo_data=True,
        demo_tenant_slug="demo",
    )

    first = directory.ensure_demo_tenant()
    second = directory.ensure_demo_tenant()

    assert first is not None
    assert first.tenant_id == second.tenant_id


def test_demo_seed_skipped_when_disabled(tmp_path) -> None:
    _, _, directory = _build_directory(tmp_path, "tenants_no_demo.db")

    assert directory.ensure_demo_tenant() is None
    with pytest.raises(TenantNotFoundError):
        directory.resolve_tenant("demo")


@pytest.mark.parametrize(
    ("host", "expected"),
    [
        ("alpha.boomkaraoke.com", "alpha"),
        ("Alpha.BoomKaraoke.com:8443", "alpha"),
        ("www.boomkaraoke.com", None),
        ("api.boomkaraoke.com", None),
        ("boomkaraoke.com", None),
        ("a.b.boomkaraoke.com", None),
        ("localhost:8000", None),
        (None, None),
    ],
)
def test_tenant_slug_from_host(host, expected) -> None:
    assert tenant_slug_from_host(host, "boomkaraoke.com") == expected
