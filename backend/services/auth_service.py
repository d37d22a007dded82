"""Admin token authentication issuing tenant-bound bearer sessions."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from threading import RLock
from typing import Callable, Optional

from backend.utils.config import Settings, get_settings


class AuthenticationError(Exception):
    """Base authentication failure."""


class AdminTokenNotConfiguredError(AuthenticationError):
    """Raised when ADMIN_TOKEN is missing."""


class InvalidAdminTokenError(AuthenticationError):
    """Raised when provided token is invalid."""


@dataclass(frozen=True)
class _Session:
    tenant_slug: str
    expires_at: float


class AuthService:
    """Validates login credentials and maps bearer tokens to a tenant slug.

    The tenant a request acts on comes from the session, never from the
    request body. Sessions expire after ``session_ttl_seconds`` and at most
    ``max_sessions`` are kept; the oldest are evicted first.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or time.monotonic
        self._sessions: dict[str, _Session] = {}
        self._lock = RLock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.admin_token)

    def _expected_token(self) -> str:
        if not self._settings.admin_token:
            raise AdminTokenNotConfiguredError(
                "ADMIN_TOKEN is not configured. Set ADMIN_TOKEN in environment variables."
            )
        return self._settings.admin_token

    def login(self, provided_admin_token: str, tenant_slug: str) -> str:
        expected = self._expected_token()
        if not secrets.compare_digest(provided_admin_token, expected):
            raise InvalidAdminTokenError("Invalid admin token")
        session_token = secrets.token_urlsafe(32)
        now = self._clock()
        with self._lock:
            self._prune(now)
            # dicts keep insertion order, so the first keys are the oldest sessions.
            while len(self._sessions) >= max(self._settings.max_sessions, 1):
                self._sessions.pop(next(iter(self._sessions)))
            self._sessions[session_token] = _Session(
                tenant_slug=tenant_slug,
                expires_at=now + self._settings.session_ttl_seconds,
            )
        return session_token

    def tenant_for_bearer_token(self, bearer_token: str) -> str:
        with self._lock:
            session = self._sessions.get(bearer_token)
            if session is not None and session.expires_at <= self._clock():
                del self._sessions[bearer_token]
                session = None
        if session is None:
            raise InvalidAdminTokenError("Invalid bearer token")
        return session.tenant_slug

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)

    def _prune(self, now: float) -> None:
        expired = [token for token, session in self._sessions.items() if session.expires_at <= now]
        for token in expired:
            del self._sessions[token]
