"""Error taxonomy shared by the allocation engine and its collaborators."""

from __future__ import annotations


class BookingEngineError(Exception):
    """Base class for every failure the engine reports to callers."""

    code = "BOOKING_ENGINE_ERROR"
    retryable = False


class NotFoundError(BookingEngineError):
    code = "NOT_FOUND"


class TenantNotFoundError(NotFoundError):
    """Raised when a tenant identifier does not resolve to any tenant."""

    code = "TENANT_NOT_FOUND"


class TenantInactiveError(BookingEngineError):
    """Raised when the identifier resolves to a deactivated tenant."""

    code = "TENANT_INACTIVE"


class RoomNotFoundError(NotFoundError):
    code = "ROOM_NOT_FOUND"


class BookingNotFoundError(NotFoundError):
    code = "BOOKING_NOT_FOUND"


class ValidationError(BookingEngineError):
    code = "VALIDATION_ERROR"


class InvalidIntervalError(ValidationError):
    """Raised for end <= start, or a start in the past."""

    code = "INVALID_INTERVAL"


class OutsideBusinessHoursError(ValidationError):
    code = "OUTSIDE_BUSINESS_HOURS"


class InvalidBusinessHoursError(ValidationError):
    code = "INVALID_BUSINESS_HOURS"


class InvalidRoomError(ValidationError):
    code = "INVALID_ROOM"


class InvalidTenantError(ValidationError):
    code = "INVALID_TENANT"


class InvalidBookingError(ValidationError):
    """Raised for malformed booking input such as a blank customer name."""

    code = "INVALID_BOOKING"


class ConflictError(BookingEngineError):
    code = "CONFLICT"


class TimeSlotConflictError(ConflictError):
    """Raised when a candidate interval overlaps an active booking."""

    code = "TIME_SLOT_CONFLICT"


class RoomNameTakenError(ConflictError):
    code = "ROOM_NAME_TAKEN"


class TenantSlugTakenError(ConflictError):
    code = "TENANT_SLUG_TAKEN"


class DomainRuleError(BookingEngineError):
    code = "DOMAIN_RULE_VIOLATION"


class AlreadyCancelledError(DomainRuleError):
    code = "ALREADY_CANCELLED"


class BookingNotActiveError(DomainRuleError):
    """Raised when a terminal booking is asked to change its slot."""

    code = "BOOKING_NOT_ACTIVE"


class RoomInactiveError(DomainRuleError):
    code = "ROOM_INACTIVE"


class RoomHasActiveBookingsError(DomainRuleError):
    code = "ROOM_HAS_ACTIVE_BOOKINGS"


class TenantLimitExceededError(DomainRuleError):
    code = "TENANT_LIMIT_EXCEEDED"


class StorageUnavailableError(BookingEngineError):
    """Transient backing-store failure; the only error callers may retry."""

    code = "STORAGE_UNAVAILABLE"
    retryable = True
