"""Typed failures raised by the booking core.

Each kind maps to an HTTP status and carries a message that can be shown to the
end user as-is. They are expected, recoverable outcomes; the API layer renders
them through the handler registered in ``app.main``.
"""

from typing import Optional


class DomainError(Exception):
    """Base class for expected booking/review failures."""

    status_code: int = 400
    code: str = "error"
    default_detail: str = "The request could not be completed"

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(DomainError):
    """Malformed input: dates out of order, rating out of range, unusable references."""

    code = "validation_error"
    default_detail = "Validation failed"


class NotFound(DomainError):
    status_code = 404
    code = "not_found"
    default_detail = "Resource not found"

    def __init__(self, resource: str = "Resource", identifier: Optional[object] = None) -> None:
        detail = f"{resource} not found"
        if identifier is not None:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(detail)


class NotAuthorized(DomainError):
    status_code = 403
    code = "not_authorized"
    default_detail = "You are not allowed to perform this action"


class ConflictError(DomainError):
    """An active booking already overlaps the requested dates."""

    status_code = 409
    code = "conflict"
    default_detail = "This room is already booked for the selected dates"


class InvalidTransition(DomainError):
    """Illegal status move; usually stale client state."""

    status_code = 409
    code = "invalid_transition"
    default_detail = "This operation is not allowed for the current booking status"


class BookingNotCompleted(DomainError):
    code = "booking_not_completed"
    default_detail = "Only completed bookings can be reviewed"


class DuplicateReview(DomainError):
    status_code = 409
    code = "duplicate_review"
    default_detail = "This booking has already been reviewed"


class ResourceBusy(DomainError):
    status_code = 429
    code = "busy"
    default_detail = "This room is being booked by someone else, please retry"
