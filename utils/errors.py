"""
Error types raised by the booking core.

Every error carries the HTTP status and a short machine code so the app's
single error handler can render it as ``{"error": ..., "code": ...}``.
Conflicts (try another slot) are kept apart from validation and policy
errors (fix the request).
"""


class BookingError(Exception):
    """Base class for all booking-core failures."""

    status_code = 400
    code = "BOOKING_ERROR"

    def __init__(self, message=None, **details):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or (self.__class__.__doc__ or "").strip()
        self.details = details

    def to_dict(self):
        out = {"error": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(BookingError):
    """Invalid request."""

    code = "VALIDATION_ERROR"


class PolicyViolation(BookingError):
    """Request violates the booking policy."""

    code = "POLICY_VIOLATION"


class CancellationWindowClosed(PolicyViolation):
    """Booking can no longer be cancelled."""

    code = "CANCELLATION_WINDOW_CLOSED"


class InvalidSignature(BookingError):
    """Invalid payment signature."""

    code = "INVALID_SIGNATURE"


class Unauthorized(BookingError):
    """Authentication required."""

    status_code = 401
    code = "AUTH_REQUIRED"


class Forbidden(BookingError):
    """Forbidden."""

    status_code = 403
    code = "FORBIDDEN"


class NotFound(BookingError):
    """Not found."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(BookingError):
    """Conflicting state."""

    status_code = 409
    code = "CONFLICT"


class SlotUnavailable(ConflictError):
    """Slot is not available for booking."""

    code = "SLOT_UNAVAILABLE"


class SlotConflict(ConflictError):
    """Slot was booked by another request."""

    code = "SLOT_CONFLICT"


class AlreadyBound(ConflictError):
    """Slot is already bound for this date."""

    code = "ALREADY_BOUND"


class IllegalTransition(ConflictError):
    """Booking status change not allowed."""

    code = "ILLEGAL_TRANSITION"


class InfrastructureError(BookingError):
    """Data store unavailable."""

    status_code = 503
    code = "STORE_UNAVAILABLE"
