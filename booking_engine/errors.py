"""
Typed errors raised by the booking engine.

Every rejection the engine reports is one of these. Callers branch on the
class (or on ``code``) and use ``retryable`` to decide whether to retry.
"""

from typing import Any, Optional


class BookingError(Exception):
    """Base class for all booking engine errors."""

    code = "booking_error"
    retryable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Caller-facing representation of the error."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": dict(self.details),
        }


class BookingValidationError(BookingError):
    """Missing or malformed input. Fix the request; retrying as-is won't help."""

    code = "validation_error"

    def __init__(self, message: str, fields: Optional[list[str]] = None, **details: Any) -> None:
        super().__init__(message, fields=list(fields or []), **details)
        self.fields = list(fields or [])


class SlotUnavailableError(BookingError):
    """The worker already has an active booking overlapping the requested window."""

    code = "slot_unavailable"

    def __init__(self, message: str, conflicting_booking_id: Optional[str] = None) -> None:
        super().__init__(message, conflicting_booking_id=conflicting_booking_id)
        self.conflicting_booking_id = conflicting_booking_id


class InvalidTransitionError(BookingError):
    """The requested status is not reachable from the booking's current status."""

    code = "invalid_transition"

    def __init__(self, current_status: str, target_status: str, allowed: list[str]) -> None:
        super().__init__(
            f"Cannot move booking from '{current_status}' to '{target_status}'. "
            f"Allowed: {allowed}",
            current_status=current_status,
            target_status=target_status,
            allowed=allowed,
        )
        self.current_status = current_status
        self.target_status = target_status
        self.allowed = allowed


class ForbiddenError(BookingError):
    """The requester is not allowed to perform this operation."""

    code = "forbidden"


class NotFoundError(BookingError):
    """A referenced booking, service, or worker does not exist."""

    code = "not_found"


class StoreUnavailableError(BookingError):
    """The booking store could not be reached or timed out. Retry with backoff.

    The message is deliberately generic; the underlying store exception is
    chained as ``__cause__`` for logs only.
    """

    code = "store_unavailable"
    retryable = True

    def __init__(self, retry_after_seconds: int = 2) -> None:
        super().__init__(
            "Booking service is temporarily unavailable. Please retry shortly.",
            retry_after_seconds=retry_after_seconds,
        )
        self.retry_after_seconds = retry_after_seconds
