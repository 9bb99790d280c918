"""
Slot availability checker.

Read-only. Reports whether a worker's window is free against the active
bookings already in the store. A store failure is never reported as
"available": it surfaces as a retryable StoreUnavailableError.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Callable, Optional

from booking_engine.config import SchedulingConfig, settings
from booking_engine.errors import BookingValidationError, StoreUnavailableError
from booking_engine.schemas.booking_schema import ACTIVE_STATUSES
from booking_engine.tools.booking_store import BookingStore, StoreError
from booking_engine.utils import MINUTES_PER_DAY, window_minutes, windows_overlap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityResult:
    """Outcome of an availability check."""

    available: bool
    conflicting_booking_id: Optional[str] = None


def validate_window(
    service_date: date,
    service_time: time,
    duration_hours: Decimal,
    today: date,
    max_hours: Decimal,
) -> None:
    """Reject windows that are in the past, empty, too long, or cross midnight."""
    if service_date < today:
        raise BookingValidationError(
            f"Service date {service_date.isoformat()} is in the past", fields=["service_date"]
        )
    if duration_hours <= 0:
        raise BookingValidationError("duration_hours must be positive", fields=["duration_hours"])
    if duration_hours > max_hours:
        raise BookingValidationError(
            f"duration_hours must not exceed {max_hours}", fields=["duration_hours"]
        )
    _, end = window_minutes(service_time, duration_hours)
    if end > MINUTES_PER_DAY:
        raise BookingValidationError(
            "Booking must end by midnight of the service date",
            fields=["service_time", "duration_hours"],
        )


class AvailabilityChecker:
    """Checks a worker's window against the store's active bookings."""

    def __init__(
        self,
        store: BookingStore,
        clock: Callable[[], datetime],
        config: Optional[SchedulingConfig] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._config = config or settings.scheduling

    def check_availability(
        self,
        worker_id: str,
        service_date: date,
        service_time: time,
        duration_hours: Decimal,
        exclude_booking_id: Optional[str] = None,
    ) -> AvailabilityResult:
        """
        Check whether ``[service_time, service_time + duration)`` is free.

        Raises:
            BookingValidationError: If the window itself is invalid.
            StoreUnavailableError: If the store read fails or times out.
        """
        duration_hours = Decimal(duration_hours)
        validate_window(
            service_date,
            service_time,
            duration_hours,
            today=self._clock().date(),
            max_hours=self._config.max_booking_hours,
        )

        try:
            existing = self._store.find_active_bookings_for_worker(worker_id, service_date)
        except (StoreError, TimeoutError) as exc:
            logger.error("Availability read failed for worker %s: %s", worker_id, exc)
            raise StoreUnavailableError(self._config.store_retry_after_sec) from exc

        requested = window_minutes(service_time, duration_hours)
        for booking in existing:
            if booking.booking_id == exclude_booking_id or booking.status not in ACTIVE_STATUSES:
                continue
            if windows_overlap(requested, window_minutes(booking.service_time, booking.duration_hours)):
                logger.info(
                    "Worker %s busy on %s at %s (conflicts with %s)",
                    worker_id, service_date, service_time.strftime("%H:%M"), booking.booking_id,
                )
                return AvailabilityResult(available=False, conflicting_booking_id=booking.booking_id)

        return AvailabilityResult(available=True)
