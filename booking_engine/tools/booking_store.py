"""
Booking store port and in-memory adapter.

In production this would be a document store or SQL table with a
conditional write (transaction or compare-and-swap). The in-memory
adapter enforces the same guarantees with a lock so tests exercise the
real conflict semantics.
"""

import logging
import threading
from datetime import date, datetime
from enum import Enum
from typing import Optional, Protocol

from booking_engine.schemas.booking_schema import (
    ACTIVE_STATUSES,
    Booking,
    BookingStatus,
    CancelledBy,
)
from booking_engine.utils import window_minutes, windows_overlap

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised by store adapters when a read or write cannot be completed."""


class WriteOutcome(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class BookingStore(Protocol):
    def find_active_bookings_for_worker(self, worker_id: str, service_date: date) -> list[Booking]: ...

    def insert_booking(self, booking: Booking) -> WriteOutcome: ...

    def update_booking_status(
        self,
        booking_id: str,
        expected_status: BookingStatus,
        new_status: BookingStatus,
        notes: Optional[str] = None,
        updated_at: Optional[datetime] = None,
        cancelled_by: Optional[CancelledBy] = None,
    ) -> tuple[WriteOutcome, Optional[Booking]]: ...

    def replace_booking(self, booking: Booking, expected_status: BookingStatus) -> WriteOutcome: ...

    def restore_booking(self, booking: Booking, expected_status: BookingStatus) -> WriteOutcome: ...

    def withdraw_booking(self, booking_id: str) -> WriteOutcome: ...

    def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    def find_by_idempotency_key(self, customer_id: str, key: str) -> Optional[Booking]: ...

    def list_bookings(
        self,
        customer_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        service_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]: ...


def find_overlap(candidate: Booking, existing: list[Booking]) -> Optional[Booking]:
    """Return the first active booking whose window overlaps ``candidate``."""
    window = window_minutes(candidate.service_time, candidate.duration_hours)
    for other in existing:
        if other.booking_id == candidate.booking_id or other.status not in ACTIVE_STATUSES:
            continue
        if other.service_date != candidate.service_date or other.worker_id != candidate.worker_id:
            continue
        if windows_overlap(window, window_minutes(other.service_time, other.duration_hours)):
            return other
    return None


class InMemoryBookingStore:
    """Thread-safe dict-backed store with conditional writes."""

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._idempotency: dict[tuple[str, str], str] = {}
        self._lock = threading.RLock()

    def find_active_bookings_for_worker(self, worker_id: str, service_date: date) -> list[Booking]:
        with self._lock:
            return [
                b.model_copy(deep=True)
                for b in self._bookings.values()
                if b.worker_id == worker_id
                and b.service_date == service_date
                and b.status in ACTIVE_STATUSES
            ]

    def insert_booking(self, booking: Booking) -> WriteOutcome:
        """Insert unless an active booking of the same worker overlaps."""
        with self._lock:
            if booking.booking_id in self._bookings:
                return WriteOutcome.CONFLICT
            if booking.idempotency_key and (
                (booking.customer_id, booking.idempotency_key) in self._idempotency
            ):
                return WriteOutcome.CONFLICT
            clash = find_overlap(booking, list(self._bookings.values()))
            if clash is not None:
                logger.debug("Insert of %s rejected, overlaps %s", booking.booking_id, clash.booking_id)
                return WriteOutcome.CONFLICT
            self._bookings[booking.booking_id] = booking.model_copy(deep=True)
            if booking.idempotency_key:
                self._idempotency[(booking.customer_id, booking.idempotency_key)] = booking.booking_id
            return WriteOutcome.OK

    def update_booking_status(
        self,
        booking_id: str,
        expected_status: BookingStatus,
        new_status: BookingStatus,
        notes: Optional[str] = None,
        updated_at: Optional[datetime] = None,
        cancelled_by: Optional[CancelledBy] = None,
    ) -> tuple[WriteOutcome, Optional[Booking]]:
        """Compare-and-swap the status. Notes, when given, replace the stored notes."""
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                return WriteOutcome.NOT_FOUND, None
            if current.status != expected_status:
                return WriteOutcome.CONFLICT, current.model_copy(deep=True)
            changes: dict = {"status": new_status}
            if notes is not None:
                changes["notes"] = notes
            if updated_at is not None:
                changes["updated_at"] = updated_at
            if cancelled_by is not None:
                changes["cancelled_by"] = cancelled_by
            updated = current.model_copy(update=changes)
            self._bookings[booking_id] = updated
            return WriteOutcome.OK, updated.model_copy(deep=True)

    def replace_booking(self, booking: Booking, expected_status: BookingStatus) -> WriteOutcome:
        """Overwrite a booking if its stored status still matches.

        Active replacements are re-checked for overlap so an edit cannot
        sneak a booking into an occupied window.
        """
        with self._lock:
            current = self._bookings.get(booking.booking_id)
            if current is None:
                return WriteOutcome.NOT_FOUND
            if current.status != expected_status:
                return WriteOutcome.CONFLICT
            if booking.status in ACTIVE_STATUSES:
                if find_overlap(booking, list(self._bookings.values())) is not None:
                    return WriteOutcome.CONFLICT
            self._bookings[booking.booking_id] = booking.model_copy(deep=True)
            return WriteOutcome.OK

    def restore_booking(self, booking: Booking, expected_status: BookingStatus) -> WriteOutcome:
        """Put back a snapshot after a status change that could not be announced.

        The snapshot owned its window before the change, so it is not
        re-checked for overlap.
        """
        with self._lock:
            current = self._bookings.get(booking.booking_id)
            if current is None:
                return WriteOutcome.NOT_FOUND
            if current.status != expected_status:
                return WriteOutcome.CONFLICT
            self._bookings[booking.booking_id] = booking.model_copy(deep=True)
            return WriteOutcome.OK

    def withdraw_booking(self, booking_id: str) -> WriteOutcome:
        """Remove a booking whose creation could not be completed."""
        with self._lock:
            booking = self._bookings.pop(booking_id, None)
            if booking is None:
                return WriteOutcome.NOT_FOUND
            if booking.idempotency_key:
                self._idempotency.pop((booking.customer_id, booking.idempotency_key), None)
            logger.warning("Booking withdrawn: %s", booking_id)
            return WriteOutcome.OK

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return booking.model_copy(deep=True) if booking else None

    def find_by_idempotency_key(self, customer_id: str, key: str) -> Optional[Booking]:
        with self._lock:
            booking_id = self._idempotency.get((customer_id, key))
            return self.get_booking(booking_id) if booking_id else None

    def list_bookings(
        self,
        customer_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        service_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]:
        """Matching bookings, newest first."""
        with self._lock:
            matches = [
                b.model_copy(deep=True)
                for b in self._bookings.values()
                if (customer_id is None or b.customer_id == customer_id)
                and (worker_id is None or b.worker_id == worker_id)
                and (service_date is None or b.service_date == service_date)
                and (status is None or b.status == status)
            ]
        matches.sort(key=lambda b: (b.created_at, b.booking_id), reverse=True)
        return matches

    def reset(self) -> None:
        """Clear all bookings. Used by test fixtures for isolation."""
        with self._lock:
            self._bookings.clear()
            self._idempotency.clear()
