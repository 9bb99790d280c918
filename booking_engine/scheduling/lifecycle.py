"""
Booking lifecycle manager.

Owns creation and status changes of bookings:
Authorize -> Lock worker -> Check slot -> Price -> Write -> Emit.

The availability check and the insert run under a per-worker lock, and
the store's insert is itself conditional, so two concurrent requests for
overlapping windows of the same worker can never both succeed. Every
write is followed by exactly one event; if the event cannot be handed to
the sink the write is undone and the caller gets a retryable error.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Callable, Iterator, Optional, Union

from booking_engine.config import AppConfig, settings
from booking_engine.errors import (
    BookingValidationError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
    StoreUnavailableError,
)
from booking_engine.logging_context import get_request_logger, request_scope
from booking_engine.scheduling.availability import AvailabilityChecker, validate_window
from booking_engine.scheduling.pricing import compute_price
from booking_engine.scheduling.state_machine import BookingStateMachine
from booking_engine.schemas.booking_schema import (
    Address,
    Booking,
    BookingPage,
    BookingRequest,
    BookingStatus,
    PriceBreakdown,
)
from booking_engine.schemas.event_schema import BookingEvent, EventKind
from booking_engine.schemas.recurrence_schema import RecurrencePlan
from booking_engine.tools.booking_store import BookingStore, StoreError, WriteOutcome
from booking_engine.tools.event_sink import EventSink
from booking_engine.tools.identity import IdentityProvider
from booking_engine.tools.services import ServiceCatalog, ServiceRecord
from booking_engine.tools.workers import WorkerDirectory, WorkerRecord

logger = get_request_logger(__name__)

MAX_PAGE_SIZE = 100
LISTING_ROLES = ("customer", "worker")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkerLockRegistry:
    """Per-worker mutexes that serialize check-then-write for one worker.

    Requests for different workers never wait on each other.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, worker_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(worker_id, threading.Lock())

    @contextmanager
    def hold(self, worker_id: str, timeout: float, retry_after: int = 2) -> Iterator[None]:
        lock = self._lock_for(worker_id)
        if not lock.acquire(timeout=timeout):
            logger.warning("Timed out waiting %.1fs for worker lock %s", timeout, worker_id)
            raise StoreUnavailableError(retry_after)
        try:
            yield
        finally:
            lock.release()


class BookingLifecycleManager:
    """Creates bookings and moves them through the status table."""

    def __init__(
        self,
        store: BookingStore,
        event_sink: EventSink,
        identity: IdentityProvider,
        services: Optional[ServiceCatalog] = None,
        workers: Optional[WorkerDirectory] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[AppConfig] = None,
        locks: Optional[WorkerLockRegistry] = None,
    ) -> None:
        self._store = store
        self._sink = event_sink
        self._identity = identity
        self._services = services or ServiceCatalog()
        self._workers = workers or WorkerDirectory()
        self._clock = clock or _utc_now
        self._config = config or settings
        self._locks = locks or WorkerLockRegistry()
        self._availability = AvailabilityChecker(store, self._clock, self._config.scheduling)

    @property
    def availability(self) -> AvailabilityChecker:
        return self._availability

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    def create(
        self,
        request: BookingRequest,
        recurrence_plan: Optional[RecurrencePlan] = None,
        series_id: Optional[str] = None,
    ) -> Booking:
        """
        Create a pending booking for the authenticated customer.

        Raises:
            ForbiddenError: If the requester is not ``request.customer_id``.
            NotFoundError: If the service or worker does not exist.
            BookingValidationError: On an invalid window or a tampered quote.
            SlotUnavailableError: If the worker is already booked then.
            StoreUnavailableError: On store failure or lock timeout (retryable).
        """
        with request_scope():
            return self._create(request, recurrence_plan, series_id)

    def _create(
        self,
        request: BookingRequest,
        recurrence_plan: Optional[RecurrencePlan],
        series_id: Optional[str],
    ) -> Booking:
        requester = self._current_requester()
        if request.customer_id != requester:
            raise ForbiddenError("Can only create bookings for yourself")

        service = self._require_service(request.service_id)
        worker = self._require_worker(request.worker_id)
        duration = request.duration_hours or service["default_duration_hours"]
        self._check_emergency(service, request.is_emergency)

        scheduling = self._config.scheduling
        with self._locks.hold(
            request.worker_id, scheduling.worker_lock_timeout_sec, scheduling.store_retry_after_sec
        ):
            if request.idempotency_key:
                existing = self._read(
                    lambda: self._store.find_by_idempotency_key(
                        request.customer_id, request.idempotency_key
                    )
                )
                if existing is not None:
                    return self._replay(existing, request, service, duration)

            result = self._availability.check_availability(
                request.worker_id, request.service_date, request.service_time, duration
            )
            if not result.available:
                raise SlotUnavailableError(
                    "Worker not available at this time",
                    conflicting_booking_id=result.conflicting_booking_id,
                )

            price = self._price(
                service, worker, request.service_date, request.service_time, duration,
                request.address, request.is_emergency, recurrence_plan,
            )
            if request.quoted_total is not None and Decimal(request.quoted_total) != price.total:
                raise BookingValidationError(
                    f"Quoted total {request.quoted_total} does not match price {price.total}",
                    fields=["quoted_total"],
                    expected_total=str(price.total),
                )

            now = self._clock()
            booking = Booking(
                booking_id=f"BK-{uuid.uuid4().hex[:12].upper()}",
                customer_id=request.customer_id,
                worker_id=request.worker_id,
                service_id=service["id"],
                service_name=service["name"],
                service_date=request.service_date,
                service_time=request.service_time,
                duration_hours=duration,
                price_breakdown=price,
                total_amount=price.total,
                notes=request.notes,
                address=request.address,
                is_emergency=request.is_emergency,
                idempotency_key=request.idempotency_key,
                series_id=series_id,
                recurrence_plan=recurrence_plan,
                created_at=now,
                updated_at=now,
            )

            outcome = self._write(lambda: self._store.insert_booking(booking))
            if outcome != WriteOutcome.OK:
                if request.idempotency_key:
                    existing = self._read(
                        lambda: self._store.find_by_idempotency_key(
                            request.customer_id, request.idempotency_key
                        )
                    )
                    if existing is not None:
                        return self._replay(existing, request, service, duration)
                raise SlotUnavailableError("Worker not available at this time")

            event = BookingEvent(
                booking_id=booking.booking_id,
                kind=EventKind.BOOKING_CREATED,
                new_status=BookingStatus.PENDING,
                occurred_at=now,
                actor_id=requester,
                notifications=[
                    BookingStateMachine.render(BookingStateMachine.CREATION_RULE, booking, requester)
                ],
            )
            self._emit_or_undo(event, undo=lambda: self._store.withdraw_booking(booking.booking_id))

        logger.info(
            "Booking created: %s for %s with %s on %s at %s (total %s)",
            booking.booking_id, booking.customer_id, booking.worker_id,
            booking.service_date, booking.service_time.strftime("%H:%M"), booking.total_amount,
        )
        return booking

    def quote(
        self, request: BookingRequest, recurrence_plan: Optional[RecurrencePlan] = None
    ) -> PriceBreakdown:
        """Authoritative server-side price for a request, without booking it."""
        service = self._require_service(request.service_id)
        worker = self._require_worker(request.worker_id)
        duration = request.duration_hours or service["default_duration_hours"]
        self._check_emergency(service, request.is_emergency)
        validate_window(
            request.service_date,
            request.service_time,
            duration,
            today=self._clock().date(),
            max_hours=self._config.scheduling.max_booking_hours,
        )
        return self._price(
            service, worker, request.service_date, request.service_time, duration,
            request.address, request.is_emergency, recurrence_plan,
        )

    # ------------------------------------------------------------------ #
    # Status changes
    # ------------------------------------------------------------------ #

    def transition(
        self,
        booking_id: str,
        requester_id: str,
        target_status: Union[BookingStatus, str],
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Move a booking to ``target_status``.

        Raises:
            BookingValidationError: If ``target_status`` is not a status.
            NotFoundError: If the booking does not exist.
            ForbiddenError: If the requester is not a party or an admin.
            InvalidTransitionError: If the table does not allow the move,
                including when a concurrent writer moved it first.
            StoreUnavailableError: On store or sink failure (retryable).
        """
        with request_scope():
            return self._transition(booking_id, requester_id, target_status, notes)

    def _transition(
        self,
        booking_id: str,
        requester_id: str,
        target_status: Union[BookingStatus, str],
        notes: Optional[str],
    ) -> Booking:
        target = self._coerce_status(target_status)
        booking = self._require_booking(booking_id)
        self._authorize_party(booking, requester_id)

        BookingStateMachine(booking.status).transition(target)

        now = self._mutation_time(booking)
        cancelled_by = (
            BookingStateMachine.cancelled_by(booking, requester_id)
            if target == BookingStatus.CANCELLED
            else None
        )
        merged_notes = self._merge_notes(booking.notes, notes)

        # Held until the event is out, so a window freed by this change
        # cannot be rebooked before a failed publish restores it.
        scheduling = self._config.scheduling
        with self._locks.hold(
            booking.worker_id, scheduling.worker_lock_timeout_sec, scheduling.store_retry_after_sec
        ):
            outcome, updated = self._write(
                lambda: self._store.update_booking_status(
                    booking_id, booking.status, target, merged_notes, now, cancelled_by
                )
            )
            if outcome == WriteOutcome.NOT_FOUND:
                raise NotFoundError(f"Booking {booking_id} not found")
            if outcome == WriteOutcome.CONFLICT:
                current = updated.status if updated else booking.status
                logger.info(
                    "Concurrent change on %s: expected %s, found %s",
                    booking_id, booking.status.value, current.value,
                )
                # Another writer moved it first; the caller decided on stale data.
                raise InvalidTransitionError(
                    current.value,
                    target.value,
                    [s.value for s in BookingStateMachine.allowed_targets(current)],
                )

            event = BookingEvent(
                booking_id=booking_id,
                kind=EventKind.STATUS_CHANGED,
                previous_status=booking.status,
                new_status=target,
                occurred_at=now,
                actor_id=requester_id,
                cancelled_by=cancelled_by,
                notifications=BookingStateMachine.notifications_for(
                    booking, target, requester_id, cancelled_by
                ),
            )
            self._emit_or_undo(event, undo=lambda: self._store.restore_booking(booking, target))

        logger.info(
            "Booking %s: %s -> %s by %s", booking_id, booking.status.value, target.value, requester_id
        )
        return updated

    # ------------------------------------------------------------------ #
    # Pre-confirmation edits
    # ------------------------------------------------------------------ #

    def update_details(
        self,
        booking_id: str,
        requester_id: str,
        service_date: Optional[date] = None,
        service_time: Optional[time] = None,
        duration_hours: Optional[Decimal] = None,
        notes: Optional[str] = None,
        address: Optional[Address] = None,
        is_emergency: Optional[bool] = None,
    ) -> Booking:
        """Edit a pending booking; the slot is re-checked and the price recomputed."""
        booking = self._require_booking(booking_id)
        if requester_id != booking.customer_id and not self._identity.has_admin_capability(
            requester_id
        ):
            raise ForbiddenError("Only the customer can edit this booking")
        if booking.status != BookingStatus.PENDING:
            raise BookingValidationError(
                f"Only pending bookings can be edited (status is '{booking.status.value}')",
                fields=["status"],
            )

        service = self._require_service(booking.service_id)
        worker = self._require_worker(booking.worker_id)
        new_date = service_date or booking.service_date
        new_time = service_time or booking.service_time
        new_duration = Decimal(duration_hours) if duration_hours is not None else booking.duration_hours
        new_address = address if address is not None else booking.address
        new_emergency = booking.is_emergency if is_emergency is None else is_emergency
        self._check_emergency(service, new_emergency)

        scheduling = self._config.scheduling
        with self._locks.hold(
            booking.worker_id, scheduling.worker_lock_timeout_sec, scheduling.store_retry_after_sec
        ):
            result = self._availability.check_availability(
                booking.worker_id, new_date, new_time, new_duration, exclude_booking_id=booking_id
            )
            if not result.available:
                raise SlotUnavailableError(
                    "Worker not available at this time",
                    conflicting_booking_id=result.conflicting_booking_id,
                )

            price = self._price(
                service, worker, new_date, new_time, new_duration,
                new_address, new_emergency, booking.recurrence_plan,
            )
            updated = booking.model_copy(
                update={
                    "service_date": new_date,
                    "service_time": new_time,
                    "duration_hours": new_duration,
                    "address": new_address,
                    "is_emergency": new_emergency,
                    "notes": notes if notes is not None else booking.notes,
                    "price_breakdown": price,
                    "total_amount": price.total,
                    "updated_at": self._mutation_time(booking),
                }
            )
            outcome = self._write(
                lambda: self._store.replace_booking(updated, BookingStatus.PENDING)
            )

        if outcome == WriteOutcome.NOT_FOUND:
            raise NotFoundError(f"Booking {booking_id} not found")
        if outcome == WriteOutcome.CONFLICT:
            current = self._require_booking(booking_id)
            if current.status != BookingStatus.PENDING:
                raise BookingValidationError(
                    f"Only pending bookings can be edited (status is '{current.status.value}')",
                    fields=["status"],
                )
            raise SlotUnavailableError("Worker not available at this time")

        logger.info("Booking %s edited by %s (total %s)", booking_id, requester_id, price.total)
        return updated

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: str, requester_id: str) -> Booking:
        """Return a booking visible to its customer, its worker, or an admin."""
        booking = self._require_booking(booking_id)
        self._authorize_party(booking, requester_id, action="view")
        return booking

    def list_bookings(
        self,
        requester_id: str,
        role: str = "customer",
        status: Optional[Union[BookingStatus, str]] = None,
        limit: int = 20,
        after: Optional[str] = None,
    ) -> BookingPage:
        """Page through the requester's bookings, newest first.

        ``after`` is the ``next_cursor`` of the previous page.
        """
        if role not in LISTING_ROLES:
            raise BookingValidationError(f"role must be one of {LISTING_ROLES}", fields=["role"])
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise BookingValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}", fields=["limit"]
            )
        status_filter = self._coerce_status(status) if status is not None else None

        filters: dict[str, Any] = {"status": status_filter}
        filters["customer_id" if role == "customer" else "worker_id"] = requester_id
        bookings = self._read(lambda: self._store.list_bookings(**filters))

        start = 0
        if after is not None:
            ids = [b.booking_id for b in bookings]
            if after not in ids:
                raise BookingValidationError(f"Unknown cursor: {after}", fields=["after"])
            start = ids.index(after) + 1

        page = bookings[start:start + limit]
        has_more = start + limit < len(bookings)
        return BookingPage(
            bookings=page,
            has_more=has_more,
            next_cursor=page[-1].booking_id if has_more and page else None,
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _current_requester(self) -> str:
        try:
            return self._identity.current_requester_id()
        except LookupError:
            raise ForbiddenError("Authentication required") from None

    def _authorize_party(self, booking: Booking, requester_id: str, action: str = "update") -> None:
        if requester_id in (booking.customer_id, booking.worker_id):
            return
        if self._identity.has_admin_capability(requester_id):
            return
        raise ForbiddenError(f"Not authorized to {action} this booking")

    def _require_booking(self, booking_id: str) -> Booking:
        booking = self._read(lambda: self._store.get_booking(booking_id))
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def _require_service(self, service_id: str) -> ServiceRecord:
        service = self._services.get_service(service_id)
        if service is None:
            raise NotFoundError(f"Service {service_id} not found")
        return service

    def _require_worker(self, worker_id: str) -> WorkerRecord:
        worker = self._workers.get_worker(worker_id)
        if worker is None:
            raise NotFoundError(f"Worker {worker_id} not found")
        return worker

    @staticmethod
    def _replay(
        existing: Booking, request: BookingRequest, service: ServiceRecord, duration: Decimal
    ) -> Booking:
        """Return the booking stored under the request's idempotency key.

        A key reused for a different slot is a client error, not a replay.
        """
        requested = (
            request.worker_id, service["id"], request.service_date, request.service_time,
            Decimal(duration),
        )
        stored = (
            existing.worker_id, existing.service_id, existing.service_date,
            existing.service_time, existing.duration_hours,
        )
        if requested != stored:
            raise BookingValidationError(
                f"Idempotency key {request.idempotency_key!r} was already used for "
                f"booking {existing.booking_id} with different details",
                fields=["idempotency_key"],
                booking_id=existing.booking_id,
            )
        logger.info(
            "Idempotent replay of %s returned %s", request.idempotency_key, existing.booking_id
        )
        return existing

    @staticmethod
    def _check_emergency(service: ServiceRecord, is_emergency: bool) -> None:
        if is_emergency and not service["emergency_available"]:
            raise BookingValidationError(
                f"{service['name']} cannot be booked as an emergency", fields=["is_emergency"]
            )

    def _price(
        self,
        service: ServiceRecord,
        worker: WorkerRecord,
        service_date: date,
        service_time: time,
        duration: Decimal,
        address: Optional[Address],
        is_emergency: bool,
        recurrence_plan: Optional[RecurrencePlan],
    ) -> PriceBreakdown:
        return compute_price(
            base_rate=service["hourly_rate"],
            duration_hours=duration,
            scheduled_at=datetime.combine(service_date, service_time),
            location=address.location_key if address else None,
            experience_tier=worker["experience_tier"],
            is_emergency=is_emergency,
            recurrence_plan=recurrence_plan,
            config=self._config.pricing,
        )

    def _mutation_time(self, booking: Booking) -> datetime:
        """Now, but never earlier than the booking's last update."""
        return max(self._clock(), booking.updated_at)

    @staticmethod
    def _merge_notes(existing: str, notes: Optional[str]) -> Optional[str]:
        if not notes:
            return None
        return f"{existing}\n{notes}" if existing else notes

    @staticmethod
    def _coerce_status(value: Union[BookingStatus, str]) -> BookingStatus:
        try:
            return BookingStatus(value)
        except ValueError:
            raise BookingValidationError(f"Unknown status: {value!r}", fields=["status"]) from None

    def _read(self, operation: Callable[[], Any]) -> Any:
        try:
            return operation()
        except (StoreError, TimeoutError) as exc:
            logger.error("Booking store read failed: %s", exc)
            raise StoreUnavailableError(self._config.scheduling.store_retry_after_sec) from exc

    def _write(self, operation: Callable[[], Any]) -> Any:
        try:
            return operation()
        except (StoreError, TimeoutError) as exc:
            logger.error("Booking store write failed: %s", exc)
            raise StoreUnavailableError(self._config.scheduling.store_retry_after_sec) from exc

    def _emit_or_undo(self, event: BookingEvent, undo: Callable[[], WriteOutcome]) -> None:
        """Publish ``event``; if the sink refuses it, revert the write and fail."""
        try:
            self._sink.publish(event)
        except Exception as exc:
            logger.error(
                "Event %s for %s could not be published, reverting: %s",
                event.kind.value, event.booking_id, exc, exc_info=True,
            )
            outcome = self._write(undo)
            if outcome != WriteOutcome.OK:
                logger.error("Revert of %s returned %s", event.booking_id, outcome.value)
            raise StoreUnavailableError(self._config.scheduling.store_retry_after_sec) from exc
