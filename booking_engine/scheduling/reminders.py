"""Daily reminder job: one ReminderDue event per upcoming confirmed booking."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from booking_engine.config import SchedulingConfig, settings
from booking_engine.errors import StoreUnavailableError
from booking_engine.scheduling.state_machine import NotificationRule, Recipient
from booking_engine.schemas.booking_schema import Booking, BookingStatus
from booking_engine.schemas.event_schema import BookingEvent, EventKind, Notification
from booking_engine.tools.booking_store import BookingStore, StoreError
from booking_engine.tools.event_sink import EventSink

logger = logging.getLogger(__name__)

REMINDER_RULES: list[NotificationRule] = [
    NotificationRule(
        BookingStatus.CONFIRMED, Recipient.CUSTOMER, "booking_reminder",
        "Booking Reminder", "Your booking for {service_name} is {when} at {time}",
    ),
    NotificationRule(
        BookingStatus.CONFIRMED, Recipient.WORKER, "booking_reminder",
        "Booking Reminder", "You have a booking for {service_name} {when} at {time}",
    ),
]


def _describe_day(lead_days: int, service_date: date) -> str:
    if lead_days == 0:
        return "today"
    if lead_days == 1:
        return "tomorrow"
    return f"on {service_date.isoformat()}"


def reminder_notifications(booking: Booking, lead_days: int) -> list[Notification]:
    when = _describe_day(lead_days, booking.service_date)
    notifications = []
    for rule in REMINDER_RULES:
        recipient = booking.customer_id if rule.recipient == Recipient.CUSTOMER else booking.worker_id
        notifications.append(
            Notification(
                recipient_id=recipient,
                type=rule.type,
                title=rule.title,
                message=rule.message.format(
                    service_name=booking.service_name or booking.service_id,
                    when=when,
                    time=booking.service_time.strftime("%H:%M"),
                ),
            )
        )
    return notifications


@dataclass
class ReminderRun:
    """Outcome of one reminder pass: what went out and what the sink refused."""

    sent: list[BookingEvent] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class ReminderScheduler:
    """Finds confirmed bookings ``reminder_lead_days`` ahead and emits reminders.

    Meant to be run once a day by an external scheduler (cron or similar).
    """

    def __init__(
        self,
        store: BookingStore,
        event_sink: EventSink,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[SchedulingConfig] = None,
    ) -> None:
        self._store = store
        self._sink = event_sink
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._config = config or settings.scheduling

    def emit_due_reminders(self, today: Optional[date] = None) -> ReminderRun:
        """Publish one ReminderDue event per due booking.

        A booking whose reminder the sink refuses is recorded in
        ``failed`` (booking id to error) and the pass carries on, so a
        rerun knows exactly which reminders are still owed.
        """
        now = self._clock()
        today = today or now.date()
        lead_days = self._config.reminder_lead_days
        target = today + timedelta(days=lead_days)

        try:
            due = self._store.list_bookings(service_date=target, status=BookingStatus.CONFIRMED)
        except (StoreError, TimeoutError) as exc:
            logger.error("Reminder scan for %s failed: %s", target, exc)
            raise StoreUnavailableError(self._config.store_retry_after_sec) from exc

        run = ReminderRun()
        for booking in sorted(due, key=lambda b: (b.service_time, b.booking_id)):
            event = BookingEvent(
                booking_id=booking.booking_id,
                kind=EventKind.REMINDER_DUE,
                previous_status=booking.status,
                new_status=booking.status,
                occurred_at=now,
                notifications=reminder_notifications(booking, lead_days),
            )
            try:
                self._sink.publish(event)
            except Exception as exc:
                logger.error(
                    "Reminder for %s could not be published: %s", booking.booking_id, exc, exc_info=True
                )
                run.failed[booking.booking_id] = str(exc)
                continue
            run.sent.append(event)

        logger.info(
            "Sent %d reminders for bookings on %s (%d failed)", len(run.sent), target, len(run.failed)
        )
        return run
