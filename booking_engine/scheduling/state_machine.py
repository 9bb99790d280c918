"""
Booking status state machine and notification routing.

Both the legal transitions and who gets notified on arrival in a status
are plain data tables. Adding a status means adding rows, not branches.

Usage:
    sm = BookingStateMachine(BookingStatus.PENDING)
    sm.transition(BookingStatus.CONFIRMED)
    assert sm.current_status == BookingStatus.CONFIRMED
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from booking_engine.errors import InvalidTransitionError
from booking_engine.schemas.booking_schema import Booking, BookingStatus, CancelledBy
from booking_engine.schemas.event_schema import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    """A single legal status change."""

    from_status: BookingStatus
    to_status: BookingStatus


class Recipient(str, Enum):
    """Which party of a booking a notification is addressed to."""

    CUSTOMER = "customer"
    WORKER = "worker"
    # The party that did not perform the action
    COUNTERPARTY = "counterparty"


@dataclass(frozen=True)
class NotificationRule:
    """Notification produced when a booking arrives in ``status``."""

    status: BookingStatus
    recipient: Recipient
    type: str
    title: str
    message: str


class BookingStateMachine:
    """
    Table-driven lifecycle of a single booking.

    ``completed`` and ``cancelled`` have no outgoing rows, which is what
    makes them terminal.
    """

    TRANSITIONS: list[Transition] = [
        Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED),
        Transition(BookingStatus.PENDING, BookingStatus.CANCELLED),
        Transition(BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS),
        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
        Transition(BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED),
        Transition(BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED),
    ]

    NOTIFICATION_RULES: list[NotificationRule] = [
        NotificationRule(
            BookingStatus.CONFIRMED, Recipient.CUSTOMER, "booking_confirmed",
            "Booking Confirmed", "Your booking for {service_name} has been confirmed",
        ),
        NotificationRule(
            BookingStatus.CANCELLED, Recipient.COUNTERPARTY, "booking_cancelled",
            "Booking Cancelled", "Booking for {service_name} has been cancelled by {cancelled_by}",
        ),
        NotificationRule(
            BookingStatus.COMPLETED, Recipient.CUSTOMER, "booking_completed",
            "Booking Completed", "Your booking for {service_name} has been completed",
        ),
    ]

    CREATION_RULE = NotificationRule(
        BookingStatus.PENDING, Recipient.WORKER, "booking_request",
        "New Booking Request", "You have a new booking request for {service_name}",
    )

    def __init__(self, status: BookingStatus = BookingStatus.PENDING) -> None:
        self._current_status = status

    @property
    def current_status(self) -> BookingStatus:
        return self._current_status

    @classmethod
    def allowed_targets(cls, status: BookingStatus) -> list[BookingStatus]:
        return [t.to_status for t in cls.TRANSITIONS if t.from_status == status]

    def get_valid_targets(self) -> list[BookingStatus]:
        """Return all statuses reachable from the current status."""
        return self.allowed_targets(self._current_status)

    def transition(self, target: BookingStatus) -> BookingStatus:
        """
        Move to ``target``.

        Raises:
            InvalidTransitionError: If no row allows it.
        """
        allowed = self.get_valid_targets()
        if target not in allowed:
            raise InvalidTransitionError(
                self._current_status.value, target.value, [s.value for s in allowed]
            )
        logger.debug("Status transition: %s -> %s", self._current_status.value, target.value)
        self._current_status = target
        return self._current_status

    def is_terminal(self) -> bool:
        return not self.get_valid_targets()

    @staticmethod
    def cancelled_by(booking: Booking, actor_id: str) -> CancelledBy:
        if actor_id == booking.customer_id:
            return CancelledBy.CUSTOMER
        if actor_id == booking.worker_id:
            return CancelledBy.WORKER
        return CancelledBy.ADMIN

    @staticmethod
    def resolve_recipient(rule: NotificationRule, booking: Booking, actor_id: Optional[str]) -> str:
        if rule.recipient == Recipient.CUSTOMER:
            return booking.customer_id
        if rule.recipient == Recipient.WORKER:
            return booking.worker_id
        return booking.worker_id if actor_id == booking.customer_id else booking.customer_id

    @classmethod
    def render(
        cls,
        rule: NotificationRule,
        booking: Booking,
        actor_id: Optional[str],
        cancelled_by: Optional[CancelledBy] = None,
    ) -> Notification:
        return Notification(
            recipient_id=cls.resolve_recipient(rule, booking, actor_id),
            type=rule.type,
            title=rule.title,
            message=rule.message.format(
                service_name=booking.service_name or booking.service_id,
                cancelled_by=cancelled_by.value if cancelled_by else "",
            ),
        )

    @classmethod
    def notifications_for(
        cls,
        booking: Booking,
        target: BookingStatus,
        actor_id: str,
        cancelled_by: Optional[CancelledBy] = None,
    ) -> list[Notification]:
        """Notifications owed when ``booking`` arrives in ``target``."""
        return [
            cls.render(rule, booking, actor_id, cancelled_by)
            for rule in cls.NOTIFICATION_RULES
            if rule.status == target
        ]
