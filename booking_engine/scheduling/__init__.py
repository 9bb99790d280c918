from booking_engine.scheduling.availability import AvailabilityChecker, AvailabilityResult
from booking_engine.scheduling.lifecycle import BookingLifecycleManager, WorkerLockRegistry
from booking_engine.scheduling.pricing import compute_price, recurring_discount_percent
from booking_engine.scheduling.recurrence import (
    OccurrenceResult,
    RecurringBookingService,
    SeriesResult,
    expand,
    next_page,
)
from booking_engine.scheduling.reminders import ReminderRun, ReminderScheduler
from booking_engine.scheduling.state_machine import BookingStateMachine

__all__ = [
    "AvailabilityChecker",
    "AvailabilityResult",
    "BookingLifecycleManager",
    "WorkerLockRegistry",
    "BookingStateMachine",
    "compute_price",
    "recurring_discount_percent",
    "expand",
    "next_page",
    "RecurringBookingService",
    "OccurrenceResult",
    "SeriesResult",
    "ReminderRun",
    "ReminderScheduler",
]
