"""
Recurring schedule expander and series booking.

Expansion is lazy: ``expand`` yields occurrence dates in ascending order
and never materializes an ongoing plan. ``next_page`` cuts a bounded,
restartable slice out of that stream, and ``RecurringBookingService``
books one slice at a time through the lifecycle manager.

Usage:
    plan = RecurrencePlan(frequency=Frequency.WEEKLY, selected_days={DayOfWeek.MONDAY})
    page = next_page(plan, date(2025, 1, 13), page_size=4)
    more = next_page(plan, date(2025, 1, 13), page_size=4, after=page.next_cursor)
"""

import heapq
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from itertools import count, islice, takewhile
from typing import Iterator, Optional

from booking_engine.config import SchedulingConfig, settings
from booking_engine.errors import BookingValidationError, SlotUnavailableError
from booking_engine.scheduling.lifecycle import BookingLifecycleManager
from booking_engine.schemas.booking_schema import Booking, BookingRequest
from booking_engine.schemas.recurrence_schema import (
    DayOfWeek,
    Frequency,
    OccurrencePage,
    RecurrencePlan,
)
from booking_engine.utils import add_months, clamp_day

logger = logging.getLogger(__name__)

WEEK_STEP = {Frequency.WEEKLY: 1, Frequency.BIWEEKLY: 2}
LAST_DAY = 31


def _boundary(plan: RecurrencePlan, anchor: date) -> Optional[date]:
    """First date that is *not* part of the plan, or None if unbounded."""
    if plan.end_date is not None:
        return plan.end_date + timedelta(days=1)
    if plan.ongoing:
        return None
    return add_months(anchor, plan.duration_months or 0)


def _weekday_stream(anchor: date, start: date, day: DayOfWeek, step_days: int) -> Iterator[date]:
    first = anchor + timedelta(days=(day - anchor.weekday()) % 7)
    if start > first:
        # Jump straight to the first step on or after start
        first += timedelta(days=-(-(start - first).days // step_days) * step_days)
    for n in count():
        yield first + timedelta(days=n * step_days)


def _weekly(plan: RecurrencePlan, anchor: date, start: date) -> Iterator[date]:
    weeks = WEEK_STEP.get(plan.frequency, plan.interval_weeks)
    streams = [_weekday_stream(anchor, start, day, 7 * weeks) for day in sorted(plan.selected_days)]
    # Distinct weekdays never produce the same date, so a plain merge is duplicate-free
    return heapq.merge(*streams)


def _monthly(plan: RecurrencePlan, start: date) -> Iterator[date]:
    day = LAST_DAY if plan.day_of_month == "last" else int(plan.day_of_month)
    month_start = start.replace(day=1)
    for n in count():
        current = add_months(month_start, n)
        occurrence = clamp_day(current.year, current.month, day)
        if occurrence >= start:
            yield occurrence


def expand(plan: RecurrencePlan, anchor: date, start: Optional[date] = None) -> Iterator[date]:
    """
    Lazily yield the plan's occurrence dates on or after ``anchor``.

    ``start`` skips ahead without walking the earlier occurrences: the
    stream begins at the first occurrence on or after it. The plan's
    cadence and duration are still measured from ``anchor``. A disabled
    plan yields nothing.
    """
    if not plan.enabled:
        return iter(())
    start = max(anchor, start) if start is not None else anchor
    if plan.frequency == Frequency.MONTHLY:
        dates = _monthly(plan, start)
    else:
        dates = _weekly(plan, anchor, start)
    boundary = _boundary(plan, anchor)
    if boundary is None:
        return dates
    return takewhile(lambda d: d < boundary, dates)


def next_page(
    plan: RecurrencePlan,
    anchor: date,
    page_size: int,
    after: Optional[date] = None,
) -> OccurrencePage:
    """
    Return up to ``page_size`` occurrences strictly after ``after``.

    ``next_cursor`` is the last date returned while more remain, and
    None once the plan is exhausted.
    """
    if page_size < 1:
        raise BookingValidationError("page_size must be at least 1", fields=["page_size"])

    start = after + timedelta(days=1) if after is not None else None
    dates = expand(plan, anchor, start)

    window = list(islice(dates, page_size + 1))
    page = window[:page_size]
    has_more = len(window) > page_size
    return OccurrencePage(dates=page, next_cursor=page[-1] if has_more else None)


@dataclass
class OccurrenceResult:
    """Outcome of booking one date of a series."""

    service_date: date
    booking: Optional[Booking] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.booking is not None


@dataclass
class SeriesResult:
    """Outcome of booking one page of a recurring series."""

    series_id: str
    results: list[OccurrenceResult] = field(default_factory=list)
    next_cursor: Optional[date] = None

    @property
    def booked(self) -> list[Booking]:
        return [r.booking for r in self.results if r.booking is not None]

    @property
    def failed(self) -> list[OccurrenceResult]:
        return [r for r in self.results if not r.succeeded]


class RecurringBookingService:
    """Books a recurring plan one page of dates at a time.

    A date that is taken or invalid is reported and skipped. Store and
    authorization failures are not about one date, so they abort the run.
    """

    def __init__(
        self, manager: BookingLifecycleManager, config: Optional[SchedulingConfig] = None
    ) -> None:
        self._manager = manager
        self._config = config or settings.scheduling

    def book_series(
        self,
        request: BookingRequest,
        plan: RecurrencePlan,
        page_size: Optional[int] = None,
        after: Optional[date] = None,
        series_id: Optional[str] = None,
    ) -> SeriesResult:
        """
        Create a booking for each date on the next page of ``plan``.

        ``request.service_date`` is the plan's anchor. Pass the returned
        ``next_cursor`` and ``series_id`` back to book the following page.
        """
        if not plan.enabled:
            raise BookingValidationError("Recurrence plan is disabled", fields=["enabled"])

        page = next_page(
            plan,
            request.service_date,
            page_size or self._config.recurrence_page_size,
            after,
        )
        result = SeriesResult(series_id=series_id or f"SR-{uuid.uuid4().hex[:12].upper()}")

        for service_date in page.dates:
            occurrence = request.model_copy(
                update={
                    "service_date": service_date,
                    # Surge differs per date, so one quoted total cannot cover the series
                    "quoted_total": None,
                    "idempotency_key": (
                        f"{request.idempotency_key}:{service_date.isoformat()}"
                        if request.idempotency_key
                        else None
                    ),
                }
            )
            try:
                booking = self._manager.create(
                    occurrence, recurrence_plan=plan, series_id=result.series_id
                )
            except (SlotUnavailableError, BookingValidationError) as exc:
                logger.info("Series %s skipped %s: %s", result.series_id, service_date, exc.message)
                result.results.append(
                    OccurrenceResult(
                        service_date=service_date, error_code=exc.code, error_message=exc.message
                    )
                )
                continue
            result.results.append(OccurrenceResult(service_date=service_date, booking=booking))

        result.next_cursor = page.next_cursor
        logger.info(
            "Series %s: %d booked, %d skipped, more=%s",
            result.series_id, len(result.booked), len(result.failed), page.next_cursor is not None,
        )
        return result
