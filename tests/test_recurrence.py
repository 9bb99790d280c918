"""Tests for the recurring schedule expander and series booking."""

from datetime import date, time, timedelta
from decimal import Decimal
from itertools import islice

import pytest

from booking_engine.errors import BookingValidationError, ForbiddenError
from booking_engine.scheduling.recurrence import RecurringBookingService, expand, next_page
from booking_engine.schemas.recurrence_schema import (
    DayOfWeek,
    Frequency,
    RecurrencePlan,
    parse_recurrence_plan,
)
from tests.conftest import OTHER_CUSTOMER, make_request

MONDAY = date(2025, 1, 13)


def _plan(**kwargs) -> RecurrencePlan:
    kwargs.setdefault("frequency", Frequency.WEEKLY)
    if kwargs["frequency"] != Frequency.MONTHLY:
        kwargs.setdefault("selected_days", {DayOfWeek.MONDAY})
    return RecurrencePlan(**kwargs)


class TestWeekly:
    def test_weekly_single_day(self):
        dates = list(islice(expand(_plan(), MONDAY), 3))
        assert dates == [date(2025, 1, 13), date(2025, 1, 20), date(2025, 1, 27)]

    def test_first_occurrence_on_or_after_anchor(self):
        plan = _plan(selected_days={DayOfWeek.FRIDAY})
        assert next(expand(plan, MONDAY)) == date(2025, 1, 17)

    def test_multiple_days_merged_in_order(self):
        plan = _plan(selected_days={DayOfWeek.THURSDAY, DayOfWeek.MONDAY})
        dates = list(islice(expand(plan, date(2025, 1, 14)), 4))
        assert dates == [date(2025, 1, 16), date(2025, 1, 20), date(2025, 1, 23), date(2025, 1, 27)]

    def test_biweekly_steps_two_weeks(self):
        dates = list(islice(expand(_plan(frequency=Frequency.BIWEEKLY), MONDAY), 3))
        assert dates == [date(2025, 1, 13), date(2025, 1, 27), date(2025, 2, 10)]

    def test_custom_interval(self):
        plan = _plan(frequency=Frequency.CUSTOM, interval_weeks=3, selected_days={DayOfWeek.WEDNESDAY})
        dates = list(islice(expand(plan, MONDAY), 2))
        assert dates == [date(2025, 1, 15), date(2025, 2, 5)]

    def test_duration_bound_is_exclusive(self):
        dates = list(expand(_plan(duration_months=1), MONDAY))
        assert dates[-1] == date(2025, 2, 10)
        assert date(2025, 2, 13) not in dates
        assert len(dates) == 5

    def test_end_date_is_inclusive(self):
        dates = list(expand(_plan(end_date=date(2025, 1, 27)), MONDAY))
        assert dates == [date(2025, 1, 13), date(2025, 1, 20), date(2025, 1, 27)]

    def test_ordered_and_unique(self):
        plan = _plan(selected_days=set(DayOfWeek), duration_months=3)
        dates = list(expand(plan, MONDAY))
        assert dates == sorted(set(dates))

    def test_ongoing_is_lazy(self):
        plan = _plan(ongoing=True, duration_months=None)
        dates = list(islice(expand(plan, MONDAY), 500))
        assert len(dates) == 500

    def test_disabled_plan_yields_nothing(self):
        assert list(expand(_plan(enabled=False), MONDAY)) == []


class TestMonthly:
    def test_clamps_to_short_month(self):
        plan = _plan(frequency=Frequency.MONTHLY, day_of_month=31, duration_months=3)
        assert list(expand(plan, date(2025, 1, 1))) == [
            date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31),
        ]

    def test_leap_year_february(self):
        plan = _plan(frequency=Frequency.MONTHLY, day_of_month=30, duration_months=2)
        assert list(expand(plan, date(2024, 1, 10))) == [date(2024, 1, 30), date(2024, 2, 29)]

    def test_last_day_of_month(self):
        plan = _plan(frequency=Frequency.MONTHLY, day_of_month="last", duration_months=3)
        assert list(expand(plan, date(2025, 2, 1))) == [
            date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30),
        ]

    def test_starts_next_month_when_day_passed(self):
        plan = _plan(frequency=Frequency.MONTHLY, day_of_month=5, duration_months=3)
        assert list(expand(plan, date(2025, 1, 13))) == [date(2025, 2, 5), date(2025, 3, 5), date(2025, 4, 5)]

    def test_anchor_day_itself_included(self):
        plan = _plan(frequency=Frequency.MONTHLY, day_of_month=13, duration_months=1)
        assert list(expand(plan, MONDAY)) == [MONDAY]


class TestPaging:
    def test_pages_resume_without_gaps(self):
        plan = _plan(selected_days={DayOfWeek.MONDAY, DayOfWeek.THURSDAY}, duration_months=3)
        everything = list(expand(plan, MONDAY))

        collected, cursor = [], None
        while True:
            page = next_page(plan, MONDAY, page_size=4, after=cursor)
            collected.extend(page.dates)
            if page.next_cursor is None:
                break
            assert page.next_cursor == page.dates[-1]
            cursor = page.next_cursor
        assert collected == everything

    def test_exact_fit_has_no_cursor(self):
        plan = _plan(end_date=date(2025, 1, 27))
        page = next_page(plan, MONDAY, page_size=3)
        assert len(page.dates) == 3
        assert page.next_cursor is None

    def test_ongoing_plan_always_has_cursor(self):
        plan = _plan(ongoing=True, duration_months=None)
        page = next_page(plan, MONDAY, page_size=2, after=date(2030, 1, 1))
        assert page.dates[0] > date(2030, 1, 1)
        assert page.next_cursor == page.dates[-1]

    @pytest.mark.parametrize(
        "plan,start",
        [
            (_plan(frequency=Frequency.BIWEEKLY, selected_days={DayOfWeek.MONDAY, DayOfWeek.FRIDAY},
                   duration_months=6), date(2025, 3, 4)),
            (_plan(frequency=Frequency.CUSTOM, interval_weeks=3, selected_days={DayOfWeek.SUNDAY},
                   duration_months=6), date(2025, 2, 9)),
            (_plan(frequency=Frequency.MONTHLY, day_of_month=31, duration_months=6), date(2025, 2, 28)),
            (_plan(frequency=Frequency.MONTHLY, day_of_month="last", duration_months=6), date(2025, 3, 1)),
        ],
    )
    def test_start_skips_to_same_dates_as_a_full_walk(self, plan, start):
        walked = [d for d in expand(plan, MONDAY) if d >= start]
        assert list(expand(plan, MONDAY, start=start)) == walked

    def test_start_before_anchor_is_ignored(self):
        plan = _plan(duration_months=1)
        assert list(expand(plan, MONDAY, start=date(2024, 12, 1))) == list(expand(plan, MONDAY))

    def test_resume_far_into_ongoing_plan_keeps_cadence(self):
        plan = _plan(frequency=Frequency.BIWEEKLY, ongoing=True, duration_months=None)
        page = next_page(plan, MONDAY, page_size=2, after=date(9000, 1, 1))
        first, second = page.dates
        assert first > date(9000, 1, 1)
        assert (first - MONDAY).days % 14 == 0
        assert second - first == timedelta(days=14)

    def test_page_size_must_be_positive(self):
        with pytest.raises(BookingValidationError, match="page_size"):
            next_page(_plan(), MONDAY, page_size=0)


class TestPlanValidation:
    def test_weekly_needs_days(self):
        with pytest.raises(BookingValidationError, match="selected day"):
            parse_recurrence_plan({"frequency": "weekly"})

    def test_monthly_needs_day_of_month(self):
        with pytest.raises(BookingValidationError, match="day_of_month"):
            parse_recurrence_plan({"frequency": "monthly"})

    def test_day_of_month_range(self):
        with pytest.raises(BookingValidationError):
            parse_recurrence_plan({"frequency": "monthly", "day_of_month": 32})

    def test_unknown_frequency(self):
        with pytest.raises(BookingValidationError) as exc_info:
            parse_recurrence_plan({"frequency": "daily", "selected_days": [0]})
        assert "frequency" in exc_info.value.fields

    def test_parses_weekday_numbers(self):
        plan = parse_recurrence_plan({"frequency": "custom", "selected_days": [0, 3], "interval_weeks": 2})
        assert plan.selected_days == {DayOfWeek.MONDAY, DayOfWeek.THURSDAY}


class TestBookSeries:
    def test_books_each_date_with_discount(self, manager):
        plan = _plan(selected_days={DayOfWeek.WEDNESDAY}, duration_months=1)
        series = RecurringBookingService(manager).book_series(make_request(), plan, page_size=3)
        assert [r.service_date for r in series.results] == [
            date(2025, 1, 15), date(2025, 1, 22), date(2025, 1, 29),
        ]
        assert len(series.booked) == 3
        assert all(b.series_id == series.series_id for b in series.booked)
        assert all(b.price_breakdown.recurring_discount_percent == 5 for b in series.booked)
        assert series.next_cursor == date(2025, 1, 29)

    def test_taken_date_does_not_abort_series(self, manager):
        blocker = manager.create(make_request(service_date=date(2025, 1, 22), service_time=time(12, 30)))
        plan = _plan(selected_days={DayOfWeek.WEDNESDAY}, duration_months=1)
        series = RecurringBookingService(manager).book_series(make_request(), plan, page_size=3)
        assert len(series.booked) == 2
        [failed] = series.failed
        assert failed.service_date == date(2025, 1, 22)
        assert failed.error_code == "slot_unavailable"
        assert blocker.booking_id not in {b.booking_id for b in series.booked}

    def test_resume_with_cursor(self, manager):
        plan = _plan(selected_days={DayOfWeek.WEDNESDAY}, duration_months=1)
        service = RecurringBookingService(manager)
        first = service.book_series(make_request(), plan, page_size=2)
        second = service.book_series(
            make_request(), plan, page_size=3, after=first.next_cursor, series_id=first.series_id
        )
        assert [r.service_date for r in second.results] == [
            date(2025, 1, 29), date(2025, 2, 5), date(2025, 2, 12),
        ]
        assert second.series_id == first.series_id
        assert second.next_cursor is None

    def test_retry_with_key_is_idempotent(self, manager, store):
        plan = _plan(selected_days={DayOfWeek.WEDNESDAY}, duration_months=1)
        service = RecurringBookingService(manager)
        first = service.book_series(make_request(idempotency_key="series-1"), plan, page_size=2)
        again = service.book_series(make_request(idempotency_key="series-1"), plan, page_size=2)
        assert [b.booking_id for b in again.booked] == [b.booking_id for b in first.booked]
        assert len(store.list_bookings()) == 2

    def test_forbidden_aborts(self, manager):
        plan = _plan(selected_days={DayOfWeek.WEDNESDAY}, duration_months=1)
        with pytest.raises(ForbiddenError):
            RecurringBookingService(manager).book_series(
                make_request(customer_id=OTHER_CUSTOMER), plan, page_size=2
            )

    def test_disabled_plan_rejected(self, manager):
        plan = _plan(enabled=False)
        with pytest.raises(BookingValidationError, match="disabled"):
            RecurringBookingService(manager).book_series(make_request(), plan)

    def test_quoted_total_not_applied_per_date(self, manager):
        plan = _plan(selected_days={DayOfWeek.WEDNESDAY}, duration_months=1)
        series = RecurringBookingService(manager).book_series(
            make_request(quoted_total=Decimal("1")), plan, page_size=1
        )
        assert len(series.booked) == 1
