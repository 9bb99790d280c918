"""Tests for the slot availability checker."""

from datetime import date, time
from decimal import Decimal

import pytest

from booking_engine.errors import BookingValidationError, StoreUnavailableError
from booking_engine.scheduling.availability import AvailabilityChecker
from booking_engine.schemas.booking_schema import BookingStatus
from booking_engine.tools.booking_store import InMemoryBookingStore, StoreError
from tests.conftest import SERVICE_DATE, WORKER, fixed_clock, make_booking


class _FailingStore(InMemoryBookingStore):
    def __init__(self, exc: Exception):
        super().__init__()
        self._exc = exc

    def find_active_bookings_for_worker(self, worker_id, service_date):
        raise self._exc


@pytest.fixture
def checker(store):
    # Existing booking 09:00-11:00
    store.insert_booking(make_booking())
    return AvailabilityChecker(store, fixed_clock)


class TestOverlap:
    def test_free_slot_is_available(self, checker):
        result = checker.check_availability(WORKER, SERVICE_DATE, time(14, 0), Decimal("1"))
        assert result.available
        assert result.conflicting_booking_id is None

    def test_overlapping_slot_reports_conflict(self, checker):
        result = checker.check_availability(WORKER, SERVICE_DATE, time(10, 0), Decimal("1"))
        assert not result.available
        assert result.conflicting_booking_id == "BK-TEST0001"

    def test_enclosing_slot_conflicts(self, checker):
        result = checker.check_availability(WORKER, SERVICE_DATE, time(8, 0), Decimal("4"))
        assert not result.available

    def test_back_to_back_after_is_available(self, checker):
        assert checker.check_availability(WORKER, SERVICE_DATE, time(11, 0), Decimal("1")).available

    def test_back_to_back_before_is_available(self, checker):
        assert checker.check_availability(WORKER, SERVICE_DATE, time(8, 0), Decimal("1")).available

    def test_fractional_hours_overlap(self, checker):
        # 07:30 + 1.5h ends at 09:00 exactly
        assert checker.check_availability(WORKER, SERVICE_DATE, time(7, 30), Decimal("1.5")).available
        assert not checker.check_availability(
            WORKER, SERVICE_DATE, time(7, 31), Decimal("1.5")
        ).available

    def test_other_worker_unaffected(self, checker):
        assert checker.check_availability("W-1003", SERVICE_DATE, time(9, 0), Decimal("1")).available

    def test_other_day_unaffected(self, checker):
        assert checker.check_availability(WORKER, date(2025, 1, 16), time(9, 0), Decimal("1")).available

    def test_excluded_booking_is_ignored(self, checker):
        result = checker.check_availability(
            WORKER, SERVICE_DATE, time(9, 30), Decimal("1"), exclude_booking_id="BK-TEST0001"
        )
        assert result.available


class TestInactiveBookings:
    @pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED])
    def test_terminal_bookings_do_not_block(self, store, status):
        store.insert_booking(make_booking(status=status))
        checker = AvailabilityChecker(store, fixed_clock)
        assert checker.check_availability(WORKER, SERVICE_DATE, time(9, 0), Decimal("1")).available

    @pytest.mark.parametrize("status", [BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS])
    def test_active_bookings_block(self, store, status):
        store.insert_booking(make_booking(status=status))
        checker = AvailabilityChecker(store, fixed_clock)
        assert not checker.check_availability(WORKER, SERVICE_DATE, time(9, 0), Decimal("1")).available


class TestWindowValidation:
    def test_past_date_rejected(self, checker):
        with pytest.raises(BookingValidationError, match="past") as exc_info:
            checker.check_availability(WORKER, date(2025, 1, 12), time(9, 0), Decimal("1"))
        assert exc_info.value.fields == ["service_date"]

    def test_today_is_allowed(self, checker):
        assert checker.check_availability(WORKER, date(2025, 1, 13), time(15, 0), Decimal("1")).available

    def test_non_positive_duration_rejected(self, checker):
        with pytest.raises(BookingValidationError, match="positive"):
            checker.check_availability(WORKER, SERVICE_DATE, time(14, 0), Decimal("0"))

    def test_duration_above_maximum_rejected(self, checker):
        with pytest.raises(BookingValidationError, match="exceed"):
            checker.check_availability(WORKER, SERVICE_DATE, time(0, 0), Decimal("13"))

    def test_window_crossing_midnight_rejected(self, checker):
        with pytest.raises(BookingValidationError, match="midnight"):
            checker.check_availability(WORKER, SERVICE_DATE, time(23, 0), Decimal("2"))

    def test_window_ending_at_midnight_allowed(self, checker):
        assert checker.check_availability(WORKER, SERVICE_DATE, time(22, 0), Decimal("2")).available


class TestStoreFailures:
    @pytest.mark.parametrize("exc", [StoreError("connection reset"), TimeoutError("read timed out")])
    def test_failure_is_never_reported_as_available(self, exc):
        checker = AvailabilityChecker(_FailingStore(exc), fixed_clock)
        with pytest.raises(StoreUnavailableError) as exc_info:
            checker.check_availability(WORKER, SERVICE_DATE, time(9, 0), Decimal("1"))
        assert exc_info.value.retryable
        assert exc_info.value.__cause__ is exc
        assert "connection reset" not in exc_info.value.message
