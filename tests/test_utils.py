"""Tests for shared utility functions."""

from datetime import date, time
from decimal import Decimal

from booking_engine.utils import (
    add_months,
    clamp_day,
    minutes_since_midnight,
    round_money,
    window_minutes,
    windows_overlap,
)


class TestRoundMoney:
    def test_rounds_down_below_half(self):
        assert round_money(Decimal("8.1")) == Decimal("8")

    def test_half_rounds_up(self):
        assert round_money(Decimal("32.5")) == Decimal("33")

    def test_whole_unchanged(self):
        assert round_money(Decimal("953")) == Decimal("953")


class TestWindows:
    def test_minutes_since_midnight(self):
        assert minutes_since_midnight(time(9, 30)) == 570

    def test_fractional_duration(self):
        assert window_minutes(time(9, 0), Decimal("1.5")) == (Decimal("540"), Decimal("630"))

    def test_overlap(self):
        assert windows_overlap((Decimal(540), Decimal(660)), (Decimal(600), Decimal(720)))

    def test_back_to_back_does_not_overlap(self):
        assert not windows_overlap((Decimal(540), Decimal(660)), (Decimal(660), Decimal(720)))

    def test_containment_overlaps(self):
        assert windows_overlap((Decimal(480), Decimal(720)), (Decimal(540), Decimal(600)))


class TestCalendar:
    def test_clamp_day_february(self):
        assert clamp_day(2025, 2, 31) == date(2025, 2, 28)

    def test_clamp_day_leap_year(self):
        assert clamp_day(2024, 2, 30) == date(2024, 2, 29)

    def test_clamp_day_valid_day_unchanged(self):
        assert clamp_day(2025, 3, 15) == date(2025, 3, 15)

    def test_add_months_across_year(self):
        assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)

    def test_add_months_zero(self):
        assert add_months(date(2025, 1, 13), 0) == date(2025, 1, 13)
