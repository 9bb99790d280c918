"""Shared date, time, and money helpers used across the booking engine."""

import calendar
from datetime import date, time
from decimal import ROUND_HALF_UP, Decimal

MINUTES_PER_DAY = 24 * 60


def round_money(amount: Decimal) -> Decimal:
    """Round to the nearest whole currency unit, halves away from zero.

    Examples:
        >>> round_money(Decimal("8.1"))
        Decimal('8')
        >>> round_money(Decimal("22.5"))
        Decimal('23')
    """
    return amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def minutes_since_midnight(value: time) -> int:
    """Convert a time of day to whole minutes after midnight."""
    return value.hour * 60 + value.minute


def window_minutes(start: time, duration_hours: Decimal) -> tuple[Decimal, Decimal]:
    """Return the half-open ``[start, end)`` window in minutes after midnight."""
    start_minutes = Decimal(minutes_since_midnight(start))
    return start_minutes, start_minutes + duration_hours * 60


def windows_overlap(
    first: tuple[Decimal, Decimal], second: tuple[Decimal, Decimal]
) -> bool:
    """Half-open overlap test: back-to-back windows do not overlap."""
    return first[0] < second[1] and second[0] < first[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping ``day`` to the last valid day of the month.

    Examples:
        >>> clamp_day(2025, 2, 31)
        datetime.date(2025, 2, 28)
        >>> clamp_day(2024, 4, 31)
        datetime.date(2024, 4, 30)
    """
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def add_months(value: date, months: int) -> date:
    """Shift a date by whole calendar months, clamping the day of month."""
    index = value.month - 1 + months
    return clamp_day(value.year + index // 12, index % 12 + 1, value.day)
