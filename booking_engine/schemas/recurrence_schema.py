"""Recurring booking plan models."""

from datetime import date
from enum import Enum, IntEnum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from booking_engine.errors import BookingValidationError


class Frequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class DayOfWeek(IntEnum):
    """Weekday numbering follows ``date.weekday()`` (Monday is 0)."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


DAY_BASED_FREQUENCIES = frozenset({Frequency.WEEKLY, Frequency.BIWEEKLY, Frequency.CUSTOM})


class RecurrencePlan(BaseModel):
    """A rule for generating a series of future bookings.

    The plan is never stored as a booking; each generated date becomes
    its own independent Booking.
    """

    frequency: Frequency
    selected_days: set[DayOfWeek] = Field(default_factory=set)
    day_of_month: Optional[Union[int, Literal["last"]]] = None
    duration_months: Optional[int] = 3
    ongoing: bool = False
    end_date: Optional[date] = None
    interval_weeks: int = Field(default=1, ge=1)
    enabled: bool = True

    @model_validator(mode="after")
    def _check_shape(self) -> "RecurrencePlan":
        if self.frequency in DAY_BASED_FREQUENCIES and not self.selected_days:
            raise ValueError(f"{self.frequency.value} plans need at least one selected day")
        if self.frequency == Frequency.MONTHLY:
            if self.day_of_month is None:
                raise ValueError("monthly plans need day_of_month")
            if isinstance(self.day_of_month, int) and not 1 <= self.day_of_month <= 31:
                raise ValueError(f"day_of_month must be 1-31 or 'last', got {self.day_of_month}")
        if self.duration_months is not None and self.duration_months < 1:
            raise ValueError(f"duration_months must be >= 1, got {self.duration_months}")
        if not self.ongoing and self.end_date is None and self.duration_months is None:
            raise ValueError("plan needs duration_months, end_date, or ongoing")
        return self

    @property
    def is_unbounded(self) -> bool:
        return self.ongoing and self.end_date is None


class OccurrencePage(BaseModel):
    """A bounded slice of a plan's occurrence dates.

    Pass ``next_cursor`` back as ``after`` to resume; ``None`` means the
    plan is exhausted.
    """

    dates: list[date] = Field(default_factory=list)
    next_cursor: Optional[date] = None


def parse_recurrence_plan(payload: dict[str, Any]) -> RecurrencePlan:
    """Validate an untrusted payload into a RecurrencePlan."""
    try:
        return RecurrencePlan.model_validate(payload)
    except PydanticValidationError as exc:
        fields = [".".join(str(part) for part in err["loc"]) or "plan" for err in exc.errors()]
        messages = "; ".join(err["msg"] for err in exc.errors())
        raise BookingValidationError(
            f"Invalid recurrence plan: {messages}", fields=fields
        ) from None
