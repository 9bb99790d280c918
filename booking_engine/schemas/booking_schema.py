"""Booking, pricing, and request data models."""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from booking_engine.errors import BookingValidationError
from booking_engine.schemas.recurrence_schema import RecurrencePlan


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
)


class PaymentStatus(str, Enum):
    """Owned by the payment collaborator; only read by the engine."""

    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class CancelledBy(str, Enum):
    CUSTOMER = "customer"
    WORKER = "worker"
    ADMIN = "admin"


class Address(BaseModel):
    """Structured service address. ``location_key`` drives the location premium."""

    line1: str = ""
    city: str = ""
    postal_code: Optional[str] = None
    location_key: Optional[str] = None


class PriceBreakdown(BaseModel):
    """Itemized, immutable price for one booking revision.

    Every line item is a whole currency unit so the total can be audited
    by re-adding the visible components.
    """

    model_config = ConfigDict(frozen=True)

    hourly_rate: Decimal
    duration_hours: Decimal
    base_amount: Decimal
    surge_multiplier: Decimal = Decimal("1.00")
    surge_amount: Decimal = Decimal("0")
    location_adjustment: Decimal = Decimal("0")
    experience_premium: Decimal = Decimal("0")
    emergency_fee: Decimal = Decimal("0")
    recurring_discount_percent: int = 0
    recurring_discount: Decimal = Decimal("0")
    subtotal: Decimal
    platform_fee: Decimal
    tax: Decimal
    total: Decimal


class Booking(BaseModel):
    """A customer's reservation of a worker's time slot."""

    booking_id: str
    customer_id: str
    worker_id: str
    service_id: str
    service_name: str = ""
    service_date: date
    service_time: time
    duration_hours: Decimal = Field(gt=0)
    price_breakdown: PriceBreakdown
    total_amount: Decimal
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: BookingStatus = BookingStatus.PENDING
    notes: str = ""
    address: Optional[Address] = None
    is_emergency: bool = False
    cancelled_by: Optional[CancelledBy] = None
    idempotency_key: Optional[str] = None
    series_id: Optional[str] = None
    recurrence_plan: Optional[RecurrencePlan] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def scheduled_at(self) -> datetime:
        return datetime.combine(self.service_date, self.service_time)


class BookingRequest(BaseModel):
    """Validated booking creation request.

    ``quoted_total`` is what the client displayed; it is only compared
    against the server-side price, never trusted.
    """

    customer_id: str = Field(min_length=1)
    worker_id: str = Field(min_length=1)
    service_id: str = Field(min_length=1)
    service_date: date
    service_time: time
    duration_hours: Optional[Decimal] = Field(default=None, gt=0)
    notes: str = ""
    address: Optional[Address] = None
    is_emergency: bool = False
    idempotency_key: Optional[str] = None
    quoted_total: Optional[Decimal] = None


class BookingPage(BaseModel):
    """One page of a booking listing."""

    bookings: list[Booking] = Field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None


def parse_booking_request(payload: dict[str, Any]) -> BookingRequest:
    """Validate an untrusted payload into a BookingRequest.

    Raises BookingValidationError naming every offending field.
    """
    try:
        return BookingRequest.model_validate(payload)
    except PydanticValidationError as exc:
        fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
        raise BookingValidationError(
            f"Invalid booking request: {', '.join(fields)}", fields=fields
        ) from None
