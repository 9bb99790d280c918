"""Shared test fixtures and helpers."""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional

import pytest

from booking_engine.scheduling.lifecycle import BookingLifecycleManager
from booking_engine.scheduling.pricing import compute_price
from booking_engine.schemas.booking_schema import (
    Address,
    Booking,
    BookingRequest,
    BookingStatus,
)
from booking_engine.tools.booking_store import InMemoryBookingStore
from booking_engine.tools.event_sink import InMemoryEventSink
from booking_engine.tools.identity import StaticIdentityProvider

# Monday 2025-01-13, 08:00 UTC
NOW = datetime(2025, 1, 13, 8, 0, tzinfo=timezone.utc)
# Wednesday, two days after NOW
SERVICE_DATE = date(2025, 1, 15)

CUSTOMER = "C-2001"
OTHER_CUSTOMER = "C-2002"
WORKER = "W-1001"
ADMIN = "ADMIN-1"


def fixed_clock() -> datetime:
    return NOW


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def sink():
    return InMemoryEventSink()


@pytest.fixture
def identity():
    return StaticIdentityProvider(requester_id=CUSTOMER, admin_ids={ADMIN})


@pytest.fixture
def manager(store, sink, identity):
    return BookingLifecycleManager(store, sink, identity, clock=fixed_clock)


def make_request(
    customer_id: str = CUSTOMER,
    worker_id: str = WORKER,
    service_id: str = "plumbing",
    service_date: date = SERVICE_DATE,
    service_time: time = time(12, 0),
    duration_hours: Optional[str] = None,
    location_key: Optional[str] = None,
    **kwargs,
) -> BookingRequest:
    """Helper to create a BookingRequest; 12:00 on a Wednesday carries no surge."""
    return BookingRequest(
        customer_id=customer_id,
        worker_id=worker_id,
        service_id=service_id,
        service_date=service_date,
        service_time=service_time,
        duration_hours=Decimal(duration_hours) if duration_hours is not None else None,
        address=Address(line1="12 Park Lane", city="Gurgaon", location_key=location_key)
        if location_key
        else None,
        **kwargs,
    )


def make_booking(
    booking_id: str = "BK-TEST0001",
    worker_id: str = WORKER,
    customer_id: str = CUSTOMER,
    service_date: date = SERVICE_DATE,
    service_time: time = time(9, 0),
    duration_hours: str = "2",
    status: BookingStatus = BookingStatus.PENDING,
    created_at: datetime = NOW,
    **kwargs,
) -> Booking:
    """Helper to create a stored Booking directly, bypassing the manager."""
    price = compute_price(
        Decimal("500"),
        Decimal(duration_hours),
        datetime.combine(service_date, service_time),
        experience_tier="expert",
    )
    return Booking(
        booking_id=booking_id,
        customer_id=customer_id,
        worker_id=worker_id,
        service_id="plumbing",
        service_name="Plumbing Service",
        service_date=service_date,
        service_time=service_time,
        duration_hours=Decimal(duration_hours),
        price_breakdown=price,
        total_amount=price.total,
        status=status,
        created_at=created_at,
        updated_at=created_at,
        **kwargs,
    )
