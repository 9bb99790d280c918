"""Domain events emitted to the Event Sink."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from booking_engine.schemas.booking_schema import BookingStatus, CancelledBy


class EventKind(str, Enum):
    BOOKING_CREATED = "BookingCreated"
    STATUS_CHANGED = "StatusChanged"
    REMINDER_DUE = "ReminderDue"


class Notification(BaseModel):
    """Who should be told what. Delivery is the sink's job."""

    recipient_id: str
    type: str
    title: str
    message: str


class BookingEvent(BaseModel):
    """Emitted after a committed change; never stored by the engine."""

    event_id: str = Field(default_factory=lambda: f"EV-{uuid.uuid4().hex[:12].upper()}")
    booking_id: str
    kind: EventKind
    previous_status: Optional[BookingStatus] = None
    new_status: BookingStatus
    occurred_at: datetime
    actor_id: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    notifications: list[Notification] = Field(default_factory=list)
