"""Booking and availability data models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BookingStatus(str, Enum):
    """All possible states in a booking lifecycle."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class UserRole(str, Enum):
    """Roles supplied by the authentication collaborator."""
    CUSTOMER = "CUSTOMER"
    VALET = "VALET"
    ADMIN = "ADMIN"


# Only these statuses hold the bay.
ACTIVE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
)
TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
)


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open overlap test: ``[a_start, a_end)`` against ``[b_start, b_end)``."""
    return a_start < b_end and b_start < a_end


class Booking(BaseModel):
    """A reservation of one location's bay for ``[start_time, end_time)``."""

    model_config = ConfigDict(frozen=True)

    id: str
    requester_id: str = Field(min_length=1)
    location_id: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.PENDING
    price: Decimal = Field(ge=0)
    notes: str = ""
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _end_after_start(self) -> "Booking":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def duration_hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 3600

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return intervals_overlap(self.start_time, self.end_time, start, end)


class TimeSlot(BaseModel):
    """Single free interval returned by availability queries."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class BookingPage(BaseModel):
    """One page of a requester's bookings."""

    items: list[Booking] = Field(default_factory=list)
    page: int
    limit: int
    total: int
    total_pages: int
