"""
Free-slot generation for one location and date.

Slots are laid out on a fixed step from the opening time, trimmed to those
that finish by closing time, and then every slot touching an active booking
is dropped.
"""

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Union

from valet_booking.config import settings
from valet_booking.errors import ValidationError
from valet_booking.ledger.booking_ledger import BookingLedger
from valet_booking.locations import LocationDirectory
from valet_booking.scheduling.schedule_registry import ScheduleRegistry
from valet_booking.schemas.booking_schema import Booking, TimeSlot, intervals_overlap
from valet_booking.utils import at_time, day_of_week, get_zone

logger = logging.getLogger(__name__)

MAX_DURATION_MINUTES = 24 * 60


def parse_date(value: Union[date, str]) -> date:
    """Accept a ``date`` or a ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Date must be in YYYY-MM-DD format, got {value!r}") from None


class AvailabilityGenerator:
    """Derives bookable slots from operating windows minus active bookings."""

    def __init__(
        self,
        schedules: ScheduleRegistry,
        ledger: BookingLedger,
        locations: LocationDirectory,
        step_minutes: Optional[int] = None,
        zone: Optional[tzinfo] = None,
    ) -> None:
        self.schedules = schedules
        self.ledger = ledger
        self.locations = locations
        self.step = timedelta(minutes=step_minutes or settings.booking.slot_step_minutes)
        self.zone = zone or get_zone(settings.booking.timezone)

    def get_availability(
        self, location_id: str, day: Union[date, str], duration_minutes: int
    ) -> list[TimeSlot]:
        """
        Return free slots of ``duration_minutes`` on ``day``, in chronological order.

        A closed day or an inactive location yields an empty list.

        Raises:
            ValidationError: Duration not in 1..1440 minutes, bad date, or a
                window that does not close after it opens.
            NotFoundError: Unknown location.
        """
        if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
            raise ValidationError("Duration must be a whole number of minutes")
        if duration_minutes <= 0:
            raise ValidationError("Duration must be greater than 0 minutes")
        if duration_minutes > MAX_DURATION_MINUTES:
            raise ValidationError(f"Duration cannot exceed {MAX_DURATION_MINUTES} minutes")
        day = parse_date(day)

        location = self.locations.require(location_id)
        if not location.is_active:
            logger.debug("Location %s inactive, no availability", location_id)
            return []

        schedule = self.schedules.find_for_location_and_day(location_id, day_of_week(day))
        if schedule is None:
            logger.debug("Location %s closed on %s", location_id, day.isoformat())
            return []

        window_start = at_time(day, schedule.start_time, self.zone).astimezone(timezone.utc)
        window_end = at_time(day, schedule.end_time, self.zone).astimezone(timezone.utc)
        if window_end <= window_start:
            raise ValidationError("Operating windows spanning midnight are not supported")

        duration = timedelta(minutes=duration_minutes)
        if duration > window_end - window_start:
            return []
        booked = self.ledger.active_bookings_between(location_id, window_start, window_end)

        slots = [
            TimeSlot(start=start.astimezone(self.zone), end=(start + duration).astimezone(self.zone))
            for start in self._candidate_starts(window_start, window_end, duration)
            if not self._collides(start, start + duration, booked)
        ]
        logger.info(
            "Availability for %s on %s (%d min): %d slots, %d active bookings",
            location_id, day.isoformat(), duration_minutes, len(slots), len(booked),
        )
        return slots

    def _candidate_starts(
        self, window_start: datetime, window_end: datetime, duration: timedelta
    ) -> list[datetime]:
        starts = []
        cursor = window_start
        while cursor + duration <= window_end:
            starts.append(cursor)
            cursor += self.step
        return starts

    @staticmethod
    def _collides(start: datetime, end: datetime, booked: list[Booking]) -> bool:
        return any(intervals_overlap(start, end, b.start_time, b.end_time) for b in booked)
