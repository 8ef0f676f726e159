"""
Weekly operating windows per location.

Windows are keyed by ``(location_id, day_of_week)``: writing a window for a
day that already has one replaces it, so a location never has two
competing windows on the same day.

Usage:
    registry = ScheduleRegistry()
    registry.upsert("loc-1", 1, "09:00", "18:00")
    registry.is_location_open("loc-1", 1, "17:59")  # True
"""

import logging
import threading
from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from valet_booking.errors import NotFoundError, ValidationError, from_pydantic
from valet_booking.locations import LocationDirectory
from valet_booking.schemas.schedule_schema import Schedule, ScheduleUpdate
from valet_booking.utils import DAY_NAMES

logger = logging.getLogger(__name__)

DEFAULT_OPEN = "09:00"
DEFAULT_CLOSE = "17:00"

ScheduleKey = tuple[str, int]


class ScheduleRegistry:
    """Stores and validates weekly operating windows."""

    def __init__(self, locations: Optional[LocationDirectory] = None) -> None:
        self._locations = locations
        self._lock = threading.Lock()
        self._schedules: dict[ScheduleKey, Schedule] = {}

    def upsert(
        self,
        location_id: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
        is_active: bool = True,
    ) -> Schedule:
        """Create or replace the window for a location and day.

        Raises:
            ValidationError: Malformed times, end not after start, or day outside 0-6.
            NotFoundError: The location is unknown to the directory.
        """
        schedule = self._build(location_id, day_of_week, start_time, end_time, is_active)

        if self._locations is not None:
            self._locations.require(location_id)

        with self._lock:
            replaced = (location_id, day_of_week) in self._schedules
            self._schedules[(location_id, day_of_week)] = schedule

        logger.info(
            "Schedule %s for %s on %s: %s-%s (active=%s)",
            "replaced" if replaced else "created",
            location_id, schedule.day_name, schedule.start_time, schedule.end_time, is_active,
        )
        return schedule

    @staticmethod
    def _build(
        location_id: str, day_of_week: int, start_time: str, end_time: str, is_active: bool
    ) -> Schedule:
        if isinstance(day_of_week, bool) or not isinstance(day_of_week, int):
            raise ValidationError("Day of week must be an integer between 0 (Sunday) and 6 (Saturday)")
        try:
            return Schedule(
                location_id=location_id,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                is_active=is_active,
            )
        except PydanticValidationError as exc:
            raise from_pydantic(exc) from None

    @staticmethod
    def is_open_at(schedule: Schedule, time_of_day: str) -> bool:
        return schedule.is_open_at(time_of_day)

    def find_for_location_and_day(
        self, location_id: str, day_of_week: int, active_only: bool = True
    ) -> Optional[Schedule]:
        """Return the window for that day, or None. Inactive windows only when ``active_only`` is False."""
        schedule = self._schedules.get((location_id, day_of_week))
        if schedule is None or (active_only and not schedule.is_active):
            return None
        return schedule

    def get(self, location_id: str, day_of_week: int) -> Schedule:
        schedule = self.find_for_location_and_day(location_id, day_of_week, active_only=False)
        if schedule is None:
            raise NotFoundError("Schedule not found")
        return schedule

    def get_location_schedules(self, location_id: str, active_only: bool = True) -> list[Schedule]:
        with self._lock:
            snapshot = list(self._schedules.items())
        schedules = [
            s for (loc, _), s in snapshot
            if loc == location_id and (s.is_active or not active_only)
        ]
        return sorted(schedules, key=lambda s: (s.day_of_week, s.start_time))

    def get_weekly_schedule(self, location_id: str) -> list[Schedule]:
        return self.get_location_schedules(location_id, active_only=True)

    def deactivate(self, location_id: str, day_of_week: int) -> Schedule:
        with self._lock:
            current = self._schedules.get((location_id, day_of_week))
            if current is None:
                raise NotFoundError("Schedule not found")
            updated = current.model_copy(update={"is_active": False})
            self._schedules[(location_id, day_of_week)] = updated
        logger.info("Schedule deactivated for %s on %s", location_id, updated.day_name)
        return updated

    def delete(self, location_id: str, day_of_week: int) -> None:
        with self._lock:
            if self._schedules.pop((location_id, day_of_week), None) is None:
                raise NotFoundError("Schedule not found")
        logger.info("Schedule deleted for %s on day %d", location_id, day_of_week)

    def is_location_open(self, location_id: str, day_of_week: int, time_of_day: str) -> bool:
        schedule = self.find_for_location_and_day(location_id, day_of_week)
        if schedule is None:
            return False
        return schedule.is_open_at(time_of_day)

    def get_operating_hours(self, location_id: str, day_of_week: int) -> Optional[float]:
        schedule = self.find_for_location_and_day(location_id, day_of_week)
        if schedule is None:
            return None
        return schedule.operating_hours()

    def update_location_schedules(
        self, location_id: str, entries: Iterable[ScheduleUpdate]
    ) -> list[Schedule]:
        """Apply partial updates to several days of one location's week.

        Days without a window get the 09:00-17:00 default for any field left unset.
        Every entry is validated before any is written, so a bad entry leaves
        the week untouched.
        """
        entries = list(entries)
        if self._locations is not None:
            self._locations.require(location_id)

        with self._lock:
            pending: dict[ScheduleKey, Schedule] = {}
            for entry in entries:
                key = (location_id, entry.day_of_week)
                existing = pending.get(key) or self._schedules.get(key)
                if existing is not None:
                    start = entry.start_time or existing.start_time
                    end = entry.end_time or existing.end_time
                    active = existing.is_active if entry.is_active is None else entry.is_active
                else:
                    start = entry.start_time or DEFAULT_OPEN
                    end = entry.end_time or DEFAULT_CLOSE
                    active = True if entry.is_active is None else entry.is_active
                pending[key] = self._build(location_id, entry.day_of_week, start, end, active)
            self._schedules.update(pending)

        logger.info(
            "Bulk schedule update for %s: %s", location_id,
            ", ".join(s.day_name for s in pending.values()) or "no changes",
        )
        return list(pending.values())

    @staticmethod
    def day_name(day_of_week: int) -> str:
        if 0 <= day_of_week < len(DAY_NAMES):
            return DAY_NAMES[day_of_week]
        return "Invalid Day"

    def reset(self) -> None:
        """Clear all schedules. Used by test fixtures for isolation."""
        with self._lock:
            self._schedules.clear()
