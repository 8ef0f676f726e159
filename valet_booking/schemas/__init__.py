from valet_booking.schemas.booking_schema import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Booking,
    BookingPage,
    BookingStatus,
    TimeSlot,
    UserRole,
    intervals_overlap,
)
from valet_booking.schemas.location_schema import Coordinates, Location
from valet_booking.schemas.schedule_schema import Schedule, ScheduleUpdate

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Booking",
    "BookingPage",
    "BookingStatus",
    "TimeSlot",
    "UserRole",
    "intervals_overlap",
    "Coordinates",
    "Location",
    "Schedule",
    "ScheduleUpdate",
]
