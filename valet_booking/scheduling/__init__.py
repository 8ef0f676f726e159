from valet_booking.scheduling.availability import AvailabilityGenerator
from valet_booking.scheduling.schedule_registry import ScheduleRegistry

__all__ = ["AvailabilityGenerator", "ScheduleRegistry"]
