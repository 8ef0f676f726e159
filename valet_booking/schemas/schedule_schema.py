"""Weekly operating window model."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from valet_booking.utils import DAY_NAMES, minutes_of_day, normalize_hhmm, parse_hhmm


class Schedule(BaseModel):
    """Operating window for one location on one day of the week (0=Sunday)."""

    model_config = ConfigDict(frozen=True)

    location_id: str = Field(min_length=1)
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    is_active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_hhmm(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "Schedule":
        # Fields are zero-padded by now, so string order is clock order.
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]

    def is_open_at(self, time_of_day: str) -> bool:
        """Whether ``time_of_day`` falls inside ``[start_time, end_time)``.

        Unparseable input is treated as closed rather than raising.
        """
        if not self.is_active:
            return False
        try:
            hour, minute = parse_hhmm(time_of_day)
        except (ValueError, TypeError, AttributeError):
            return False
        check = hour * 60 + minute
        return minutes_of_day(self.start_time) <= check < minutes_of_day(self.end_time)

    def operating_hours(self) -> float:
        return (minutes_of_day(self.end_time) - minutes_of_day(self.start_time)) / 60


class ScheduleUpdate(BaseModel):
    """Partial schedule entry for bulk updates of a location's week."""

    day_of_week: int = Field(ge=0, le=6)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_active: Optional[bool] = None
