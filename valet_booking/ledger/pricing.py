"""Deterministic booking price: whole started hours times the hourly rate."""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from valet_booking.config import settings


@dataclass(frozen=True)
class PricingCalculator:
    """Maps a booking duration to a price.

    Partial hours are billed as full hours (``ceil``), so 61 minutes costs
    two hours. This rounding is a business policy kept for compatibility
    with existing bookings.
    """

    hourly_rate: Decimal = settings.booking.hourly_rate

    @staticmethod
    def billable_hours(start: datetime, end: datetime) -> int:
        seconds = (end - start).total_seconds()
        if seconds <= 0:
            raise ValueError("End time must be after start time")
        return math.ceil(seconds / 3600)

    def quote(self, start: datetime, end: datetime) -> Decimal:
        return Decimal(self.billable_hours(start, end)) * self.hourly_rate
