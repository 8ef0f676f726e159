"""
Booking service facade: the operations exposed to transport adapters.

Callers pass identities already verified by the authentication layer
(``requester_id``, ``requester_role``). Every failure surfaces as a
``BookingError`` subclass; nothing here retries or partially applies.
"""

import logging
from datetime import date, datetime
from typing import Callable, Optional, Union

from valet_booking.config import AppConfig, BookingConfig, settings
from valet_booking.errors import ForbiddenError
from valet_booking.ledger.booking_ledger import BookingLedger
from valet_booking.ledger.pricing import PricingCalculator
from valet_booking.ledger.sqlite_store import SqliteBookingStore
from valet_booking.ledger.store import BookingStore, InMemoryBookingStore
from valet_booking.lifecycle.state_machine import BookingLifecycle, parse_role, parse_status
from valet_booking.locations import InMemoryLocationDirectory, LocationDirectory
from valet_booking.scheduling.availability import AvailabilityGenerator
from valet_booking.scheduling.schedule_registry import ScheduleRegistry
from valet_booking.schemas.booking_schema import Booking, BookingPage, TimeSlot, UserRole
from valet_booking.utils import get_zone, utcnow

logger = logging.getLogger(__name__)

# Roles that may read any booking, not just their own.
STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.VALET})


class BookingService:
    """Wires ledger, lifecycle, schedules and availability together."""

    def __init__(
        self,
        store: BookingStore,
        locations: LocationDirectory,
        schedules: Optional[ScheduleRegistry] = None,
        pricing: Optional[PricingCalculator] = None,
        clock: Callable[[], datetime] = utcnow,
        config: Optional[BookingConfig] = None,
    ) -> None:
        config = config or settings.booking
        zone = get_zone(config.timezone)
        self.locations = locations
        self.schedules = schedules or ScheduleRegistry(locations)
        self.ledger = BookingLedger(
            store, locations, pricing=pricing, clock=clock, zone=zone, config=config
        )
        self.lifecycle = BookingLifecycle(store, clock=clock)
        self.availability = AvailabilityGenerator(
            self.schedules, self.ledger, locations,
            step_minutes=config.slot_step_minutes, zone=zone,
        )

    def create_booking(
        self,
        location_id: str,
        start_time: datetime,
        end_time: datetime,
        requester_id: str,
        notes: Optional[str] = None,
    ) -> Booking:
        return self.ledger.reserve(location_id, start_time, end_time, requester_id, notes)

    def get_availability(
        self, location_id: str, day: Union[date, str], duration_minutes: int
    ) -> list[TimeSlot]:
        return self.availability.get_availability(location_id, day, duration_minutes)

    def update_status(
        self, booking_id: str, new_status: object, requester_id: str, requester_role: object
    ) -> Booking:
        return self.lifecycle.update_status(booking_id, new_status, requester_id, requester_role)

    def cancel_booking(self, booking_id: str, requester_id: str, requester_role: object) -> Booking:
        return self.lifecycle.cancel(booking_id, requester_id, requester_role)

    def get_booking(self, booking_id: str, requester_id: str, requester_role: object) -> Booking:
        role = parse_role(requester_role)
        booking = self.ledger.get(booking_id)
        if role not in STAFF_ROLES and booking.requester_id != requester_id:
            raise ForbiddenError("Forbidden: access denied")
        return booking

    def update_notes(
        self, booking_id: str, notes: Optional[str], requester_id: str, requester_role: object
    ) -> Booking:
        role = parse_role(requester_role)
        booking = self.ledger.get(booking_id)
        if role != UserRole.ADMIN and booking.requester_id != requester_id:
            raise ForbiddenError("Forbidden: access denied")
        return self.ledger.update_notes(booking_id, notes)

    def reschedule_booking(
        self,
        booking_id: str,
        start_time: datetime,
        end_time: datetime,
        requester_id: str,
        requester_role: object,
    ) -> Booking:
        """Move an active booking to a new interval. Owner or ADMIN only."""
        role = parse_role(requester_role)
        booking = self.ledger.get(booking_id)
        if role != UserRole.ADMIN and booking.requester_id != requester_id:
            raise ForbiddenError("Forbidden: access denied")
        return self.ledger.reschedule(booking_id, start_time, end_time)

    def list_user_bookings(
        self, requester_id: str, page: int = 1, limit: Optional[int] = None
    ) -> BookingPage:
        return self.ledger.list_user_bookings(requester_id, page, limit)

    def list_location_bookings(
        self,
        location_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        self.locations.require(location_id)
        return self.ledger.list_location_bookings(location_id, start, end)

    def list_upcoming_bookings(self, requester_id: Optional[str] = None) -> list[Booking]:
        return self.ledger.list_upcoming_bookings(requester_id)

    def list_bookings_by_status(self, status: object) -> list[Booking]:
        return self.ledger.list_bookings_by_status(parse_status(status))


def build_store(config: AppConfig = settings) -> BookingStore:
    if config.storage.backend == "sqlite":
        logger.info("Using sqlite booking store at %s", config.storage.database_path)
        return SqliteBookingStore(config.storage.database_path)
    return InMemoryBookingStore()


def build_service(
    config: AppConfig = settings,
    locations: Optional[LocationDirectory] = None,
    clock: Callable[[], datetime] = utcnow,
) -> BookingService:
    """Create a service backed by the configured store."""
    return BookingService(
        store=build_store(config),
        locations=locations or InMemoryLocationDirectory(),
        pricing=PricingCalculator(config.booking.hourly_rate),
        clock=clock,
        config=config.booking,
    )
