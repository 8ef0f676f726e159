"""Shared test fixtures and helpers."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from valet_booking.config import BookingConfig
from valet_booking.ledger.pricing import PricingCalculator
from valet_booking.ledger.sqlite_store import SqliteBookingStore
from valet_booking.ledger.store import InMemoryBookingStore
from valet_booking.locations import InMemoryLocationDirectory
from valet_booking.scheduling.schedule_registry import ScheduleRegistry
from valet_booking.schemas.location_schema import Location
from valet_booking.service import BookingService
from valet_booking.utils import at_time

# 2030-01-07 is a Monday; the clock sits on the Tuesday before it.
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
FIXED_NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)

LOCATION_ID = "loc-1"
INACTIVE_LOCATION_ID = "loc-closed"
OWNER_ID = "user-owner"
OTHER_CUSTOMER_ID = "user-other"
ADMIN_ID = "admin-1"
VALET_ID = "valet-1"

# Pinned so a developer .env cannot shift zones or limits under the suite.
BOOKING_CONFIG = BookingConfig(
    hourly_rate=Decimal("10"),
    slot_step_minutes=30,
    notes_max_length=500,
    timezone="UTC",
    default_page_size=10,
    max_page_size=100,
)


def at(hhmm: str, day: date = MONDAY) -> datetime:
    """UTC timestamp for a clock time on ``day``."""
    return at_time(day, hhmm, timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def locations():
    return InMemoryLocationDirectory([
        Location(id=LOCATION_ID, name="Harbour Valet", address="1 Quay St"),
        Location(id=INACTIVE_LOCATION_ID, name="Old Garage", is_active=False),
    ])


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def sqlite_store(tmp_path):
    return SqliteBookingStore(str(tmp_path / "bookings.db"))


@pytest.fixture
def schedules(locations):
    registry = ScheduleRegistry(locations)
    registry.upsert(LOCATION_ID, 1, "09:00", "18:00")
    registry.upsert(INACTIVE_LOCATION_ID, 1, "09:00", "18:00")
    return registry


@pytest.fixture
def pricing():
    return PricingCalculator(hourly_rate=Decimal("10"))


@pytest.fixture
def service(store, locations, schedules, pricing):
    return BookingService(
        store, locations, schedules, pricing=pricing, clock=fixed_clock, config=BOOKING_CONFIG
    )


@pytest.fixture
def sqlite_service(sqlite_store, locations, schedules, pricing):
    return BookingService(
        sqlite_store, locations, schedules, pricing=pricing, clock=fixed_clock, config=BOOKING_CONFIG
    )


def make_booking(service: BookingService, start: str = "10:00", end: str = "11:00",
                 requester_id: str = OWNER_ID, day: date = MONDAY):
    """Create a booking at the default location through the service."""
    return service.create_booking(LOCATION_ID, at(start, day), at(end, day), requester_id)
