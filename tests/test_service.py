"""Integration tests: the exposed booking operations end to end."""

from datetime import timedelta

import pytest

from valet_booking.config import AppConfig, StorageConfig
from valet_booking.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from valet_booking.ledger.sqlite_store import SqliteBookingStore
from valet_booking.ledger.store import InMemoryBookingStore
from valet_booking.schemas.booking_schema import BookingStatus
from valet_booking.service import build_service, build_store

from tests.conftest import (
    ADMIN_ID,
    LOCATION_ID,
    MONDAY,
    OTHER_CUSTOMER_ID,
    OWNER_ID,
    VALET_ID,
    at,
    fixed_clock,
    make_booking,
)


class TestRoundTrip:
    def test_created_booking_removes_slot(self, service):
        booking = make_booking(service, "13:00", "14:00")
        starts = [s.start for s in service.get_availability(LOCATION_ID, MONDAY, 60)]
        assert booking.start_time not in starts

    def test_every_free_slot_is_bookable(self, service):
        make_booking(service, "10:00", "11:00")
        make_booking(service, "15:00", "16:30")
        for slot in service.get_availability(LOCATION_ID, MONDAY, 60)[::4]:
            # Non-overlapping picks from the free list must all succeed.
            booking = service.create_booking(LOCATION_ID, slot.start, slot.end, OWNER_ID)
            assert booking.status == BookingStatus.PENDING


class TestGetBooking:
    def test_owner_can_read(self, service):
        booking = make_booking(service)
        assert service.get_booking(booking.id, OWNER_ID, "CUSTOMER") == booking

    @pytest.mark.parametrize("requester,role", [(ADMIN_ID, "ADMIN"), (VALET_ID, "VALET")])
    def test_staff_can_read(self, service, requester, role):
        booking = make_booking(service)
        assert service.get_booking(booking.id, requester, role).id == booking.id

    def test_other_customer_forbidden(self, service):
        booking = make_booking(service)
        with pytest.raises(ForbiddenError):
            service.get_booking(booking.id, OTHER_CUSTOMER_ID, "CUSTOMER")

    def test_missing(self, service):
        with pytest.raises(NotFoundError):
            service.get_booking("BK-NONE", ADMIN_ID, "ADMIN")


class TestUpdateNotes:
    def test_owner_updates_notes(self, service):
        booking = make_booking(service)
        assert service.update_notes(booking.id, "blue ute", OWNER_ID, "CUSTOMER").notes == "blue ute"

    def test_valet_cannot_edit_notes(self, service):
        booking = make_booking(service)
        with pytest.raises(ForbiddenError):
            service.update_notes(booking.id, "x", VALET_ID, "VALET")

    def test_notes_on_terminal_booking_allowed(self, service):
        booking = make_booking(service)
        service.cancel_booking(booking.id, OWNER_ID, "CUSTOMER")
        updated = service.update_notes(booking.id, "refund requested", ADMIN_ID, "ADMIN")
        assert updated.notes == "refund requested"
        assert updated.status == BookingStatus.CANCELLED

    def test_notes_length_enforced(self, service):
        booking = make_booking(service)
        with pytest.raises(ValidationError):
            service.update_notes(booking.id, "y" * 600, ADMIN_ID, "ADMIN")


class TestRescheduleAccess:
    @pytest.mark.parametrize("requester,role", [(OWNER_ID, "CUSTOMER"), (ADMIN_ID, "ADMIN")])
    def test_owner_or_admin_can_move(self, service, requester, role):
        booking = make_booking(service)
        moved = service.reschedule_booking(booking.id, at("15:00"), at("16:00"), requester, role)
        assert moved.start_time == at("15:00")

    @pytest.mark.parametrize("requester,role", [(OTHER_CUSTOMER_ID, "CUSTOMER"), (VALET_ID, "VALET")])
    def test_others_forbidden(self, service, requester, role):
        booking = make_booking(service)
        with pytest.raises(ForbiddenError):
            service.reschedule_booking(booking.id, at("15:00"), at("16:00"), requester, role)
        assert service.ledger.get(booking.id).start_time == booking.start_time

    def test_moved_booking_shows_in_availability(self, service):
        booking = make_booking(service, "10:00", "11:00")
        service.reschedule_booking(booking.id, at("15:00"), at("16:00"), OWNER_ID, "CUSTOMER")
        starts = [s.start for s in service.get_availability(LOCATION_ID, MONDAY, 60)]
        assert at("10:00") in starts
        assert at("15:00") not in starts


class TestErrorRendering:
    def test_conflict_to_dict(self, service):
        make_booking(service)
        with pytest.raises(ConflictError) as excinfo:
            make_booking(service, requester_id=OTHER_CUSTOMER_ID)
        assert excinfo.value.to_dict() == {
            "error": "conflict",
            "message": "Booking time slot is not available",
        }
        assert excinfo.value.status_code == 409


class TestFactory:
    def test_memory_backend(self):
        assert isinstance(build_store(AppConfig(storage=StorageConfig(backend="memory"))), InMemoryBookingStore)

    def test_sqlite_backend(self, tmp_path):
        config = AppConfig(storage=StorageConfig(backend="sqlite", database_path=str(tmp_path / "db" / "b.db")))
        assert isinstance(build_store(config), SqliteBookingStore)

    def test_build_service_end_to_end(self, locations):
        service = build_service(
            AppConfig(storage=StorageConfig(backend="memory")), locations=locations, clock=fixed_clock
        )
        service.schedules.upsert(LOCATION_ID, 1, "09:00", "18:00")
        booking = service.create_booking(
            LOCATION_ID, at("09:00"), at("09:00") + timedelta(minutes=90), OWNER_ID
        )
        assert booking.price == 2 * AppConfig().booking.hourly_rate
