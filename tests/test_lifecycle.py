"""Tests for the booking status state machine."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from valet_booking.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from valet_booking.lifecycle.state_machine import BookingLifecycle, parse_role, parse_status
from valet_booking.schemas.booking_schema import BookingStatus, UserRole

from tests.conftest import (
    ADMIN_ID,
    OTHER_CUSTOMER_ID,
    OWNER_ID,
    VALET_ID,
    make_booking,
)

ROLE_IDS = {"ADMIN": ADMIN_ID, "VALET": VALET_ID, "CUSTOMER": OWNER_ID}


def _drive_to(service, booking, status: str):
    """Walk a fresh booking to ``status`` as ADMIN."""
    path = {
        "PENDING": [],
        "CONFIRMED": ["CONFIRMED"],
        "IN_PROGRESS": ["CONFIRMED", "IN_PROGRESS"],
        "COMPLETED": ["CONFIRMED", "IN_PROGRESS", "COMPLETED"],
        "CANCELLED": ["CANCELLED"],
    }[status]
    for step in path:
        booking = service.update_status(booking.id, step, ADMIN_ID, "ADMIN")
    return booking


class TestTransitionTable:
    def test_valid_targets_from_pending(self):
        assert set(BookingLifecycle.get_valid_targets(BookingStatus.PENDING)) == {
            BookingStatus.CONFIRMED, BookingStatus.CANCELLED,
        }

    @pytest.mark.parametrize("terminal", [BookingStatus.COMPLETED, BookingStatus.CANCELLED])
    def test_terminal_has_no_targets(self, terminal):
        assert BookingLifecycle.get_valid_targets(terminal) == []
        assert BookingLifecycle.is_terminal(terminal)

    def test_find_missing_transition(self):
        assert BookingLifecycle.find_transition(BookingStatus.PENDING, BookingStatus.COMPLETED) is None


class TestHappyPath:
    def test_full_lifecycle(self, service):
        booking = make_booking(service)
        booking = service.update_status(booking.id, "CONFIRMED", ADMIN_ID, "ADMIN")
        assert booking.status == BookingStatus.CONFIRMED
        booking = service.update_status(booking.id, "IN_PROGRESS", VALET_ID, "VALET")
        assert booking.status == BookingStatus.IN_PROGRESS
        booking = service.update_status(booking.id, "COMPLETED", ADMIN_ID, "ADMIN")
        assert booking.status == BookingStatus.COMPLETED

    def test_enum_members_accepted(self, service):
        booking = make_booking(service)
        updated = service.update_status(booking.id, BookingStatus.CONFIRMED, ADMIN_ID, UserRole.ADMIN)
        assert updated.status == BookingStatus.CONFIRMED

    def test_updated_at_uses_clock(self, service):
        booking = make_booking(service)
        ticks = datetime(2030, 1, 2, 12, 0, tzinfo=timezone.utc)
        service.lifecycle.clock = lambda: ticks
        assert service.update_status(booking.id, "CONFIRMED", ADMIN_ID, "ADMIN").updated_at == ticks


class TestRoleProperty:
    """IN_PROGRESS is reachable only from CONFIRMED by ADMIN or VALET."""

    @pytest.mark.parametrize("source", ["PENDING", "CONFIRMED", "IN_PROGRESS", "COMPLETED", "CANCELLED"])
    @pytest.mark.parametrize("role", ["ADMIN", "VALET", "CUSTOMER"])
    def test_in_progress_matrix(self, service, source, role):
        booking = _drive_to(service, make_booking(service), source)
        if source == "CONFIRMED" and role in ("ADMIN", "VALET"):
            updated = service.update_status(booking.id, "IN_PROGRESS", ROLE_IDS[role], role)
            assert updated.status == BookingStatus.IN_PROGRESS
        else:
            with pytest.raises((ForbiddenError, InvalidStateError)):
                service.update_status(booking.id, "IN_PROGRESS", ROLE_IDS[role], role)
            assert service.ledger.get(booking.id).status.value == source

    def test_scenario_e_valet_cannot_confirm(self, service):
        booking = make_booking(service)
        with pytest.raises(ForbiddenError):
            service.update_status(booking.id, "CONFIRMED", VALET_ID, "VALET")
        assert service.ledger.get(booking.id).status == BookingStatus.PENDING

    def test_customer_cannot_confirm_own_booking(self, service):
        booking = make_booking(service)
        with pytest.raises(ForbiddenError):
            service.update_status(booking.id, "CONFIRMED", OWNER_ID, "CUSTOMER")

    def test_valet_cannot_complete(self, service):
        booking = _drive_to(service, make_booking(service), "IN_PROGRESS")
        with pytest.raises(ForbiddenError):
            service.update_status(booking.id, "COMPLETED", VALET_ID, "VALET")


class TestCancellation:
    def test_scenario_c_owner_cancels_then_second_cancel_fails(self, service):
        booking = make_booking(service)
        cancelled = service.cancel_booking(booking.id, OWNER_ID, "CUSTOMER")
        assert cancelled.status == BookingStatus.CANCELLED
        with pytest.raises(InvalidStateError, match="already cancelled"):
            service.cancel_booking(booking.id, OWNER_ID, "CUSTOMER")

    @pytest.mark.parametrize("source", ["PENDING", "CONFIRMED", "IN_PROGRESS"])
    def test_owner_can_cancel_any_active_state(self, service, source):
        booking = _drive_to(service, make_booking(service), source)
        assert service.cancel_booking(booking.id, OWNER_ID, "CUSTOMER").status == BookingStatus.CANCELLED

    def test_admin_can_cancel(self, service):
        booking = make_booking(service)
        assert service.cancel_booking(booking.id, ADMIN_ID, "ADMIN").status == BookingStatus.CANCELLED

    def test_other_customer_forbidden_not_invalid_state(self, service):
        booking = make_booking(service)
        with pytest.raises(ForbiddenError):
            service.cancel_booking(booking.id, OTHER_CUSTOMER_ID, "CUSTOMER")

    def test_valet_cannot_cancel(self, service):
        booking = make_booking(service)
        with pytest.raises(ForbiddenError):
            service.cancel_booking(booking.id, VALET_ID, "VALET")

    def test_completed_cannot_be_cancelled(self, service):
        booking = _drive_to(service, make_booking(service), "COMPLETED")
        with pytest.raises(InvalidStateError, match="Completed bookings cannot be cancelled"):
            service.cancel_booking(booking.id, ADMIN_ID, "ADMIN")


class TestTerminalStates:
    @pytest.mark.parametrize("terminal", ["COMPLETED", "CANCELLED"])
    @pytest.mark.parametrize("target", ["PENDING", "CONFIRMED", "IN_PROGRESS", "COMPLETED", "CANCELLED"])
    def test_every_update_rejected_and_unchanged(self, service, terminal, target):
        booking = _drive_to(service, make_booking(service), terminal)
        with pytest.raises(InvalidStateError):
            service.update_status(booking.id, target, ADMIN_ID, "ADMIN")
        assert service.ledger.get(booking.id).status.value == terminal

    def test_modify_message_for_completed(self, service):
        booking = _drive_to(service, make_booking(service), "COMPLETED")
        with pytest.raises(InvalidStateError, match="cannot be modified"):
            service.update_status(booking.id, "CONFIRMED", ADMIN_ID, "ADMIN")

    def test_terminal_check_precedes_permission_check(self, service):
        booking = _drive_to(service, make_booking(service), "CANCELLED")
        with pytest.raises(InvalidStateError):
            service.cancel_booking(booking.id, OTHER_CUSTOMER_ID, "CUSTOMER")


class TestInvalidInput:
    def test_scenario_d_unknown_status(self, service):
        booking = make_booking(service)
        with pytest.raises(ValidationError):
            service.update_status(booking.id, "NOT_A_STATUS", ADMIN_ID, "ADMIN")
        assert service.ledger.get(booking.id) == booking

    def test_unknown_role(self, service):
        booking = make_booking(service)
        with pytest.raises(ValidationError):
            service.update_status(booking.id, "CONFIRMED", ADMIN_ID, "SUPERUSER")

    def test_unknown_booking(self, service):
        with pytest.raises(NotFoundError):
            service.update_status("BK-MISSING", "CONFIRMED", ADMIN_ID, "ADMIN")

    def test_transition_not_in_table(self, service):
        booking = make_booking(service)
        with pytest.raises(InvalidStateError, match="Cannot change booking status from PENDING to COMPLETED"):
            service.update_status(booking.id, "COMPLETED", ADMIN_ID, "ADMIN")

    def test_same_status_is_not_a_transition(self, service):
        booking = make_booking(service)
        with pytest.raises(InvalidStateError):
            service.update_status(booking.id, "PENDING", ADMIN_ID, "ADMIN")

    @pytest.mark.parametrize("status", ["confirmed", " CONFIRMED", "In_Progress", "", None])
    def test_status_must_match_exactly(self, service, status):
        booking = make_booking(service)
        with pytest.raises(ValidationError):
            service.update_status(booking.id, status, ADMIN_ID, "ADMIN")
        assert service.ledger.get(booking.id).status == BookingStatus.PENDING

    @pytest.mark.parametrize("role", ["admin", "Admin ", "valet"])
    def test_role_must_match_exactly(self, service, role):
        booking = make_booking(service)
        with pytest.raises(ValidationError):
            service.update_status(booking.id, "CONFIRMED", ADMIN_ID, role)
        assert service.ledger.get(booking.id).status == BookingStatus.PENDING

    def test_parse_helpers(self):
        assert parse_status("IN_PROGRESS") == BookingStatus.IN_PROGRESS
        assert parse_role(UserRole.VALET) == UserRole.VALET
        with pytest.raises(ValidationError):
            parse_status(" in_progress ")


class TestCompareAndSet:
    def test_stale_source_state_loses(self, service, store):
        booking = make_booking(service)
        service.update_status(booking.id, "CONFIRMED", ADMIN_ID, "ADMIN")
        # A writer that still believes the booking is PENDING must not win.
        assert store.compare_and_set_status(
            booking.id, BookingStatus.PENDING, BookingStatus.CANCELLED, booking.updated_at
        ) is None
        assert service.ledger.get(booking.id).status == BookingStatus.CONFIRMED

    def test_lifecycle_reports_lost_race_as_invalid_state(self, service, store, monkeypatch):
        booking = make_booking(service)
        real_get = store.get

        def stale_get(booking_id):
            snapshot = real_get(booking_id)
            # Another actor confirms between our read and our commit.
            store.compare_and_set_status(
                booking_id, BookingStatus.PENDING, BookingStatus.CONFIRMED, snapshot.updated_at
            )
            return snapshot

        monkeypatch.setattr(store, "get", stale_get)
        with pytest.raises(InvalidStateError, match="changed concurrently"):
            service.cancel_booking(booking.id, OWNER_ID, "CUSTOMER")
        monkeypatch.undo()
        assert store.get(booking.id).status == BookingStatus.CONFIRMED

    def test_cancel_racing_confirm_has_single_winner(self, service):
        for _ in range(10):
            booking = make_booking(service)

            def cancel():
                try:
                    return service.cancel_booking(booking.id, OWNER_ID, "CUSTOMER").status
                except InvalidStateError:
                    return None

            def confirm():
                try:
                    return service.update_status(booking.id, "CONFIRMED", ADMIN_ID, "ADMIN").status
                except InvalidStateError:
                    return None

            with ThreadPoolExecutor(max_workers=2) as pool:
                results = [f.result() for f in (pool.submit(cancel), pool.submit(confirm))]

            final = service.ledger.get(booking.id).status
            # Cancel may legally follow a confirm, never the reverse.
            assert final in (BookingStatus.CANCELLED, BookingStatus.CONFIRMED)
            assert final in results
            if final == BookingStatus.CONFIRMED:
                # Free the bay for the next round.
                service.cancel_booking(booking.id, ADMIN_ID, "ADMIN")
