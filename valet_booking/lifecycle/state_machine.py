"""
Booking status lifecycle with role-gated transitions.

Every legal status change is listed once in ``BookingLifecycle.TRANSITIONS``
together with the roles allowed to trigger it. ``update_status`` and
``cancel`` consult the same table, so there is no per-endpoint permission
logic to drift out of sync.

Commits are compare-and-set on the status the caller observed: if another
actor changed the booking in between, the loser gets InvalidStateError
instead of overwriting the winner.

Usage:
    lifecycle = BookingLifecycle(store)
    lifecycle.update_status(booking_id, "CONFIRMED", "admin-1", "ADMIN")
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from valet_booking.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from valet_booking.ledger.store import BookingStore
from valet_booking.logging_context import get_request_logger
from valet_booking.schemas.booking_schema import (
    TERMINAL_STATUSES,
    Booking,
    BookingStatus,
    UserRole,
)
from valet_booking.utils import utcnow

logger = get_request_logger(__name__)


@dataclass(frozen=True)
class Transition:
    """A single valid status transition and who may trigger it."""
    from_status: BookingStatus
    to_status: BookingStatus
    roles: frozenset[UserRole]
    owner_allowed: bool = False

    def permits(self, booking: Booking, requester_id: str, role: UserRole) -> bool:
        if role in self.roles:
            return True
        return (
            self.owner_allowed
            and role == UserRole.CUSTOMER
            and booking.requester_id == requester_id
        )


_ADMIN = frozenset({UserRole.ADMIN})
_ADMIN_VALET = frozenset({UserRole.ADMIN, UserRole.VALET})


def parse_status(value: object) -> BookingStatus:
    """Exact match on the status name; "confirmed" is not "CONFIRMED"."""
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status value: {value!r}") from None


def parse_role(value: object) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(value)
    except ValueError:
        raise ValidationError(f"Invalid role: {value!r}") from None


def _terminal_message(current: BookingStatus, target: BookingStatus) -> str:
    if target == BookingStatus.CANCELLED:
        if current == BookingStatus.CANCELLED:
            return "Booking is already cancelled"
        return "Completed bookings cannot be cancelled"
    if current == BookingStatus.CANCELLED:
        return "Cancelled bookings cannot be modified"
    return "Completed bookings cannot be modified"


class BookingLifecycle:
    """State machine over stored bookings."""

    TRANSITIONS: list[Transition] = [
        # --- Confirmation ---
        Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED, _ADMIN),

        # --- Service ---
        Transition(BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, _ADMIN_VALET),
        Transition(BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED, _ADMIN),

        # --- Cancellation ---
        Transition(BookingStatus.PENDING, BookingStatus.CANCELLED, _ADMIN, owner_allowed=True),
        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED, _ADMIN, owner_allowed=True),
        Transition(BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED, _ADMIN, owner_allowed=True),
    ]

    def __init__(self, store: BookingStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    @classmethod
    def find_transition(
        cls, current: BookingStatus, target: BookingStatus
    ) -> Optional[Transition]:
        for t in cls.TRANSITIONS:
            if t.from_status == current and t.to_status == target:
                return t
        return None

    @classmethod
    def get_valid_targets(cls, current: BookingStatus) -> list[BookingStatus]:
        """Return all statuses reachable from ``current`` in one step."""
        return [t.to_status for t in cls.TRANSITIONS if t.from_status == current]

    @staticmethod
    def is_terminal(status: BookingStatus) -> bool:
        return status in TERMINAL_STATUSES

    def update_status(
        self,
        booking_id: str,
        new_status: object,
        requester_id: str,
        requester_role: object,
    ) -> Booking:
        """
        Move a booking to ``new_status``.

        Args:
            booking_id: Booking to change.
            new_status: Target status name (e.g. ``"CONFIRMED"``).
            requester_id: Verified identity of the caller.
            requester_role: Verified role of the caller.

        Returns:
            The updated booking.

        Raises:
            ValidationError: Unknown status or role.
            NotFoundError: No such booking.
            InvalidStateError: Terminal booking, transition not in the table,
                or the booking changed underneath the caller.
            ForbiddenError: Transition exists but the caller may not trigger it.
        """
        target = parse_status(new_status)
        role = parse_role(requester_role)

        booking = self.store.get(booking_id) if booking_id else None
        if booking is None:
            raise NotFoundError("Booking not found")
        current = booking.status

        if self.is_terminal(current):
            raise InvalidStateError(_terminal_message(current, target))

        transition = self.find_transition(current, target)
        if transition is None:
            valid = [s.value for s in self.get_valid_targets(current)]
            raise InvalidStateError(
                f"Cannot change booking status from {current.value} to {target.value}. "
                f"Valid targets: {valid}"
            )

        if not transition.permits(booking, requester_id, role):
            logger.warning(
                "Forbidden status change on %s: %s -> %s by %s (%s)",
                booking_id, current.value, target.value, requester_id, role.value,
            )
            raise ForbiddenError("Forbidden: insufficient permissions")

        updated = self.store.compare_and_set_status(booking_id, current, target, self.clock())
        if updated is None:
            logger.info(
                "Stale status change on %s: expected %s, lost race", booking_id, current.value
            )
            raise InvalidStateError(
                f"Booking status changed concurrently; it is no longer {current.value}"
            )

        logger.info(
            "Status transition: %s %s -> %s by %s (%s)",
            booking_id, current.value, target.value, requester_id, role.value,
        )
        return updated

    def cancel(self, booking_id: str, requester_id: str, requester_role: object) -> Booking:
        return self.update_status(booking_id, BookingStatus.CANCELLED, requester_id, requester_role)
