"""
Booking storage contract and the in-memory store.

The ledger never performs "check for overlap, then write" itself. It asks
the store for a single conditional create (``insert_if_free``), a single
conditional move (``move_if_free``) and compare-and-set status updates, so
the store is the one place that decides atomicity. Any store shared by
several worker processes must enforce all three at its own boundary
(see ``SqliteBookingStore``).
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional

from valet_booking.errors import InvalidStateError, NotFoundError
from valet_booking.schemas.booking_schema import ACTIVE_STATUSES, Booking, BookingStatus

logger = logging.getLogger(__name__)

UPCOMING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class BookingStore(ABC):
    """Persistence collaborator for booking records.

    All datetimes crossing this boundary are timezone-aware UTC.
    """

    @abstractmethod
    def insert_if_free(self, booking: Booking) -> bool:
        """Atomically insert ``booking`` unless an active booking at the same
        location overlaps it. Returns False (and writes nothing) on overlap."""

    @abstractmethod
    def get(self, booking_id: str) -> Optional[Booking]:
        ...

    @abstractmethod
    def find_overlapping(
        self,
        location_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> list[Booking]:
        """Active bookings at ``location_id`` intersecting ``[start, end)``, ordered by start."""

    @abstractmethod
    def compare_and_set_status(
        self,
        booking_id: str,
        expected: BookingStatus,
        new_status: BookingStatus,
        updated_at: datetime,
    ) -> Optional[Booking]:
        """Set ``new_status`` only if the stored status still equals ``expected``.

        Returns the updated booking, or None when the stored status has moved on.

        Raises:
            NotFoundError: No booking with that id.
        """

    @abstractmethod
    def move_if_free(
        self,
        booking_id: str,
        expected: BookingStatus,
        start: datetime,
        end: datetime,
        price: Decimal,
        updated_at: datetime,
    ) -> Optional[Booking]:
        """Atomically move a booking to ``[start, end)`` unless another active
        booking at its location overlaps the new interval.

        The booking's own current interval never counts as an overlap.
        Returns the moved booking, or None (and writes nothing) on overlap.

        Raises:
            NotFoundError: No booking with that id.
            InvalidStateError: The stored status no longer equals ``expected``.
        """

    @abstractmethod
    def update_notes(self, booking_id: str, notes: str, updated_at: datetime) -> Booking:
        ...

    @abstractmethod
    def list_by_requester(self, requester_id: str, offset: int, limit: int) -> list[Booking]:
        """Newest-first page of one requester's bookings."""

    @abstractmethod
    def count_by_requester(self, requester_id: str) -> int:
        ...

    @abstractmethod
    def list_by_location(
        self,
        location_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        """Bookings at a location whose start falls within the optional bounds, ordered by start."""

    @abstractmethod
    def list_by_status(self, status: BookingStatus) -> list[Booking]:
        ...

    @abstractmethod
    def list_upcoming(self, now: datetime, requester_id: Optional[str] = None) -> list[Booking]:
        """PENDING/CONFIRMED bookings starting at or after ``now``, ordered by start."""


class InMemoryBookingStore(BookingStore):
    """Process-local store. One lock makes check-and-insert a single step.

    Only safe while a single process serves requests; use a database-backed
    store when workers are scaled out.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bookings: dict[str, Booking] = {}

    def _overlapping(
        self, location_id: str, start: datetime, end: datetime, exclude_booking_id: Optional[str]
    ) -> list[Booking]:
        return sorted(
            (
                b for b in self._bookings.values()
                if b.location_id == location_id
                and b.status in ACTIVE_STATUSES
                and b.id != exclude_booking_id
                and b.overlaps(start, end)
            ),
            key=lambda b: b.start_time,
        )

    def insert_if_free(self, booking: Booking) -> bool:
        with self._lock:
            if booking.id in self._bookings:
                raise ValueError(f"Duplicate booking id {booking.id}")
            if self._overlapping(booking.location_id, booking.start_time, booking.end_time, None):
                return False
            self._bookings[booking.id] = booking
        logger.debug("Stored booking %s", booking.id)
        return True

    def get(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def find_overlapping(
        self,
        location_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> list[Booking]:
        with self._lock:
            return self._overlapping(location_id, start, end, exclude_booking_id)

    def compare_and_set_status(
        self,
        booking_id: str,
        expected: BookingStatus,
        new_status: BookingStatus,
        updated_at: datetime,
    ) -> Optional[Booking]:
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                raise NotFoundError("Booking not found")
            if current.status != expected:
                return None
            updated = current.model_copy(update={"status": new_status, "updated_at": updated_at})
            self._bookings[booking_id] = updated
        return updated

    def move_if_free(
        self,
        booking_id: str,
        expected: BookingStatus,
        start: datetime,
        end: datetime,
        price: Decimal,
        updated_at: datetime,
    ) -> Optional[Booking]:
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                raise NotFoundError("Booking not found")
            if current.status != expected:
                raise InvalidStateError(
                    f"Booking status changed concurrently; it is no longer {expected.value}"
                )
            if self._overlapping(current.location_id, start, end, booking_id):
                return None
            moved = current.model_copy(update={
                "start_time": start,
                "end_time": end,
                "price": price,
                "updated_at": updated_at,
            })
            self._bookings[booking_id] = moved
        logger.debug("Moved booking %s", booking_id)
        return moved

    def update_notes(self, booking_id: str, notes: str, updated_at: datetime) -> Booking:
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                raise NotFoundError("Booking not found")
            updated = current.model_copy(update={"notes": notes, "updated_at": updated_at})
            self._bookings[booking_id] = updated
        return updated

    def _snapshot(self) -> list[Booking]:
        with self._lock:
            return list(self._bookings.values())

    def list_by_requester(self, requester_id: str, offset: int, limit: int) -> list[Booking]:
        mine = [b for b in self._snapshot() if b.requester_id == requester_id]
        mine.sort(key=lambda b: b.created_at, reverse=True)
        return mine[offset:offset + limit]

    def count_by_requester(self, requester_id: str) -> int:
        return sum(1 for b in self._snapshot() if b.requester_id == requester_id)

    def list_by_location(
        self,
        location_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        found = [
            b for b in self._snapshot()
            if b.location_id == location_id
            and (start is None or b.start_time >= start)
            and (end is None or b.start_time <= end)
        ]
        return sorted(found, key=lambda b: b.start_time)

    def list_by_status(self, status: BookingStatus) -> list[Booking]:
        return sorted(
            (b for b in self._snapshot() if b.status == status),
            key=lambda b: b.start_time,
        )

    def list_upcoming(self, now: datetime, requester_id: Optional[str] = None) -> list[Booking]:
        found = [
            b for b in self._snapshot()
            if b.status in UPCOMING_STATUSES
            and b.start_time >= now
            and (requester_id is None or b.requester_id == requester_id)
        ]
        return sorted(found, key=lambda b: b.start_time)

    def reset(self) -> None:
        """Clear all bookings. Used by test fixtures for isolation."""
        with self._lock:
            self._bookings.clear()
