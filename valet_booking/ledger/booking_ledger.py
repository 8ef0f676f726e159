"""
Booking ledger: the single gate that creates reservations.

Validation happens here; the overlap check and the write are delegated to
``BookingStore.insert_if_free`` (new bookings) and ``move_if_free``
(reschedules) so they execute as one atomic step at the storage boundary.

Usage:
    ledger = BookingLedger(store, locations)
    booking = ledger.reserve("loc-1", start, end, requester_id="user-42")
"""

import math
import uuid
from datetime import datetime, tzinfo
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from valet_booking.config import BookingConfig, settings
from valet_booking.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    from_pydantic,
)
from valet_booking.ledger.pricing import PricingCalculator
from valet_booking.ledger.store import BookingStore
from valet_booking.locations import LocationDirectory
from valet_booking.logging_context import get_request_logger
from valet_booking.schemas.booking_schema import (
    TERMINAL_STATUSES,
    Booking,
    BookingPage,
    BookingStatus,
)
from valet_booking.utils import get_zone, to_utc, utcnow

logger = get_request_logger(__name__)


def _new_booking_id() -> str:
    return f"BK-{uuid.uuid4().hex[:12].upper()}"


class BookingLedger:
    """Holds bookings per location and reserves intervals without double-booking."""

    def __init__(
        self,
        store: BookingStore,
        locations: LocationDirectory,
        pricing: Optional[PricingCalculator] = None,
        clock: Callable[[], datetime] = utcnow,
        zone: Optional[tzinfo] = None,
        config: Optional[BookingConfig] = None,
    ) -> None:
        self.store = store
        self.locations = locations
        self.config = config or settings.booking
        self.pricing = pricing or PricingCalculator(self.config.hourly_rate)
        self.clock = clock
        self.zone = zone or get_zone(self.config.timezone)

    def normalize(self, value: datetime, field_name: str) -> datetime:
        """Coerce an input timestamp to aware UTC; naive values are local to the booking timezone."""
        if not isinstance(value, datetime):
            raise ValidationError(f"{field_name} must be a datetime")
        return to_utc(value, self.zone)

    def _validate_notes(self, notes: Optional[str]) -> str:
        cleaned = (notes or "").strip()
        if len(cleaned) > self.config.notes_max_length:
            raise ValidationError(
                f"Notes cannot exceed {self.config.notes_max_length} characters"
            )
        return cleaned

    def reserve(
        self,
        location_id: str,
        start: datetime,
        end: datetime,
        requester_id: str,
        notes: Optional[str] = None,
    ) -> Booking:
        """Create a PENDING booking for ``[start, end)`` if the bay is free.

        Raises:
            ValidationError: Bad interval, start in the past, bad notes, or inactive location.
            NotFoundError: Unknown location.
            ConflictError: An active booking at the location overlaps the interval.
        """
        if not requester_id or not str(requester_id).strip():
            raise ValidationError("Requester ID is required")
        if not location_id:
            raise ValidationError("Location ID is required")
        start_utc = self.normalize(start, "Start time")
        end_utc = self.normalize(end, "End time")
        if end_utc <= start_utc:
            raise ValidationError("End time must be after start time")
        now = self.clock()
        if start_utc < now:
            raise ValidationError("Cannot create booking in the past")
        cleaned_notes = self._validate_notes(notes)

        location = self.locations.require(location_id)
        if not location.is_active:
            raise ValidationError("Location is not available for booking")

        try:
            booking = Booking(
                id=_new_booking_id(),
                requester_id=requester_id,
                location_id=location_id,
                start_time=start_utc,
                end_time=end_utc,
                status=BookingStatus.PENDING,
                price=self.pricing.quote(start_utc, end_utc),
                notes=cleaned_notes,
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as exc:
            raise from_pydantic(exc) from None

        if not self.store.insert_if_free(booking):
            logger.info(
                "Reservation rejected, slot taken: location=%s %s-%s",
                location_id, start_utc.isoformat(), end_utc.isoformat(),
            )
            raise ConflictError("Booking time slot is not available")

        logger.info(
            "Booking created: %s at %s %s-%s for %s (price %s)",
            booking.id, location_id, start_utc.isoformat(), end_utc.isoformat(),
            requester_id, booking.price,
        )
        return booking

    def reschedule(self, booking_id: str, start: datetime, end: datetime) -> Booking:
        """Move an active booking to ``[start, end)`` and re-price it.

        The booking's own current interval is ignored by the overlap check, so
        a booking can be shifted or extended into time it already holds.

        Raises:
            ValidationError: Bad interval or start in the past.
            NotFoundError: Unknown booking.
            InvalidStateError: Booking is completed or cancelled, or its status
                changed while the move was being applied.
            ConflictError: Another active booking overlaps the new interval.
        """
        start_utc = self.normalize(start, "Start time")
        end_utc = self.normalize(end, "End time")
        if end_utc <= start_utc:
            raise ValidationError("End time must be after start time")
        now = self.clock()
        if start_utc < now:
            raise ValidationError("Cannot move booking into the past")

        booking = self.get(booking_id)
        if booking.status in TERMINAL_STATUSES:
            raise InvalidStateError(
                f"{booking.status.value.capitalize()} bookings cannot be modified"
            )

        moved = self.store.move_if_free(
            booking_id,
            booking.status,
            start_utc,
            end_utc,
            self.pricing.quote(start_utc, end_utc),
            now,
        )
        if moved is None:
            logger.info(
                "Reschedule rejected, slot taken: %s to %s-%s",
                booking_id, start_utc.isoformat(), end_utc.isoformat(),
            )
            raise ConflictError("Updated booking time slot is not available")

        logger.info(
            "Booking rescheduled: %s %s-%s -> %s-%s (price %s)",
            booking_id, booking.start_time.isoformat(), booking.end_time.isoformat(),
            start_utc.isoformat(), end_utc.isoformat(), moved.price,
        )
        return moved

    def get(self, booking_id: str) -> Booking:
        if not booking_id:
            raise ValidationError("Booking ID is required")
        booking = self.store.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def check_overlap(
        self,
        location_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """Read-only overlap check. Not a reservation guarantee."""
        return bool(self.active_bookings_between(location_id, start, end, exclude_booking_id))

    def active_bookings_between(
        self,
        location_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> list[Booking]:
        return self.store.find_overlapping(
            location_id,
            self.normalize(start, "Start time"),
            self.normalize(end, "End time"),
            exclude_booking_id,
        )

    def list_user_bookings(
        self, requester_id: str, page: int = 1, limit: Optional[int] = None
    ) -> BookingPage:
        page = max(1, page)
        limit = limit or self.config.default_page_size
        limit = min(max(1, limit), self.config.max_page_size)
        total = self.store.count_by_requester(requester_id)
        items = self.store.list_by_requester(requester_id, (page - 1) * limit, limit)
        return BookingPage(
            items=items,
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        )

    def list_location_bookings(
        self,
        location_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        return self.store.list_by_location(
            location_id,
            self.normalize(start, "Start date") if start is not None else None,
            self.normalize(end, "End date") if end is not None else None,
        )

    def list_bookings_by_status(self, status: BookingStatus) -> list[Booking]:
        return self.store.list_by_status(status)

    def list_upcoming_bookings(self, requester_id: Optional[str] = None) -> list[Booking]:
        return self.store.list_upcoming(self.clock(), requester_id)

    def update_notes(self, booking_id: str, notes: Optional[str]) -> Booking:
        self.get(booking_id)
        updated = self.store.update_notes(booking_id, self._validate_notes(notes), self.clock())
        logger.info("Notes updated on booking %s", booking_id)
        return updated
