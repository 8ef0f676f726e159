from valet_booking.ledger.booking_ledger import BookingLedger
from valet_booking.ledger.pricing import PricingCalculator
from valet_booking.ledger.sqlite_store import SqliteBookingStore
from valet_booking.ledger.store import BookingStore, InMemoryBookingStore

__all__ = [
    "BookingLedger",
    "PricingCalculator",
    "BookingStore",
    "InMemoryBookingStore",
    "SqliteBookingStore",
]
