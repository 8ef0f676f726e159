"""
Offline console demo: walks through booking scenarios against the real core.

Uses the in-memory store and location directory. No database, no network.

Usage:
    python console_demo.py
    python console_demo.py --scenario conflict
    python console_demo.py --scenario lifecycle
    python console_demo.py --scenario reschedule
"""

import argparse
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from typing import Callable

from valet_booking.config import settings
from valet_booking.errors import BookingError, ConflictError
from valet_booking.ledger.store import InMemoryBookingStore
from valet_booking.locations import InMemoryLocationDirectory
from valet_booking.logging_context import new_request_id
from valet_booking.schemas.location_schema import Coordinates, Location
from valet_booking.service import BookingService
from valet_booking.utils import at_time, get_zone

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

LOCATION_ID = "loc-harbour"
CUSTOMER_ID = "user-jane"


def _next_monday() -> date:
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) or 7)


class ConsoleSession:
    """Seeds one location and plays scenarios through BookingService."""

    def __init__(self) -> None:
        self.zone = get_zone(settings.booking.timezone)
        self.monday = _next_monday()
        locations = InMemoryLocationDirectory([
            Location(
                id=LOCATION_ID,
                name="Harbour Hotel Valet",
                address="1 Quay St",
                coordinates=Coordinates(latitude=-33.86, longitude=151.21),
            )
        ])
        self.service = BookingService(InMemoryBookingStore(), locations)
        # Monday 09:00-18:00
        self.service.schedules.upsert(LOCATION_ID, 1, "09:00", "18:00")

    def at(self, hhmm: str) -> datetime:
        return at_time(self.monday, hhmm, self.zone)

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def fail(self, exc: BookingError) -> None:
        print(f"{RED}  !! {exc.kind}: {exc.message}{RESET}")

    def show_slots(self, duration: int) -> None:
        slots = self.service.get_availability(LOCATION_ID, self.monday, duration)
        times = ", ".join(s.start.strftime("%H:%M") for s in slots) or "none"
        self.log(f"{duration}-minute slots on {self.monday}: {times}")

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    def scenario_availability(self) -> None:
        self.show_slots(60)
        booking = self.service.create_booking(LOCATION_ID, self.at("10:00"), self.at("11:00"), CUSTOMER_ID)
        self.say(f"Booked {booking.id} 10:00-11:00, status {booking.status.value}, price {booking.price}")
        self.show_slots(60)

    def scenario_conflict(self) -> None:
        def attempt(requester: str):
            # Worker threads start with a fresh context.
            new_request_id()
            try:
                return self.service.create_booking(
                    LOCATION_ID, self.at("10:00"), self.at("11:00"), requester
                )
            except ConflictError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(attempt, ["user-a", "user-b"]))
        for requester, result in zip(["user-a", "user-b"], results):
            if isinstance(result, BookingError):
                print(f"{YELLOW}{requester}:{RESET}", end="")
                self.fail(result)
            else:
                self.say(f"{requester}: booked {result.id}")

    def scenario_lifecycle(self) -> None:
        booking = self.service.create_booking(LOCATION_ID, self.at("14:00"), self.at("15:30"), CUSTOMER_ID)
        self.say(f"Booked {booking.id}, price {booking.price}")
        steps: list[tuple[str, Callable[[], object]]] = [
            ("valet confirms", lambda: self.service.update_status(booking.id, "CONFIRMED", "valet-1", "VALET")),
            ("admin sets bogus status", lambda: self.service.update_status(booking.id, "NOT_A_STATUS", "admin-1", "ADMIN")),
            ("admin confirms", lambda: self.service.update_status(booking.id, "CONFIRMED", "admin-1", "ADMIN")),
            ("valet starts", lambda: self.service.update_status(booking.id, "IN_PROGRESS", "valet-1", "VALET")),
            ("admin completes", lambda: self.service.update_status(booking.id, "COMPLETED", "admin-1", "ADMIN")),
            ("owner cancels", lambda: self.service.cancel_booking(booking.id, CUSTOMER_ID, "CUSTOMER")),
        ]
        for label, step in steps:
            try:
                updated = step()
                self.say(f"{label}: now {updated.status.value}")
            except BookingError as exc:
                print(f"{YELLOW}{label}:{RESET}", end="")
                self.fail(exc)

    def scenario_reschedule(self) -> None:
        first = self.service.create_booking(LOCATION_ID, self.at("09:00"), self.at("10:00"), CUSTOMER_ID)
        self.service.create_booking(LOCATION_ID, self.at("12:00"), self.at("13:00"), "user-b")
        self.say(f"Booked {first.id} 09:00-10:00, price {first.price}")
        moves = [
            ("extend to 11:30", self.at("09:00"), self.at("11:30")),
            ("move onto user-b at 12:00", self.at("11:30"), self.at("12:30")),
        ]
        for label, start, end in moves:
            try:
                moved = self.service.reschedule_booking(first.id, start, end, CUSTOMER_ID, "CUSTOMER")
                self.say(
                    f"{label}: now {moved.start_time.astimezone(self.zone):%H:%M}-"
                    f"{moved.end_time.astimezone(self.zone):%H:%M}, price {moved.price}"
                )
            except BookingError as exc:
                print(f"{YELLOW}{label}:{RESET}", end="")
                self.fail(exc)
        self.show_slots(60)

    SCENARIOS = {
        "availability": scenario_availability,
        "conflict": scenario_conflict,
        "lifecycle": scenario_lifecycle,
        "reschedule": scenario_reschedule,
    }

    def run(self, scenario: str) -> None:
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  VALET BOOKING - Scenario: {scenario}{RESET}")
        print(f"{DIM}  request {new_request_id()}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        self.SCENARIOS[scenario](self)


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline booking core demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Run one scenario instead of all of them",
    )
    args = parser.parse_args()

    names = [args.scenario] if args.scenario else list(ConsoleSession.SCENARIOS)
    for name in names:
        ConsoleSession().run(name)


if __name__ == "__main__":
    main()
