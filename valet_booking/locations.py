"""
Location directory consulted by the ledger and availability generator.

Locations are owned by an external collaborator (CRM or admin backend);
the core only reads them. The in-memory directory is used by tests and
the console demo.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from valet_booking.errors import NotFoundError
from valet_booking.schemas.location_schema import Location

logger = logging.getLogger(__name__)


class LocationDirectory(ABC):
    """Read-side contract for location lookups."""

    @abstractmethod
    def get(self, location_id: str) -> Optional[Location]:
        """Return the location, or None if it does not exist."""

    def require(self, location_id: str) -> Location:
        location = self.get(location_id)
        if location is None:
            raise NotFoundError("Location not found")
        return location


class InMemoryLocationDirectory(LocationDirectory):
    def __init__(self, locations: Optional[list[Location]] = None) -> None:
        self._lock = threading.Lock()
        self._locations: dict[str, Location] = {}
        for location in locations or []:
            self.add(location)

    def get(self, location_id: str) -> Optional[Location]:
        return self._locations.get(location_id)

    def add(self, location: Location) -> Location:
        with self._lock:
            self._locations[location.id] = location
        logger.debug("Location registered: %s (%s)", location.id, location.name)
        return location

    def set_active(self, location_id: str, is_active: bool) -> Location:
        with self._lock:
            current = self._locations.get(location_id)
            if current is None:
                raise NotFoundError("Location not found")
            updated = current.model_copy(update={"is_active": is_active})
            self._locations[location_id] = updated
        logger.info("Location %s active=%s", location_id, is_active)
        return updated

    def all(self) -> list[Location]:
        return sorted(self._locations.values(), key=lambda loc: loc.name)

    def reset(self) -> None:
        """Clear all locations. Used by test fixtures for isolation."""
        with self._lock:
            self._locations.clear()
