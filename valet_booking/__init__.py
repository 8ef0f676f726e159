"""Valet bay booking core: schedules, availability, reservations and status lifecycle."""

__version__ = "0.1.0"
