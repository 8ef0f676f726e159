"""
SQLite-backed booking store.

Each conditional insert, conditional move and status compare-and-set runs
inside its own ``BEGIN IMMEDIATE`` transaction, which takes the database
write lock before reading. Two workers (threads or processes) sharing the
same database file therefore cannot both see "no overlap" for the same bay.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional

from valet_booking.errors import InvalidStateError, NotFoundError
from valet_booking.ledger.store import UPCOMING_STATUSES, BookingStore
from valet_booking.schemas.booking_schema import ACTIVE_STATUSES, Booking, BookingStatus

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30.0

_SCHEMA = """
CREATE TABLE IF NOT EXISTS bookings (
    id TEXT PRIMARY KEY,
    requester_id TEXT NOT NULL,
    location_id TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    status TEXT NOT NULL,
    price TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_bookings_location_start ON bookings (location_id, start_time);
CREATE INDEX IF NOT EXISTS idx_bookings_requester_created ON bookings (requester_id, created_at);
CREATE INDEX IF NOT EXISTS idx_bookings_status_start ON bookings (status, start_time);
"""

_COLUMNS = (
    "id, requester_id, location_id, start_time, end_time, "
    "status, price, notes, created_at, updated_at"
)

_ACTIVE_PLACEHOLDERS = ", ".join("?" * len(ACTIVE_STATUSES))
_ACTIVE_VALUES = tuple(sorted(s.value for s in ACTIVE_STATUSES))


def _ts(value: datetime) -> str:
    """Fixed-width UTC text so SQL string comparison is chronological."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        id=row["id"],
        requester_id=row["requester_id"],
        location_id=row["location_id"],
        start_time=datetime.fromisoformat(row["start_time"]),
        end_time=datetime.fromisoformat(row["end_time"]),
        status=BookingStatus(row["status"]),
        price=Decimal(row["price"]),
        notes=row["notes"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SqliteBookingStore(BookingStore):
    def __init__(self, database_path: str) -> None:
        self.database_path = database_path
        directory = os.path.dirname(database_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.init_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a short-lived connection in autocommit mode.

        Transactions are opened explicitly with BEGIN IMMEDIATE where needed.
        """
        conn = sqlite3.connect(
            self.database_path,
            timeout=BUSY_TIMEOUT_SECONDS,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        with self._connection() as conn:
            # WAL is persistent in the database file once set.
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(_SCHEMA)
        logger.debug("Booking schema ready at %s", self.database_path)

    def insert_if_free(self, booking: Booking) -> bool:
        with self._connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.execute(
                    f"""
                    INSERT INTO bookings ({_COLUMNS})
                    SELECT ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
                    WHERE NOT EXISTS (
                        SELECT 1 FROM bookings
                        WHERE location_id = ?
                          AND status IN ({_ACTIVE_PLACEHOLDERS})
                          AND start_time < ?
                          AND ? < end_time
                    )
                    """,
                    (
                        booking.id,
                        booking.requester_id,
                        booking.location_id,
                        _ts(booking.start_time),
                        _ts(booking.end_time),
                        booking.status.value,
                        str(booking.price),
                        booking.notes,
                        _ts(booking.created_at),
                        _ts(booking.updated_at),
                        booking.location_id,
                        *_ACTIVE_VALUES,
                        _ts(booking.end_time),
                        _ts(booking.start_time),
                    ),
                )
                inserted = cursor.rowcount == 1
                conn.execute("COMMIT")
            except sqlite3.Error:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        logger.debug("Conditional insert of %s: %s", booking.id, "stored" if inserted else "overlap")
        return inserted

    def get(self, booking_id: str) -> Optional[Booking]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM bookings WHERE id = ?", (booking_id,)
            ).fetchone()
        return _row_to_booking(row) if row is not None else None

    def find_overlapping(
        self,
        location_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> list[Booking]:
        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM bookings
                WHERE location_id = ?
                  AND status IN ({_ACTIVE_PLACEHOLDERS})
                  AND start_time < ?
                  AND ? < end_time
                  AND id != ?
                ORDER BY start_time
                """,
                (location_id, *_ACTIVE_VALUES, _ts(end), _ts(start), exclude_booking_id or ""),
            ).fetchall()
        return [_row_to_booking(row) for row in rows]

    def compare_and_set_status(
        self,
        booking_id: str,
        expected: BookingStatus,
        new_status: BookingStatus,
        updated_at: datetime,
    ) -> Optional[Booking]:
        with self._connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.execute(
                    "UPDATE bookings SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                    (new_status.value, _ts(updated_at), booking_id, expected.value),
                )
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM bookings WHERE id = ?", (booking_id,)
                ).fetchone()
                conn.execute("COMMIT")
            except sqlite3.Error:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        if row is None:
            raise NotFoundError("Booking not found")
        if cursor.rowcount != 1:
            return None
        return _row_to_booking(row)

    def move_if_free(
        self,
        booking_id: str,
        expected: BookingStatus,
        start: datetime,
        end: datetime,
        price: Decimal,
        updated_at: datetime,
    ) -> Optional[Booking]:
        with self._connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.execute(
                    f"""
                    UPDATE bookings
                    SET start_time = ?, end_time = ?, price = ?, updated_at = ?
                    WHERE id = ?
                      AND status = ?
                      AND NOT EXISTS (
                          SELECT 1 FROM bookings AS other
                          WHERE other.location_id = bookings.location_id
                            AND other.id != bookings.id
                            AND other.status IN ({_ACTIVE_PLACEHOLDERS})
                            AND other.start_time < ?
                            AND ? < other.end_time
                      )
                    """,
                    (
                        _ts(start),
                        _ts(end),
                        str(price),
                        _ts(updated_at),
                        booking_id,
                        expected.value,
                        *_ACTIVE_VALUES,
                        _ts(end),
                        _ts(start),
                    ),
                )
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM bookings WHERE id = ?", (booking_id,)
                ).fetchone()
                conn.execute("COMMIT")
            except sqlite3.Error:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        if row is None:
            raise NotFoundError("Booking not found")
        if cursor.rowcount == 1:
            logger.debug("Moved booking %s", booking_id)
            return _row_to_booking(row)
        if row["status"] != expected.value:
            raise InvalidStateError(
                f"Booking status changed concurrently; it is no longer {expected.value}"
            )
        return None

    def update_notes(self, booking_id: str, notes: str, updated_at: datetime) -> Booking:
        with self._connection() as conn:
            conn.execute(
                "UPDATE bookings SET notes = ?, updated_at = ? WHERE id = ?",
                (notes, _ts(updated_at), booking_id),
            )
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM bookings WHERE id = ?", (booking_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError("Booking not found")
        return _row_to_booking(row)

    def list_by_requester(self, requester_id: str, offset: int, limit: int) -> list[Booking]:
        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM bookings
                WHERE requester_id = ?
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
                """,
                (requester_id, limit, offset),
            ).fetchall()
        return [_row_to_booking(row) for row in rows]

    def count_by_requester(self, requester_id: str) -> int:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM bookings WHERE requester_id = ?", (requester_id,)
            ).fetchone()
        return int(row[0])

    def list_by_location(
        self,
        location_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        query = f"SELECT {_COLUMNS} FROM bookings WHERE location_id = ?"
        params: list = [location_id]
        if start is not None:
            query += " AND start_time >= ?"
            params.append(_ts(start))
        if end is not None:
            query += " AND start_time <= ?"
            params.append(_ts(end))
        query += " ORDER BY start_time"
        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_booking(row) for row in rows]

    def list_by_status(self, status: BookingStatus) -> list[Booking]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM bookings WHERE status = ? ORDER BY start_time",
                (status.value,),
            ).fetchall()
        return [_row_to_booking(row) for row in rows]

    def list_upcoming(self, now: datetime, requester_id: Optional[str] = None) -> list[Booking]:
        placeholders = ", ".join("?" * len(UPCOMING_STATUSES))
        query = (
            f"SELECT {_COLUMNS} FROM bookings "
            f"WHERE status IN ({placeholders}) AND start_time >= ?"
        )
        params: list = [s.value for s in UPCOMING_STATUSES] + [_ts(now)]
        if requester_id is not None:
            query += " AND requester_id = ?"
            params.append(requester_id)
        query += " ORDER BY start_time"
        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_booking(row) for row in rows]

    def reset(self) -> None:
        """Delete all bookings. Used by test fixtures for isolation."""
        with self._connection() as conn:
            conn.execute("DELETE FROM bookings")
