"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, time, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from backend.domain.errors import StorageUnavailableError
from backend.domain.models import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BusinessHours,
    Customer,
    Room,
    Tenant,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_CENT = Decimal("0.01")


def to_storage_instant(value: datetime) -> str:
    """Serialize an aware datetime as fixed-width UTC text so SQL ordering holds."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_storage_instant(value: str) -> datetime:
    return datetime.fromisoformat(value)


# Operational failures that a retry may clear. Anything else (missing table,
# SQL syntax) is a defect and propagates unchanged.
_UNAVAILABLE_MARKERS = (
    "database is locked",
    "database table is locked",
    "database is busy",
    "unable to open database file",
    "disk i/o error",
    "database or disk is full",
)


def is_storage_unavailable(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _UNAVAILABLE_MARKERS)


def _to_storage_money(value: Decimal) -> str:
    return str(value.quantize(_CENT))


def _to_storage_clock(value: Optional[time]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%H:%M:%S")


def _from_storage_clock(value: Optional[str]) -> Optional[time]:
    if value is None:
        return None
    return time.fromisoformat(value)


def _row_to_tenant(row: sqlite3.Row) -> Tenant:
    return Tenant(
        tenant_id=int(row["id"]),
        name=str(row["name"]),
        slug=str(row["slug"]),
        email=str(row["email"]),
        is_active=bool(row["is_active"]),
        timezone=str(row["timezone"]),
        currency=str(row["currency"]),
        max_rooms=int(row["max_rooms"]),
        max_bookings_per_month=int(row["max_bookings_per_month"]),
    )


def _row_to_room(row: sqlite3.Row) -> Room:
    return Room(
        room_id=int(row["id"]),
        tenant_id=int(row["tenant_id"]),
        name=str(row["name"]),
        capacity=int(row["capacity"]),
        category=str(row["category"]),
        price_per_hour=Decimal(str(row["price_per_hour"])),
        is_active=bool(row["is_active"]),
        description=row["description"],
    )


def _row_to_business_hours(row: sqlite3.Row) -> BusinessHours:
    return BusinessHours(
        day_of_week=int(row["day_of_week"]),
        open_time=_from_storage_clock(row["open_time"]),
        close_time=_from_storage_clock(row["close_time"]),
        is_closed=bool(row["is_closed"]),
    )


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        booking_id=int(row["id"]),
        tenant_id=int(row["tenant_id"]),
        room_id=int(row["room_id"]),
        customer=Customer(
            name=str(row["customer_name"]),
            email=row["customer_email"],
            phone=row["customer_phone"],
        ),
        start_time=from_storage_instant(str(row["start_time"])),
        end_time=from_storage_instant(str(row["end_time"])),
        status=str(row["status"]),
        total_price=Decimal(str(row["total_price"])),
        notes=row["notes"],
        room_name=row["room_name"],
        room_category=row["room_category"],
    )


_BOOKING_SELECT = """
    SELECT
        b.id,
        b.tenant_id,
        b.room_id,
        b.customer_name,
        b.customer_email,
        b.customer_phone,
        b.start_time,
        b.end_time,
        b.status,
        b.notes,
        b.total_price,
        r.name AS room_name,
        r.category AS room_category
    FROM bookings AS b
    INNER JOIN rooms AS r
        ON r.id = b.room_id AND r.tenant_id = b.tenant_id
"""


class DataRepository:
    """Booking ledger over SQLite; every query is scoped by tenant id.

    Callers open a unit of work with :meth:`transaction` and pass the yielded
    connection to the query methods, so a conflict check and the write that
    depends on it always share one transaction.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are opened explicitly below.
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.storage_timeout_seconds,
            isolation_level=None,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def transaction(self, *, write: bool = True) -> Iterator[sqlite3.Connection]:
        """Run a block inside one SQLite transaction.

        Write transactions take the reserved lock up front (``BEGIN IMMEDIATE``)
        so concurrent writers are serialized for the whole
        check-then-write sequence. Any exception rolls the transaction back;
        operational failures (locked, busy, unreachable file) are reported as
        :class:`StorageUnavailableError`.
        """
        try:
            connection = self._connect()
        except sqlite3.OperationalError as exc:
            if not is_storage_unavailable(exc):
                raise
            logger.error("Storage connection failed: %s", exc)
            raise StorageUnavailableError(f"Booking storage is unavailable: {exc}") from exc

        try:
            connection.execute("BEGIN IMMEDIATE;" if write else "BEGIN;")
            yield connection
            connection.execute("COMMIT;")
        except sqlite3.OperationalError as exc:
            self._rollback(connection)
            if not is_storage_unavailable(exc):
                logger.exception("Storage operation failed")
                raise
            logger.error("Storage operation failed: %s", exc)
            raise StorageUnavailableError(f"Booking storage is unavailable: {exc}") from exc
        except BaseException:
            self._rollback(connection)
            raise
        finally:
            connection.close()

    @staticmethod
    def _rollback(connection: sqlite3.Connection) -> None:
        if connection.in_transaction:
            try:
                connection.execute("ROLLBACK;")
            except sqlite3.Error:
                logger.exception("Rollback failed")

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tenants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    slug TEXT NOT NULL UNIQUE,
                    email TEXT NOT NULL,
                    timezone TEXT NOT NULL,
                    currency TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
                    max_rooms INTEGER NOT NULL CHECK (max_rooms > 0),
                    max_bookings_per_month INTEGER NOT NULL
                        CHECK (max_bookings_per_month > 0),
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rooms (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    capacity INTEGER NOT NULL CHECK (capacity > 0),
                    category TEXT NOT NULL,
                    description TEXT,
                    price_per_hour TEXT NOT NULL DEFAULT '0.00',
                    is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (tenant_id) REFERENCES tenants(id) ON DELETE CASCADE,
                    UNIQUE (tenant_id, name),
                    UNIQUE (tenant_id, id)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS business_hours (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id INTEGER NOT NULL,
                    day_of_week INTEGER NOT NULL
                        CHECK (day_of_week >= 0 AND day_of_week <= 6),
                    open_time TEXT,
                    close_time TEXT,
                    is_closed INTEGER NOT NULL DEFAULT 0 CHECK (is_closed IN (0, 1)),
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (tenant_id) REFERENCES tenants(id) ON DELETE CASCADE,
                    UNIQUE (tenant_id, day_of_week),
                    CHECK (
                        is_closed = 1
                        OR (
                            open_time IS NOT NULL
                            AND close_time IS NOT NULL
                            AND close_time > open_time
                        )
                    )
                );
                """
            )
            # The composite key keeps a booking on a room of its own tenant.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS bookings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id INTEGER NOT NULL,
                    room_id INTEGER NOT NULL,
                    customer_name TEXT NOT NULL,
                    customer_email TEXT,
                    customer_phone TEXT,
                    start_time TEXT NOT NULL,
                    end_time TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'confirmed'
                        CHECK (status IN ('confirmed', 'pending', 'cancelled', 'completed')),
                    notes TEXT,
                    total_price TEXT NOT NULL DEFAULT '0.00',
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (tenant_id) REFERENCES tenants(id) ON DELETE CASCADE,
                    FOREIGN KEY (tenant_id, room_id)
                        REFERENCES rooms(tenant_id, id) ON DELETE CASCADE,
                    CHECK (end_time > start_time)
                );
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_rooms_tenant_active "
                "ON rooms(tenant_id, is_active);"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_bookings_tenant_room_start "
                "ON bookings(tenant_id, room_id, start_time);"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_bookings_tenant_status "
                "ON bookings(tenant_id, status);"
            )
        logger.info("Database initialized at %s", self._db_path)

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    def fetch_tenant_by_id(self, conn: sqlite3.Connection, tenant_id: int) -> Optional[Tenant]:
        row = conn.execute("SELECT * FROM tenants WHERE id = ?;", (tenant_id,)).fetchone()
        return None if row is None else _row_to_tenant(row)

    def fetch_tenant_by_slug(self, conn: sqlite3.Connection, slug: str) -> Optional[Tenant]:
        row = conn.execute("SELECT * FROM tenants WHERE slug = ?;", (slug,)).fetchone()
        return None if row is None else _row_to_tenant(row)

    def insert_tenant(
        self,
        conn: sqlite3.Connection,
        *,
        name: str,
        slug: str,
        email: str,
        timezone_name: str,
        currency: str,
        max_rooms: int,
        max_bookings_per_month: int,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO tenants (
                name, slug, email, timezone, currency, max_rooms, max_bookings_per_month
            )
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (name, slug, email, timezone_name, currency, max_rooms, max_bookings_per_month),
        )
        return int(cursor.lastrowid)

    def set_tenant_active(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        is_active: bool,
    ) -> bool:
        cursor = conn.execute(
            """
            UPDATE tenants
            SET is_active = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?;
            """,
            (int(is_active), tenant_id),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def fetch_room(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        room_id: int,
    ) -> Optional[Room]:
        row = conn.execute(
            "SELECT * FROM rooms WHERE id = ? AND tenant_id = ?;",
            (room_id, tenant_id),
        ).fetchone()
        return None if row is None else _row_to_room(row)

    def list_rooms(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        *,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> list[Room]:
        conditions = ["tenant_id = ?"]
        params: list[object] = [tenant_id]
        if category is not None:
            conditions.append("category = ?")
            params.append(category)
        if is_active is not None:
            conditions.append("is_active = ?")
            params.append(int(is_active))
        rows = conn.execute(
            f"SELECT * FROM rooms WHERE {' AND '.join(conditions)} ORDER BY name ASC;",
            tuple(params),
        ).fetchall()
        return [_row_to_room(row) for row in rows]

    def count_active_rooms(self, conn: sqlite3.Connection, tenant_id: int) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS count FROM rooms WHERE tenant_id = ? AND is_active = 1;",
            (tenant_id,),
        ).fetchone()
        return int(row["count"])

    def list_room_categories(self, conn: sqlite3.Connection, tenant_id: int) -> list[str]:
        rows = conn.execute(
            """
            SELECT DISTINCT category
            FROM rooms
            WHERE tenant_id = ? AND is_active = 1
            ORDER BY category ASC;
            """,
            (tenant_id,),
        ).fetchall()
        return [str(row["category"]) for row in rows]

    def insert_room(
        self,
        conn: sqlite3.Connection,
        *,
        tenant_id: int,
        name: str,
        capacity: int,
        category: str,
        price_per_hour: Decimal,
        description: Optional[str] = None,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO rooms (tenant_id, name, capacity, category, description, price_per_hour)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                tenant_id,
                name,
                capacity,
                category,
                description,
                _to_storage_money(price_per_hour),
            ),
        )
        return int(cursor.lastrowid)

    def save_room(self, conn: sqlite3.Connection, room: Room) -> None:
        conn.execute(
            """
            UPDATE rooms
            SET
                name = ?,
                capacity = ?,
                category = ?,
                description = ?,
                price_per_hour = ?,
                is_active = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ?;
            """,
            (
                room.name,
                room.capacity,
                room.category,
                room.description,
                _to_storage_money(room.price_per_hour),
                int(room.is_active),
                room.room_id,
                room.tenant_id,
            ),
        )

    # ------------------------------------------------------------------
    # Business hours
    # ------------------------------------------------------------------

    def fetch_business_hours(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        day_of_week: int,
    ) -> Optional[BusinessHours]:
        row = conn.execute(
            """
            SELECT day_of_week, open_time, close_time, is_closed
            FROM business_hours
            WHERE tenant_id = ? AND day_of_week = ?;
            """,
            (tenant_id, day_of_week),
        ).fetchone()
        return None if row is None else _row_to_business_hours(row)

    def list_business_hours(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
    ) -> list[BusinessHours]:
        rows = conn.execute(
            """
            SELECT day_of_week, open_time, close_time, is_closed
            FROM business_hours
            WHERE tenant_id = ?
            ORDER BY day_of_week ASC;
            """,
            (tenant_id,),
        ).fetchall()
        return [_row_to_business_hours(row) for row in rows]

    def replace_business_hours(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        hours: Iterable[BusinessHours],
    ) -> None:
        conn.execute("DELETE FROM business_hours WHERE tenant_id = ?;", (tenant_id,))
        conn.executemany(
            """
            INSERT INTO business_hours (tenant_id, day_of_week, open_time, close_time, is_closed)
            VALUES (?, ?, ?, ?, ?);
            """,
            [
                (
                    tenant_id,
                    record.day_of_week,
                    None if record.is_closed else _to_storage_clock(record.open_time),
                    None if record.is_closed else _to_storage_clock(record.close_time),
                    int(record.is_closed),
                )
                for record in hours
            ],
        )

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def fetch_booking(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        booking_id: int,
    ) -> Optional[Booking]:
        row = conn.execute(
            _BOOKING_SELECT + " WHERE b.id = ? AND b.tenant_id = ?;",
            (booking_id, tenant_id),
        ).fetchone()
        return None if row is None else _row_to_booking(row)

    def list_bookings(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        *,
        room_id: Optional[int] = None,
        status: Optional[str] = None,
        starts_from: Optional[datetime] = None,
        ends_until: Optional[datetime] = None,
    ) -> list[Booking]:
        conditions = ["b.tenant_id = ?"]
        params: list[object] = [tenant_id]
        if room_id is not None:
            conditions.append("b.room_id = ?")
            params.append(room_id)
        if status is not None:
            conditions.append("b.status = ?")
            params.append(status)
        if starts_from is not None:
            conditions.append("b.start_time >= ?")
            params.append(to_storage_instant(starts_from))
        if ends_until is not None:
            conditions.append("b.end_time <= ?")
            params.append(to_storage_instant(ends_until))
        rows = conn.execute(
            _BOOKING_SELECT
            + f" WHERE {' AND '.join(conditions)} ORDER BY b.start_time ASC, b.id ASC;",
            tuple(params),
        ).fetchall()
        return [_row_to_booking(row) for row in rows]

    def find_conflicting_booking_ids(
        self,
        conn: sqlite3.Connection,
        *,
        tenant_id: int,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_ids: Sequence[int] = (),
    ) -> list[int]:
        """Return active bookings in the room overlapping ``[start, end)``."""
        status_placeholders = ",".join("?" for _ in ACTIVE_BOOKING_STATUSES)
        query = f"""
            SELECT id
            FROM bookings
            WHERE tenant_id = ?
              AND room_id = ?
              AND status IN ({status_placeholders})
              AND start_time < ?
              AND end_time > ?
        """
        params: list[object] = [
            tenant_id,
            room_id,
            *ACTIVE_BOOKING_STATUSES,
            to_storage_instant(end),
            to_storage_instant(start),
        ]
        if exclude_booking_ids:
            exclude_placeholders = ",".join("?" for _ in exclude_booking_ids)
            query += f" AND id NOT IN ({exclude_placeholders})"
            params.extend(exclude_booking_ids)
        rows = conn.execute(query + " ORDER BY start_time ASC;", tuple(params)).fetchall()
        return [int(row["id"]) for row in rows]

    def count_active_bookings_starting_between(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        window_start: datetime,
        window_end: datetime,
    ) -> int:
        status_placeholders = ",".join("?" for _ in ACTIVE_BOOKING_STATUSES)
        row = conn.execute(
            f"""
            SELECT COUNT(*) AS count
            FROM bookings
            WHERE tenant_id = ?
              AND status IN ({status_placeholders})
              AND start_time >= ?
              AND start_time < ?;
            """,
            (
                tenant_id,
                *ACTIVE_BOOKING_STATUSES,
                to_storage_instant(window_start),
                to_storage_instant(window_end),
            ),
        ).fetchone()
        return int(row["count"])

    def count_future_active_bookings(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        room_id: int,
        now: datetime,
    ) -> int:
        status_placeholders = ",".join("?" for _ in ACTIVE_BOOKING_STATUSES)
        row = conn.execute(
            f"""
            SELECT COUNT(*) AS count
            FROM bookings
            WHERE tenant_id = ?
              AND room_id = ?
              AND status IN ({status_placeholders})
              AND end_time > ?;
            """,
            (tenant_id, room_id, *ACTIVE_BOOKING_STATUSES, to_storage_instant(now)),
        ).fetchone()
        return int(row["count"])

    def insert_booking(
        self,
        conn: sqlite3.Connection,
        *,
        tenant_id: int,
        room_id: int,
        customer: Customer,
        start: datetime,
        end: datetime,
        status: str,
        total_price: Decimal,
        notes: Optional[str] = None,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO bookings (
                tenant_id,
                room_id,
                customer_name,
                customer_email,
                customer_phone,
                start_time,
                end_time,
                status,
                notes,
                total_price
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                tenant_id,
                room_id,
                customer.name,
                customer.email,
                customer.phone,
                to_storage_instant(start),
                to_storage_instant(end),
                status,
                notes,
                _to_storage_money(total_price),
            ),
        )
        return int(cursor.lastrowid)

    def save_booking(self, conn: sqlite3.Connection, booking: Booking) -> None:
        """Persist every mutable column of an existing booking."""
        conn.execute(
            """
            UPDATE bookings
            SET
                room_id = ?,
                customer_name = ?,
                customer_email = ?,
                customer_phone = ?,
                start_time = ?,
                end_time = ?,
                status = ?,
                notes = ?,
                total_price = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ?;
            """,
            (
                booking.room_id,
                booking.customer.name,
                booking.customer.email,
                booking.customer.phone,
                to_storage_instant(booking.start_time),
                to_storage_instant(booking.end_time),
                booking.status,
                booking.notes,
                _to_storage_money(booking.total_price),
                booking.booking_id,
                booking.tenant_id,
            ),
        )

    def set_booking_status(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        booking_id: int,
        status: str,
    ) -> bool:
        cursor = conn.execute(
            """
            UPDATE bookings
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ?;
            """,
            (status, booking_id, tenant_id),
        )
        return cursor.rowcount > 0

    def delete_booking(
        self,
        conn: sqlite3.Connection,
        tenant_id: int,
        booking_id: int,
    ) -> bool:
        cursor = conn.execute(
            "DELETE FROM bookings WHERE id = ? AND tenant_id = ?;",
            (booking_id, tenant_id),
        )
        return cursor.rowcount > 0
