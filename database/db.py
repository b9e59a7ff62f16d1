import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterator

from backend.errors import ConflictError, StorageError, ValidationError
from database.models import (
    AttendanceRecord,
    AttendanceStats,
    DeviceActivity,
    Role,
    UserAccount,
    UserCredentials,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
ATTENDANCE_PAGE_SIZE = 200
USERS_PAGE_SIZE = 200
UNKNOWN_DEVICE = "unknown"
NO_ACTIVE_DEVICE = "N/A"
ALL_DEVICES = "all"
WEEK_WINDOW_DAYS = 7
ACTIVE_DEVICE_WINDOW = timedelta(hours=24)

_ATTENDANCE_COLUMNS = "id, barcode, device_id, timestamp"
_USER_COLUMNS = "id, username, role, created_at"


def parse_day(value: str, field: str = "date") -> date:
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise ValidationError(
            f"Invalid {field}; expected YYYY-MM-DD.",
            code="invalid_date",
        ) from None


def _day_start(day: date) -> str:
    return f"{day.isoformat()} 00:00:00"


def _row_to_record(row: tuple) -> AttendanceRecord:
    return AttendanceRecord(
        id=int(row[0]),
        barcode=row[1],
        device_id=row[2],
        timestamp=row[3],
    )


def _row_to_account(row: tuple) -> UserAccount:
    return UserAccount(
        id=int(row[0]),
        username=row[1],
        role=Role(row[2]),
        created_at=row[3],
    )


class AttendanceStore:
    """SQLite-backed storage for attendance scans and user accounts.

    The store is the only writer of both tables. Each operation opens its own
    short-lived connection, so one instance can be shared by every request
    handler; SQLite serializes concurrent writers.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
        timeout: float = 5.0,
    ):
        self.db_path = Path(db_path)
        self._clock = clock
        self._timeout = timeout

    def connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=self._timeout, check_same_thread=False)

    def _now_text(self) -> str:
        return self._clock().strftime(TIMESTAMP_FORMAT)

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self.connect()
        except sqlite3.Error as exc:
            logger.exception("Could not open database at %s", self.db_path)
            raise StorageError() from exc

        try:
            yield conn.cursor()
            conn.commit()
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise ConflictError("Record already exists.") from exc
        except sqlite3.Error as exc:
            conn.rollback()
            logger.exception("Database operation failed")
            raise StorageError() from exc
        finally:
            conn.close()

    def create_tables(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._cursor() as cur:
            cur.execute("""
            CREATE TABLE IF NOT EXISTS attendance (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                barcode TEXT NOT NULL,
                device_id TEXT NOT NULL,
                timestamp TEXT NOT NULL              -- YYYY-MM-DD HH:MM:SS, server local
            )
            """)
            cur.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin')),
                created_at TEXT NOT NULL
            )
            """)
            cur.execute("CREATE INDEX IF NOT EXISTS idx_attendance_timestamp ON attendance(timestamp)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_attendance_device ON attendance(device_id)")
        logger.info("Database initialized at %s", self.db_path)

    # -----------------------------
    # Attendance
    # -----------------------------
    def insert_attendance(self, barcode: str | None, device_id: str | None = None) -> AttendanceRecord:
        if not barcode:
            raise ValidationError("Missing barcode.", code="missing_barcode")
        device = device_id or UNKNOWN_DEVICE

        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO attendance (barcode, device_id, timestamp)
                VALUES (?, ?, ?)
                """,
                (barcode, device, self._now_text()),
            )
            cur.execute(
                f"SELECT {_ATTENDANCE_COLUMNS} FROM attendance WHERE id = ?",
                (cur.lastrowid,),
            )
            row = cur.fetchone()
        return _row_to_record(row)

    def query_attendance(
        self,
        *,
        date: str | None = None,
        device_id: str | None = None,
        start: str | None = None,
        end: str | None = None,
        limit: int | None = ATTENDANCE_PAGE_SIZE,
    ) -> list[AttendanceRecord]:
        """
        Newest-first attendance history. Filters combine with AND; an absent
        filter imposes no constraint. ``limit=None`` returns every match.
        """
        where_sql, params = _build_attendance_where_clause(
            date=date,
            device_id=device_id,
            start=start,
            end=end,
        )
        query = f"""
            SELECT {_ATTENDANCE_COLUMNS}
            FROM attendance
            WHERE {where_sql}
            ORDER BY timestamp DESC, id DESC
        """
        if limit is not None:
            query += " LIMIT ?"
            params.append(max(1, int(limit)))

        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [_row_to_record(r) for r in rows]

    def query_attendance_range(
        self,
        *,
        start: str | None = None,
        end: str | None = None,
        device_id: str | None = None,
    ) -> list[AttendanceRecord]:
        if device_id == ALL_DEVICES:
            device_id = None
        return self.query_attendance(start=start, end=end, device_id=device_id, limit=None)

    def list_devices(self) -> list[str]:
        with self._cursor() as cur:
            cur.execute("SELECT DISTINCT device_id FROM attendance ORDER BY device_id")
            rows = cur.fetchall()
        return [r[0] for r in rows]

    def compute_stats(self) -> AttendanceStats:
        now = self._clock()
        today = now.date()
        today_bounds = (_day_start(today), _day_start(today + timedelta(days=1)))

        with self._cursor() as cur:
            total = _scalar(cur, "SELECT COUNT(*) FROM attendance")
            total_today = _scalar(
                cur,
                "SELECT COUNT(*) FROM attendance WHERE timestamp >= ? AND timestamp < ?",
                today_bounds,
            )
            total_week = _scalar(
                cur,
                "SELECT COUNT(*) FROM attendance WHERE timestamp >= ?",
                (_day_start(today - timedelta(days=WEEK_WINDOW_DAYS)),),
            )
            unique_today = _scalar(
                cur,
                """
                SELECT COUNT(DISTINCT barcode)
                FROM attendance
                WHERE timestamp >= ? AND timestamp < ?
                """,
                today_bounds,
            )
            cur.execute(
                """
                SELECT device_id, COUNT(*) AS cnt
                FROM attendance
                WHERE timestamp >= ?
                GROUP BY device_id
                ORDER BY cnt DESC, device_id ASC
                LIMIT 1
                """,
                ((now - ACTIVE_DEVICE_WINDOW).strftime(TIMESTAMP_FORMAT),),
            )
            active = cur.fetchone()

        return AttendanceStats(
            total=total,
            total_today=total_today,
            total_week=total_week,
            unique_today=unique_today,
            most_active_device=active[0] if active else NO_ACTIVE_DEVICE,
        )

    def device_activity(self) -> list[DeviceActivity]:
        today = self._clock().date()
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT device_id, COUNT(*) AS scans_today
                FROM attendance
                WHERE timestamp >= ? AND timestamp < ?
                GROUP BY device_id
                ORDER BY scans_today DESC, device_id ASC
                """,
                (_day_start(today), _day_start(today + timedelta(days=1))),
            )
            rows = cur.fetchall()
        return [DeviceActivity(device_id=r[0], scans_today=int(r[1])) for r in rows]

    # -----------------------------
    # Users
    # -----------------------------
    def create_user(self, username: str, password_hash: str, role: Role = Role.USER) -> UserAccount:
        if not username:
            raise ValidationError("Username is required.", code="missing_username")

        try:
            with self._cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO users (username, password_hash, role, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (username, password_hash, role.value, self._now_text()),
                )
                cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (cur.lastrowid,))
                row = cur.fetchone()
        except ConflictError:
            raise ConflictError("User exists.", code="user_exists") from None
        return _row_to_account(row)

    def ensure_user(self, username: str, password_hash: str, role: Role) -> bool:
        """Insert the account unless the username is taken. Returns True if inserted."""
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT OR IGNORE INTO users (username, password_hash, role, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (username, password_hash, role.value, self._now_text()),
            )
            return cur.rowcount > 0

    def get_user(self, username: str) -> UserAccount | None:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE username = ?", (username,))
            row = cur.fetchone()
        return _row_to_account(row) if row else None

    def get_user_credentials(self, username: str) -> UserCredentials | None:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_USER_COLUMNS}, password_hash FROM users WHERE username = ?",
                (username,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return UserCredentials(account=_row_to_account(row[:4]), password_hash=row[4])

    def list_users(self, limit: int = USERS_PAGE_SIZE) -> list[UserAccount]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_USER_COLUMNS} FROM users ORDER BY id DESC LIMIT ?",
                (max(1, int(limit)),),
            )
            rows = cur.fetchall()
        return [_row_to_account(r) for r in rows]

    def update_password_hash(self, username: str, password_hash: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE users SET password_hash = ? WHERE username = ?",
                (password_hash, username),
            )
            return cur.rowcount > 0

    def delete_user(self, username: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM users WHERE username = ?", (username,))
            return cur.rowcount > 0


def _scalar(cur: sqlite3.Cursor, query: str, params: tuple = ()) -> int:
    cur.execute(query, params)
    row = cur.fetchone()
    return int(row[0] or 0) if row else 0


def _build_attendance_where_clause(
    *,
    date: str | None = None,
    device_id: str | None = None,
    start: str | None = None,
    end: str | None = None,
) -> tuple[str, list[Any]]:
    where = ["1=1"]
    params: list[Any] = []

    if date:
        day = parse_day(date, "date")
        where.append("timestamp >= ? AND timestamp < ?")
        params.extend([_day_start(day), _day_start(day + timedelta(days=1))])
    if start:
        where.append("timestamp >= ?")
        params.append(_day_start(parse_day(start, "start")))
    if end:
        where.append("timestamp < ?")
        params.append(_day_start(parse_day(end, "end") + timedelta(days=1)))
    if device_id:
        where.append("device_id = ?")
        params.append(device_id)

    return " AND ".join(where), params
