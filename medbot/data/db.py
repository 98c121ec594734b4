"""
MedBot — SQLite Document Store.

Implements DocumentStore on a SQLite file shared with the companion app.
The app side owns users and reminders; the bot owns bindings and appends
medicine records. sqlite3 is synchronous, so every public coroutine runs
its query through asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from medbot.data.models import Account, Binding, BindingSource, MedicineRecord, Reminder
from medbot.ports.store_port import StoreError, StoreUnavailableError

logger = logging.getLogger(__name__)


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class SQLiteStore:
    """SQLite-backed DocumentStore."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from medbot.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the tables if they don't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bindings (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    line_user_id    TEXT NOT NULL UNIQUE,
                    account_id      TEXT,
                    bound_at        TEXT NOT NULL,
                    last_active_at  TEXT NOT NULL,
                    source          TEXT NOT NULL DEFAULT 'chat_bot'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id              TEXT PRIMARY KEY,
                    line_user_id    TEXT,
                    display_name    TEXT NOT NULL DEFAULT '',
                    created_at      TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id              TEXT NOT NULL,
                    user_id         TEXT NOT NULL,
                    hour            INTEGER NOT NULL,
                    minute          INTEGER NOT NULL,
                    medicine_name   TEXT NOT NULL,
                    dosage          TEXT NOT NULL DEFAULT '',
                    PRIMARY KEY (user_id, id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS medicine_records (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id         TEXT NOT NULL,
                    medicine_name   TEXT NOT NULL,
                    dosage          TEXT NOT NULL DEFAULT '',
                    date            TEXT NOT NULL,
                    time            TEXT NOT NULL DEFAULT '',
                    notes           TEXT NOT NULL DEFAULT '',
                    created_at      TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_users_line_user_id ON users (line_user_id)"
            )
        logger.debug("Store tables initialized at %s", self._db_path)

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite error: {exc}") from exc

    # --- Row mappers ---

    @staticmethod
    def _row_to_binding(row: sqlite3.Row) -> Binding:
        return Binding(
            id=row["id"],
            line_user_id=row["line_user_id"],
            account_id=row["account_id"],
            bound_at=_parse_ts(row["bound_at"]),
            last_active_at=_parse_ts(row["last_active_at"]),
            source=BindingSource(row["source"]),
        )

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            line_user_id=row["line_user_id"],
            display_name=row["display_name"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=row["id"],
            hour=row["hour"],
            minute=row["minute"],
            medicine_name=row["medicine_name"],
            dosage=row["dosage"],
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> MedicineRecord:
        return MedicineRecord(
            id=row["id"],
            medicine_name=row["medicine_name"],
            dosage=row["dosage"],
            date=row["date"],
            time=row["time"],
            notes=row["notes"],
            created_at=_parse_ts(row["created_at"]),
        )

    # --- Bindings ---

    def _find_binding(self, line_user_id: str) -> Binding | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM bindings WHERE line_user_id = ?", (line_user_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_binding(row)

    def _insert_binding(self, binding: Binding) -> Binding:
        # A concurrent insert for the same LINE user collapses into a refresh.
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO bindings
                    (line_user_id, account_id, bound_at, last_active_at, source)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (line_user_id) DO UPDATE SET
                    last_active_at = MAX(last_active_at, excluded.last_active_at)
                """,
                (
                    binding.line_user_id, binding.account_id,
                    _ts(binding.bound_at), _ts(binding.last_active_at),
                    binding.source.value,
                ),
            )
            row = conn.execute(
                "SELECT * FROM bindings WHERE line_user_id = ?", (binding.line_user_id,)
            ).fetchone()
        return self._row_to_binding(row)

    def _touch_binding(self, binding_id: int, active_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE bindings SET last_active_at = MAX(last_active_at, ?) WHERE id = ?",
                (_ts(active_at), binding_id),
            )

    async def find_binding(self, line_user_id: str) -> Binding | None:
        return await self._run(self._find_binding, line_user_id)

    async def insert_binding(self, binding: Binding) -> Binding:
        return await self._run(self._insert_binding, binding)

    async def touch_binding(self, binding_id: int, active_at: datetime) -> None:
        await self._run(self._touch_binding, binding_id, active_at)

    # --- Accounts and reminders ---

    def _find_account_by_line_user(self, line_user_id: str) -> Account | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE line_user_id = ? ORDER BY created_at LIMIT 1",
                (line_user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def _list_reminders(self, account_id: str) -> list[Reminder]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM reminders WHERE user_id = ? ORDER BY hour, minute, id",
                (account_id,),
            ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def _get_reminder(self, account_id: str, reminder_id: str) -> Reminder | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM reminders WHERE user_id = ? AND id = ?",
                (account_id, reminder_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_reminder(row)

    async def find_account_by_line_user(self, line_user_id: str) -> Account | None:
        return await self._run(self._find_account_by_line_user, line_user_id)

    async def list_reminders(self, account_id: str) -> list[Reminder]:
        return await self._run(self._list_reminders, account_id)

    async def get_reminder(self, account_id: str, reminder_id: str) -> Reminder | None:
        return await self._run(self._get_reminder, account_id, reminder_id)

    # --- Medicine records ---

    def _add_medicine_record(self, account_id: str, record: MedicineRecord) -> MedicineRecord:
        created_at = record.created_at or datetime.now(timezone.utc)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO medicine_records
                    (user_id, medicine_name, dosage, date, time, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    account_id, record.medicine_name, record.dosage,
                    record.date, record.time, record.notes, _ts(created_at),
                ),
            )
            record_id = cursor.lastrowid

        saved = MedicineRecord(
            id=record_id,
            medicine_name=record.medicine_name,
            dosage=record.dosage,
            date=record.date,
            time=record.time,
            notes=record.notes,
            created_at=created_at,
        )
        logger.info(
            "Medicine record #%d added for account %s: '%s'",
            record_id, account_id, record.medicine_name,
        )
        return saved

    def _list_medicine_records(self, account_id: str, limit: int) -> list[MedicineRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM medicine_records WHERE user_id = ?
                ORDER BY date DESC, time DESC, id DESC
                LIMIT ?
                """,
                (account_id, limit),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def _count_medicine_records(self, account_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM medicine_records WHERE user_id = ?", (account_id,)
            ).fetchone()
        return row[0]

    async def add_medicine_record(
        self, account_id: str, record: MedicineRecord
    ) -> MedicineRecord:
        return await self._run(self._add_medicine_record, account_id, record)

    async def list_medicine_records(
        self, account_id: str, limit: int
    ) -> list[MedicineRecord]:
        return await self._run(self._list_medicine_records, account_id, limit)

    async def count_medicine_records(self, account_id: str) -> int:
        return await self._run(self._count_medicine_records, account_id)

    # --- App-side provisioning (the companion app writes these) ---

    def add_account(
        self,
        account_id: str,
        line_user_id: str | None = None,
        display_name: str = "",
    ) -> Account:
        """Register an app account, optionally already linked to a LINE user."""
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO users (id, line_user_id, display_name, created_at) VALUES (?, ?, ?, ?)",
                (account_id, line_user_id, display_name, _ts(now)),
            )
        logger.info("Account registered: %s (LINE user %s)", account_id, line_user_id)
        return Account(
            id=account_id,
            line_user_id=line_user_id,
            display_name=display_name,
            created_at=now,
        )

    def add_reminder(
        self,
        account_id: str,
        reminder_id: str,
        hour: int,
        minute: int,
        medicine_name: str,
        dosage: str = "",
    ) -> Reminder:
        """Insert a reminder under an account."""
        if not 0 <= hour <= 23 or not 0 <= minute <= 59:
            raise ValueError(f"Invalid reminder time {hour}:{minute}")
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO reminders (id, user_id, hour, minute, medicine_name, dosage)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (reminder_id, account_id, hour, minute, medicine_name, dosage),
            )
        logger.info("Reminder %s added for account %s", reminder_id, account_id)
        return Reminder(
            id=reminder_id,
            hour=hour,
            minute=minute,
            medicine_name=medicine_name,
            dosage=dosage,
        )


class UnavailableStore:
    """Stand-in DocumentStore used when the real store failed to open.

    Every operation raises StoreUnavailableError carrying the startup
    failure reason, so callers degrade the same way as on a failed query.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def _fail(self) -> StoreUnavailableError:
        return StoreUnavailableError(f"Store unavailable: {self.reason}")

    async def find_binding(self, line_user_id: str) -> Binding | None:
        raise self._fail()

    async def insert_binding(self, binding: Binding) -> Binding:
        raise self._fail()

    async def touch_binding(self, binding_id: int, active_at: datetime) -> None:
        raise self._fail()

    async def find_account_by_line_user(self, line_user_id: str) -> Account | None:
        raise self._fail()

    async def list_reminders(self, account_id: str) -> list[Reminder]:
        raise self._fail()

    async def get_reminder(self, account_id: str, reminder_id: str) -> Reminder | None:
        raise self._fail()

    async def add_medicine_record(
        self, account_id: str, record: MedicineRecord
    ) -> MedicineRecord:
        raise self._fail()

    async def list_medicine_records(
        self, account_id: str, limit: int
    ) -> list[MedicineRecord]:
        raise self._fail()

    async def count_medicine_records(self, account_id: str) -> int:
        raise self._fail()


def open_store(db_path: str | None = None) -> SQLiteStore | UnavailableStore:
    """Open the SQLite store, or return an UnavailableStore on failure."""
    try:
        return SQLiteStore(db_path=db_path)
    except (sqlite3.Error, OSError) as exc:
        logger.error("Failed to open store at %s: %s", db_path, exc)
        return UnavailableStore(str(exc))
