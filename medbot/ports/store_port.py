"""Document store port — abstract interface for per-user persisted state.

Core modules depend on this protocol, never on a specific database.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from medbot.data.models import Account, Binding, MedicineRecord, Reminder


class StoreError(Exception):
    """Raised when any document store operation fails."""


class StoreUnavailableError(StoreError):
    """Raised when the store was never initialized."""


class DocumentStore(Protocol):
    """Abstract store interface used by core modules."""

    # Bindings (owned by the bot)

    async def find_binding(self, line_user_id: str) -> Binding | None: ...

    async def insert_binding(self, binding: Binding) -> Binding: ...

    async def touch_binding(self, binding_id: int, active_at: datetime) -> None: ...

    # Accounts and reminders (owned by the app side, read-only here)

    async def find_account_by_line_user(self, line_user_id: str) -> Account | None: ...

    async def list_reminders(self, account_id: str) -> list[Reminder]: ...

    async def get_reminder(self, account_id: str, reminder_id: str) -> Reminder | None: ...

    # Medicine records (append-only)

    async def add_medicine_record(
        self, account_id: str, record: MedicineRecord
    ) -> MedicineRecord: ...

    async def list_medicine_records(
        self, account_id: str, limit: int
    ) -> list[MedicineRecord]: ...

    async def count_medicine_records(self, account_id: str) -> int: ...
