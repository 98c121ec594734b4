"""
MedBot — Data Models.

Accounts, reminders and medicine records are owned by the companion app;
the bot reads them and appends medicine records. Bindings are the only
records the bot creates on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class BindingSource(str, Enum):
    CHAT_BOT = "chat_bot"
    APP = "app"


@dataclass
class Binding:
    """Association between a LINE user and (eventually) an app account.

    Created by the bot on the first event from an unseen LINE user, with
    no account attached; the app side fills in account_id when the user
    connects.
    """

    line_user_id: str
    bound_at: datetime
    last_active_at: datetime
    source: BindingSource = BindingSource.CHAT_BOT
    account_id: str | None = None
    id: int | None = None


@dataclass
class Account:
    """App-side user record, found by its stored LINE user id."""

    id: str
    line_user_id: str | None = None
    display_name: str = ""
    created_at: datetime | None = None


@dataclass
class Reminder:
    """A daily medicine-taking instruction belonging to an account."""

    id: str
    hour: int              # 0-23
    minute: int            # 0-59
    medicine_name: str     # e.g. "Aspirin"
    dosage: str            # e.g. "100mg"

    @property
    def time_label(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass
class MedicineRecord:
    """Append-only log entry of a dose actually taken."""

    medicine_name: str
    dosage: str
    date: str                          # ISO date YYYY-MM-DD
    time: str                          # local clock HH:MM
    notes: str = ""
    created_at: datetime | None = None
    id: int | None = None
