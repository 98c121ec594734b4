"""Shared test fixtures and configuration.

Sets up fake environment variables so medbot.config doesn't sys.exit(),
and provides common fixtures like a temp store and a mocked messaging port.
"""

import os

# Patch env vars BEFORE any medbot imports
os.environ.setdefault("LINE_CHANNEL_ACCESS_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LINE_CHANNEL_SECRET", "")
os.environ.setdefault("DATABASE_PATH", "data/test-medbot.db")
os.environ.setdefault("TIMEZONE", "Asia/Taipei")

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

TAIPEI = ZoneInfo("Asia/Taipei")
LINE_USER = "U1234567890abcdef"


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_medbot.db")


@pytest.fixture
def store(tmp_db_path):
    """Return a SQLiteStore instance backed by a temp file."""
    from medbot.data.db import SQLiteStore
    return SQLiteStore(db_path=tmp_db_path)


@pytest.fixture
def connected_store(store):
    """Store with an account linked to LINE_USER and one Aspirin reminder (R1)."""
    store.add_account("acct-1", line_user_id=LINE_USER, display_name="Mei")
    store.add_reminder("acct-1", "R1", 8, 30, "Aspirin", "100mg")
    return store


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2026-10-19 08:45 Taipei time."""
    return lambda: datetime(2026, 10, 19, 8, 45, tzinfo=TAIPEI)


@pytest.fixture
def messaging():
    """Mocked MessagingPort."""
    port = MagicMock()
    port.reply = AsyncMock()
    port.push = AsyncMock()
    return port
