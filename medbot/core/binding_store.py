"""
MedBot — Binding Store.

Every inbound event registers or refreshes its LINE user's binding.
A new binding starts unclaimed (no account) with source chat_bot; the
companion app attaches the account later.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from medbot.data.models import Binding, BindingSource
from medbot.ports.store_port import StoreError

if TYPE_CHECKING:
    from medbot.ports.store_port import DocumentStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BindingStore:
    """Idempotent upsert of LINE user bindings."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    async def ensure_binding(self, line_user_id: str) -> Binding | None:
        """Create the binding on first contact, refresh last_active_at after.

        Read-then-write, not atomic: concurrent first events from the same
        user may both insert, and the store collapses them into one row.
        Returns None when the store fails, so callers can keep going.
        """
        now = self._clock()
        try:
            existing = await self._store.find_binding(line_user_id)
            if existing is None:
                binding = await self._store.insert_binding(
                    Binding(
                        line_user_id=line_user_id,
                        account_id=None,
                        bound_at=now,
                        last_active_at=now,
                        source=BindingSource.CHAT_BOT,
                    )
                )
                logger.info("Created binding #%s for LINE user %s", binding.id, line_user_id)
                return binding

            active_at = max(existing.last_active_at, now)
            await self._store.touch_binding(existing.id, active_at)
            existing.last_active_at = active_at
            logger.debug("Refreshed binding #%s for LINE user %s", existing.id, line_user_id)
            return existing
        except StoreError as exc:
            logger.error("Could not ensure binding for %s: %s", line_user_id, exc)
            return None
