"""Account Resolver — maps a LINE user to the app account that claims it.

Looks at the account's own line_user_id field, not at the binding table:
the two are written by different sides and may disagree for a while.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from medbot.data.models import Account
    from medbot.ports.store_port import DocumentStore

logger = logging.getLogger(__name__)


class AccountResolver:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def resolve_account(self, line_user_id: str) -> Account | None:
        """Return the account referencing this LINE user, or None if not connected yet.

        StoreError propagates; handlers turn it into the service-unavailable reply.
        """
        account = await self._store.find_account_by_line_user(line_user_id)
        if account is None:
            logger.info("No account connected for LINE user %s", line_user_id)
        return account
