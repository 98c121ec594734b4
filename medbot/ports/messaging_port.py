"""Messaging port — abstract interface for sending replies to chat users.

Core modules depend on this protocol, never on a specific chat platform.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from medbot.core.replies import Reply


class MessagingError(Exception):
    """Raised when the chat platform rejects or fails a send."""


class MessagingPort(Protocol):
    """Abstract outbound messaging interface used by core modules."""

    async def reply(self, reply_token: str, message: Reply) -> None: ...

    async def push(self, line_user_id: str, message: Reply) -> None: ...
