"""
MedBot — Event Dispatcher.

Routes each inbound LINE event to a reply handler:

- message events with text go through keyword classification
- postback events are decoded with the action catalog and routed by verb
- everything else is logged and left unanswered

Every event first registers/refreshes its sender's binding. Each event is
attempted exactly once; a handler that raises is logged and the event is
dropped without a reply.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING

from medbot.core.actions import Verb, decode
from medbot.ports.messaging_port import MessagingError

if TYPE_CHECKING:
    from medbot.bot.schemas import WebhookEvent
    from medbot.core.binding_store import BindingStore
    from medbot.core.replies import Reply
    from medbot.core.reply_service import ReplyService
    from medbot.ports.messaging_port import MessagingPort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Text intent classification
# ---------------------------------------------------------------------------


class Intent(str, Enum):
    GREETING = "greeting"
    TODAY_REMINDERS = "today_reminders"
    RECORDS = "records"
    ACCOUNT = "account"
    MAIN_MENU = "main_menu"


GREETINGS = frozenset({"你好", "hi", "hello"})

# Checked in order; the first rule with a keyword contained in the text wins.
KEYWORD_RULES: list[tuple[tuple[str, ...], Intent]] = [
    (("提醒", "今日"), Intent.TODAY_REMINDERS),
    (("記錄", "服藥"), Intent.RECORDS),
    (("帳戶", "連接", "綁定"), Intent.ACCOUNT),
    (("選單", "功能", "幫助"), Intent.MAIN_MENU),
]


def classify_text(text: str) -> Intent:
    """Map free text to an intent. Unmatched text falls back to the main menu."""
    if text in GREETINGS:
        return Intent.GREETING
    for keywords, intent in KEYWORD_RULES:
        if any(keyword in text for keyword in keywords):
            return intent
    return Intent.MAIN_MENU


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class EventDispatcher:
    """Turns webhook events into replies and sends them."""

    def __init__(
        self,
        bindings: BindingStore,
        replies: ReplyService,
        messaging: MessagingPort,
    ) -> None:
        self._bindings = bindings
        self._replies = replies
        self._messaging = messaging

    async def handle_events(self, events: list[WebhookEvent]) -> None:
        """Handle a webhook batch concurrently. Never raises."""
        if not events:
            return
        await asyncio.gather(*(self.handle_event(event) for event in events))
        logger.info("Processed %d webhook events", len(events))

    async def handle_event(self, event: WebhookEvent) -> None:
        """Dispatch one event and send its reply, if any. Never raises."""
        try:
            reply = await self.dispatch(event)
        except Exception:
            logger.exception("Handler failed for %s event from %s", event.type, event.user_id)
            return

        if reply is None:
            return
        if not event.reply_token:
            logger.warning("No reply token on %s event from %s", event.type, event.user_id)
            return

        try:
            await self._messaging.reply(event.reply_token, reply)
        except MessagingError as exc:
            logger.error("Reply to %s failed: %s", event.user_id, exc)
        except Exception:
            logger.exception("Unexpected error replying to %s", event.user_id)

    async def dispatch(self, event: WebhookEvent) -> Reply | None:
        """Build the reply for an event. None means nothing should be sent."""
        user_id = event.user_id
        if user_id:
            await self._bindings.ensure_binding(user_id)

        if event.type == "message":
            message = event.message
            if message is None or message.type != "text" or message.text is None:
                logger.info("Ignoring non-text message from %s", user_id)
                return None
            if not user_id:
                logger.warning("Ignoring message event without a user id")
                return None
            return await self._route_text(user_id, message.text)

        if event.type == "postback":
            if not user_id:
                logger.warning("Ignoring postback event without a user id")
                return None
            data = event.postback.data if event.postback else ""
            return await self._route_postback(user_id, data)

        logger.info("Ignoring unhandled event type %r from %s", event.type, user_id)
        return None

    async def _route_text(self, user_id: str, text: str) -> Reply:
        intent = classify_text(text)
        logger.info("Text from %s classified as %s", user_id, intent.value)

        if intent == Intent.GREETING:
            return self._replies.greeting()
        if intent == Intent.TODAY_REMINDERS:
            return await self._replies.today_reminders(user_id)
        if intent == Intent.RECORDS:
            return await self._replies.records(user_id)
        if intent == Intent.ACCOUNT:
            return await self._replies.account_info(user_id)
        return self._replies.main_menu()

    async def _route_postback(self, user_id: str, data: str) -> Reply:
        token = decode(data)
        if token is None:
            return self._replies.main_menu()

        verb = token.verb
        logger.info("Postback from %s: %s %s", user_id, verb.value, token.target_id or "")

        if verb == Verb.TAKEN:
            return await self._replies.record_taken(user_id, token.target_id)
        if verb == Verb.DELAY:
            return await self._replies.delay(user_id, token.target_id)
        if verb == Verb.SKIP:
            return await self._replies.skip(user_id, token.target_id)
        if verb == Verb.SHOW_TODAY_REMINDERS:
            return await self._replies.today_reminders(user_id)
        if verb in (Verb.RECORD_MEDICINE, Verb.SHOW_RECORDS):
            return await self._replies.records(user_id)
        if verb == Verb.SHOW_ACCOUNT:
            return await self._replies.account_info(user_id)
        if verb == Verb.CONNECT_APP:
            return self._replies.connect_info(user_id)
        if verb == Verb.SHOW_HELP:
            return self._replies.help()
        return self._replies.main_menu()
