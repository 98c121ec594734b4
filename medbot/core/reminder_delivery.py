"""Reminder delivery — pushes a fired reminder to a LINE user.

Called by an external scheduler through POST /send-reminder; the bot
itself never decides when a reminder is due.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from medbot.core.reply_service import reminder_notification
from medbot.ports.messaging_port import MessagingError

if TYPE_CHECKING:
    from medbot.data.models import Reminder
    from medbot.ports.messaging_port import MessagingPort

logger = logging.getLogger(__name__)


async def deliver_reminder(
    messaging: MessagingPort, line_user_id: str, reminder: Reminder,
) -> bool:
    """Push the reminder notification. Returns False if the send failed."""
    try:
        await messaging.push(line_user_id, reminder_notification(reminder))
    except MessagingError as exc:
        logger.error("Failed to deliver reminder %s to %s: %s", reminder.id, line_user_id, exc)
        return False
    logger.info("Reminder %s delivered to %s", reminder.id, line_user_id)
    return True
