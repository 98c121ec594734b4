"""
MedBot — LINE Webhook Server.

FastAPI front door for the bot. LINE posts event batches to /webhook; the
server acknowledges at once and processes the batch in the background, so
a slow store or a failing handler never delays or fails the acknowledgement.
An external scheduler posts fired reminders to /send-reminder.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from fastapi import BackgroundTasks, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from medbot.bot.schemas import SendReminderRequest, WebhookEvent
from medbot.config import settings
from medbot.core.account_resolver import AccountResolver
from medbot.core.binding_store import BindingStore
from medbot.core.dispatcher import EventDispatcher
from medbot.core.reminder_delivery import deliver_reminder
from medbot.core.reply_service import ReplyService
from medbot.data.models import Reminder

if TYPE_CHECKING:
    from medbot.ports.messaging_port import MessagingPort
    from medbot.ports.store_port import DocumentStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Signature check
# ---------------------------------------------------------------------------


def verify_signature(body: bytes, signature: str | None, channel_secret: str) -> bool:
    """Check X-Line-Signature: base64(HMAC-SHA256(channel secret, raw body))."""
    if not signature:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature)


def parse_events(body: bytes) -> list[WebhookEvent]:
    """Extract the valid events from a webhook body; malformed ones are skipped."""
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return []

    raw_events = payload.get("events") if isinstance(payload, dict) else None
    if not isinstance(raw_events, list):
        logger.warning("Webhook body has no events")
        return []

    events: list[WebhookEvent] = []
    for raw in raw_events:
        try:
            events.append(WebhookEvent.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Skipping malformed webhook event: %s", exc)
    return events


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    store: DocumentStore | None = None,
    messaging: MessagingPort | None = None,
    channel_secret: str | None = None,
) -> FastAPI:
    """Build the FastAPI app with all routes and collaborators wired.

    Args:
        store: Document store. Defaults to the SQLite store at DATABASE_PATH,
               or an UnavailableStore if it cannot be opened.
        messaging: Messaging port. Defaults to the LINE Messaging API adapter.
        channel_secret: Webhook signing secret. Defaults to LINE_CHANNEL_SECRET;
                        empty disables signature checks.
    """
    if store is None:
        from medbot.data.db import open_store
        store = open_store(settings.DATABASE_PATH)

    if messaging is None:
        from medbot.adapters.line_messaging import LineMessagingAdapter
        messaging = LineMessagingAdapter(settings.LINE_CHANNEL_ACCESS_TOKEN)

    if channel_secret is None:
        channel_secret = settings.LINE_CHANNEL_SECRET

    replies = ReplyService(
        store,
        AccountResolver(store),
        timezone_name=settings.TIMEZONE,
        history_limit=settings.RECORD_HISTORY_LIMIT,
    )
    dispatcher = EventDispatcher(BindingStore(store), replies, messaging)

    app = FastAPI(title="MedBot LINE Webhook")
    app.state.store = store
    app.state.messaging = messaging
    app.state.dispatcher = dispatcher
    started = time.monotonic()

    @app.get("/")
    async def root() -> dict:
        return {
            "status": "ok",
            "message": "LINE Bot Medicine Reminder Server is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "healthy",
            "uptime": time.monotonic() - started,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/webhook")
    async def webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_line_signature: str | None = Header(default=None),
    ):
        body = await request.body()
        if channel_secret and not verify_signature(body, x_line_signature, channel_secret):
            logger.warning("Rejected webhook with invalid signature")
            return JSONResponse({"error": "invalid_signature"}, status_code=401)

        events = parse_events(body)
        logger.info("Webhook received with %d events", len(events))
        if events:
            background_tasks.add_task(dispatcher.handle_events, events)
        return {"status": "ok", "message": "Webhook received"}

    @app.post("/send-reminder")
    async def send_reminder(request: Request):
        body = await request.body()
        try:
            payload = SendReminderRequest.model_validate_json(body or b"{}")
        except ValidationError as exc:
            logger.warning("Rejected /send-reminder payload: %s", exc)
            return JSONResponse({"error": "缺少必要參數"}, status_code=400)
        if not payload.line_user_id or payload.reminder is None:
            return JSONResponse({"error": "缺少必要參數"}, status_code=400)

        reminder = Reminder(
            id=payload.reminder.id,
            hour=payload.reminder.hour,
            minute=payload.reminder.minute,
            medicine_name=payload.reminder.medicine_name,
            dosage=payload.reminder.dosage,
        )
        if not await deliver_reminder(messaging, payload.line_user_id, reminder):
            return JSONResponse({"error": "發送提醒失敗"}, status_code=500)
        return {"success": True, "message": "提醒已發送"}

    logger.info("Webhook app built (signature check %s)", "on" if channel_secret else "off")
    return app


def configure_logging(level: str) -> None:
    """Install the log format and apply LOG_LEVEL to the root logger."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # basicConfig is a no-op once the root logger has handlers.
    logging.getLogger().setLevel(level)


def main() -> None:
    """Entry point: build the app and serve it with uvicorn."""
    import uvicorn

    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting MedBot webhook server on port %d...", settings.PORT)
    uvicorn.run(build_app(), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
