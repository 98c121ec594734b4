"""Tests for medbot.bot.webhook — FastAPI routes and reminder delivery.

Uses FastAPI's TestClient; background tasks finish before the call returns.
"""

import asyncio
import base64
import hashlib
import hmac
import json
import logging

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from medbot.bot.webhook import build_app, configure_logging, parse_events, verify_signature
from medbot.core.reminder_delivery import deliver_reminder
from medbot.data.models import Reminder
from medbot.ports.messaging_port import MessagingError

LINE_USER = "U1234567890abcdef"
SECRET = "test-channel-secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def _webhook_body(*events) -> bytes:
    return json.dumps({"destination": "Ubot", "events": list(events)}).encode("utf-8")


def _text(text):
    return {
        "type": "message",
        "replyToken": "rt-1",
        "source": {"type": "user", "userId": LINE_USER},
        "message": {"type": "text", "id": "1", "text": text},
    }


@pytest.fixture
def client(connected_store, messaging):
    app = build_app(store=connected_store, messaging=messaging, channel_secret="")
    return TestClient(app)


class TestHealth:
    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["uptime"] >= 0


class TestWebhook:
    def test_acknowledges_and_replies(self, client, messaging):
        resp = client.post("/webhook", content=_webhook_body(_text("hi")))
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

        messaging.reply.assert_awaited_once()
        token, reply = messaging.reply.await_args.args
        assert token == "rt-1"
        assert "您好" in reply.text

    def test_no_events_acknowledged(self, client, messaging):
        resp = client.post("/webhook", content=b"{}")
        assert resp.status_code == 200
        messaging.reply.assert_not_awaited()

    def test_invalid_json_acknowledged(self, client, messaging):
        resp = client.post("/webhook", content=b"not json")
        assert resp.status_code == 200
        messaging.reply.assert_not_awaited()

    def test_handler_failure_still_acknowledged(self, connected_store, messaging):
        messaging.reply = AsyncMock(side_effect=MessagingError("expired token"))
        app = build_app(store=connected_store, messaging=messaging, channel_secret="")
        resp = TestClient(app).post("/webhook", content=_webhook_body(_text("hi")))
        assert resp.status_code == 200

    def test_binding_created_for_sender(self, client, connected_store):
        client.post("/webhook", content=_webhook_body(_text("晚安")))
        # Account exists already; the bot still keeps its own binding row.
        binding = asyncio.run(connected_store.find_binding(LINE_USER))
        assert binding is not None
        assert binding.account_id is None


class TestSignature:
    def test_verify_signature(self):
        body = b'{"events":[]}'
        assert verify_signature(body, _sign(body), SECRET) is True
        assert verify_signature(body, _sign(body, "other"), SECRET) is False
        assert verify_signature(body, None, SECRET) is False

    def test_rejects_bad_signature(self, connected_store, messaging):
        app = build_app(store=connected_store, messaging=messaging, channel_secret=SECRET)
        resp = TestClient(app).post(
            "/webhook",
            content=_webhook_body(_text("hi")),
            headers={"X-Line-Signature": "bogus"},
        )
        assert resp.status_code == 401
        messaging.reply.assert_not_awaited()

    def test_accepts_good_signature(self, connected_store, messaging):
        app = build_app(store=connected_store, messaging=messaging, channel_secret=SECRET)
        body = _webhook_body(_text("hi"))
        resp = TestClient(app).post("/webhook", content=body, headers={"X-Line-Signature": _sign(body)})
        assert resp.status_code == 200
        messaging.reply.assert_awaited_once()


class TestParseEvents:
    def test_skips_malformed_events(self):
        body = _webhook_body(_text("hi"), {"no_type": True}, "junk")
        events = parse_events(body)
        assert len(events) == 1
        assert events[0].message.text == "hi"

    def test_events_not_a_list(self):
        assert parse_events(b'{"events": "nope"}') == []


class TestSendReminder:
    def _payload(self):
        return {
            "lineUserId": LINE_USER,
            "reminder": {"id": "R1", "hour": 8, "minute": 30, "medicineName": "Aspirin", "dosage": "100mg"},
        }

    def test_pushes_reminder(self, client, messaging):
        resp = client.post("/send-reminder", json=self._payload())
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        user_id, reply = messaging.push.await_args.args
        assert user_id == LINE_USER
        assert "Aspirin" in reply.text
        assert reply.quick_reply[0].data == "action=taken_R1"

    def test_missing_parameters(self, client, messaging):
        resp = client.post("/send-reminder", json={"lineUserId": LINE_USER})
        assert resp.status_code == 400
        messaging.push.assert_not_awaited()

    def test_numeric_id_accepted(self, client, messaging):
        payload = self._payload()
        payload["reminder"]["id"] = 7
        resp = client.post("/send-reminder", json=payload)
        assert resp.status_code == 200

        _, reply = messaging.push.await_args.args
        assert reply.quick_reply[0].data == "action=taken_7"

    @pytest.mark.parametrize("body", [
        {"lineUserId": LINE_USER, "reminder": {"id": "R1"}},
        {"lineUserId": LINE_USER, "reminder": {"id": "R1", "hour": 25, "minute": 0, "medicineName": "A"}},
        {"reminder": {"id": "R1", "hour": 8, "minute": 0, "medicineName": "A"}},
    ])
    def test_invalid_reminder_is_bad_request(self, client, messaging, body):
        resp = client.post("/send-reminder", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "缺少必要參數"}
        messaging.push.assert_not_awaited()

    def test_invalid_json_is_bad_request(self, client, messaging):
        resp = client.post("/send-reminder", content=b"not json")
        assert resp.status_code == 400
        messaging.push.assert_not_awaited()

    def test_delivery_failure(self, client, messaging):
        messaging.push = AsyncMock(side_effect=MessagingError("blocked"))
        resp = client.post("/send-reminder", json=self._payload())
        assert resp.status_code == 500


class TestMain:
    @pytest.fixture(autouse=True)
    def _restore_root_level(self):
        root = logging.getLogger()
        level = root.level
        yield
        root.setLevel(level)

    def test_log_level_applied_when_started_from_main_py(self, monkeypatch):
        import main as entry_point
        from medbot.config import settings

        monkeypatch.setattr(settings, "LOG_LEVEL", "DEBUG")
        with patch("uvicorn.run") as run, patch("medbot.bot.webhook.build_app") as build:
            entry_point.main()

        assert logging.getLogger().level == logging.DEBUG
        run.assert_called_once()
        assert run.call_args.args[0] is build.return_value
        assert run.call_args.kwargs["port"] == settings.PORT

    def test_log_level_overrides_existing_handlers(self):
        logging.getLogger().setLevel(logging.INFO)
        configure_logging("WARNING")
        assert logging.getLogger().level == logging.WARNING


class TestDeliverReminder:
    @pytest.mark.asyncio
    async def test_success(self, messaging):
        ok = await deliver_reminder(messaging, LINE_USER, Reminder("R1", 8, 0, "Aspirin", "100mg"))
        assert ok is True
        messaging.push.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure(self, messaging):
        messaging.push = AsyncMock(side_effect=MessagingError("blocked"))
        ok = await deliver_reminder(messaging, LINE_USER, Reminder("R1", 8, 0, "Aspirin", "100mg"))
        assert ok is False
