"""
MedBot — Reply payloads and shared formatting helpers.

Replies are platform-neutral: text plus an ordered list of suggested
actions. The LINE adapter renders them as a text message with a quick
reply bar.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from medbot.core.actions import Verb, encode

# LINE accepts at most 13 quick reply items; extra items are dropped.
MAX_QUICK_REPLY_ITEMS = 13


@dataclass(frozen=True)
class QuickReplyItem:
    label: str
    data: str          # postback action token


@dataclass
class Reply:
    text: str
    quick_reply: list[QuickReplyItem] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.quick_reply = list(self.quick_reply[:MAX_QUICK_REPLY_ITEMS])

    def to_message(self) -> dict:
        """Render as a LINE text message object."""
        message: dict = {"type": "text", "text": self.text}
        if self.quick_reply:
            message["quickReply"] = {
                "items": [
                    {
                        "type": "action",
                        "action": {
                            "type": "postback",
                            "label": item.label,
                            "data": item.data,
                        },
                    }
                    for item in self.quick_reply
                ]
            }
        return message


# ---------------------------------------------------------------------------
# Quick reply items
# ---------------------------------------------------------------------------

TODAY_ITEM = QuickReplyItem("📋 今日提醒", encode(Verb.SHOW_TODAY_REMINDERS))
RECORD_ITEM = QuickReplyItem("💊 記錄服藥", encode(Verb.RECORD_MEDICINE))
RECORDS_ITEM = QuickReplyItem("📊 查看記錄", encode(Verb.SHOW_RECORDS))
ACCOUNT_ITEM = QuickReplyItem("👤 帳戶資訊", encode(Verb.SHOW_ACCOUNT))
CONNECT_ITEM = QuickReplyItem("🔗 連接 App", encode(Verb.CONNECT_APP))
HELP_ITEM = QuickReplyItem("❓ 使用說明", encode(Verb.SHOW_HELP))
MENU_ITEM = QuickReplyItem("🏠 主選單", encode(Verb.SHOW_MAIN_MENU))

CORE_ITEMS = [TODAY_ITEM, RECORD_ITEM, RECORDS_ITEM, ACCOUNT_ITEM, CONNECT_ITEM]
MAIN_MENU_ITEMS = [*CORE_ITEMS, HELP_ITEM]


def reminder_items(reminder_id: str, time_label: str | None = None) -> list[QuickReplyItem]:
    """Taken / delay / skip buttons for one reminder."""
    if time_label:
        labels = (f"✅ {time_label} 已服藥", f"⏰ {time_label} 延遲", f"⏭️ {time_label} 跳過")
    else:
        labels = ("✅ 已服藥", "⏰ 延遲提醒", "⏭️ 跳過提醒")
    return [
        QuickReplyItem(labels[0], encode(Verb.TAKEN, reminder_id)),
        QuickReplyItem(labels[1], encode(Verb.DELAY, reminder_id)),
        QuickReplyItem(labels[2], encode(Verb.SKIP, reminder_id)),
    ]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_date(iso_date: str) -> str:
    """2026-03-05 -> 2026/3/5 (zh-TW short date)."""
    try:
        d = date.fromisoformat(iso_date)
    except ValueError:
        return iso_date
    return f"{d.year}/{d.month}/{d.day}"
