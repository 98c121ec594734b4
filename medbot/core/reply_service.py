"""
MedBot — Reply Handlers.

One coroutine per user intent. Each returns a Reply; none of them raise
for expected conditions:

- store failure        -> fixed service-unavailable reply
- no connected account -> connect-via-app prompt with the main menu
- unknown reminder id  -> fixed not-found reply

Anything else that goes wrong propagates to the dispatcher, which logs it
and drops the event.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable
from zoneinfo import ZoneInfo

from medbot.core.replies import (
    CONNECT_ITEM,
    CORE_ITEMS,
    MAIN_MENU_ITEMS,
    MAX_QUICK_REPLY_ITEMS,
    MENU_ITEM,
    RECORD_ITEM,
    RECORDS_ITEM,
    TODAY_ITEM,
    Reply,
    format_date,
    reminder_items,
)
from medbot.data.models import MedicineRecord
from medbot.ports.store_port import StoreError

if TYPE_CHECKING:
    from medbot.core.account_resolver import AccountResolver
    from medbot.data.models import Reminder
    from medbot.ports.store_port import DocumentStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fixed texts
# ---------------------------------------------------------------------------

GREETING_TEXT = "您好！我是您的藥品提醒助手。\n\n請選擇您需要的功能："
MAIN_MENU_TEXT = "🏥 藥品提醒助手\n\n請選擇您需要的功能："
SERVICE_UNAVAILABLE_TEXT = "❌ 資料庫連接失敗，請稍後再試"
CONNECT_PROMPT_TEXT = "❌ 找不到您的帳戶，請先在 App 中連接 LINE"
REMINDER_NOT_FOUND_TEXT = "❌ 找不到該提醒"
DELAY_TEXT = "⏰ 已延遲提醒\n\n提醒將在 30 分鐘後再次發送"
SKIP_TEXT = "⏭️ 已跳過提醒\n\n下次提醒時間：明天"
RECORD_NOTE = "透過 LINE 記錄"

HELP_TEXT = (
    "❓ 使用說明\n\n"
    "📋 今日提醒：\n"
    "• 查看今日所有服藥提醒\n"
    "• 點擊按鈕確認服藥\n\n"
    "💊 記錄服藥：\n"
    "• 查看最近服藥記錄\n"
    "• 了解服藥狀況\n\n"
    "📊 查看記錄：\n"
    "• 查看詳細服藥記錄\n"
    "• 追蹤服藥歷史\n\n"
    "👤 帳戶資訊：\n"
    "• 查看帳戶狀態\n"
    "• 統計資訊\n\n"
    "🔗 連接 App：\n"
    "• 與手機 App 同步\n"
    "• 雙向資料同步"
)


def service_unavailable() -> Reply:
    return Reply(SERVICE_UNAVAILABLE_TEXT)


def connect_prompt() -> Reply:
    return Reply(CONNECT_PROMPT_TEXT, MAIN_MENU_ITEMS)


def reminder_notification(reminder: Reminder) -> Reply:
    """The push message sent when a reminder fires."""
    return Reply(
        f"⏰ 服藥提醒\n\n"
        f"💊 {reminder.medicine_name}\n"
        f"💊 劑量：{reminder.dosage}\n"
        f"⏰ 時間：{reminder.time_label}",
        reminder_items(reminder.id),
    )


class ReplyService:
    """Builds the reply for each intent, reading and writing the store."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: AccountResolver,
        timezone_name: str = "Asia/Taipei",
        history_limit: int = 5,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._tz = ZoneInfo(timezone_name)
        self._history_limit = history_limit
        self._clock = clock or (lambda: datetime.now(self._tz))

    # --- Static replies (no account needed) ---

    def greeting(self) -> Reply:
        return Reply(GREETING_TEXT, CORE_ITEMS)

    def main_menu(self) -> Reply:
        return Reply(MAIN_MENU_TEXT, MAIN_MENU_ITEMS)

    def help(self) -> Reply:
        return Reply(HELP_TEXT, [TODAY_ITEM, CONNECT_ITEM, MENU_ITEM])

    def connect_info(self, line_user_id: str) -> Reply:
        text = (
            "🔗 連接 App 說明\n\n"
            "📱 在您的 App 中：\n"
            "1. 點擊「LINE 設定」\n"
            "2. 選擇「使用測試帳戶」\n"
            "3. 或輸入您的 LINE ID\n\n"
            "💡 連接後即可：\n"
            "• 同步接收提醒\n"
            "• 雙向記錄服藥\n"
            "• 查看完整記錄\n\n"
            "🆔 您的 LINE ID：\n"
            f"{line_user_id}"
        )
        return Reply(text, [TODAY_ITEM, RECORDS_ITEM, MENU_ITEM])

    # --- Account-scoped replies ---

    async def today_reminders(self, line_user_id: str) -> Reply:
        try:
            account = await self._resolver.resolve_account(line_user_id)
            if account is None:
                return connect_prompt()
            reminders = await self._store.list_reminders(account.id)
        except StoreError as exc:
            logger.error("Today's reminders failed for %s: %s", line_user_id, exc)
            return service_unavailable()

        if not reminders:
            return Reply(
                "📋 今日提醒\n\n✅ 目前沒有設定任何提醒",
                [CONNECT_ITEM, MENU_ITEM],
            )

        lines = ["📋 今日提醒\n"]
        items = []
        for reminder in sorted(reminders, key=lambda r: (r.hour, r.minute)):
            label = reminder.time_label
            lines.append(f"💊 {label} - {reminder.medicine_name}")
            lines.append(f"   劑量：{reminder.dosage}\n")
            items.extend(reminder_items(reminder.id, label))
        items.append(MENU_ITEM)

        if len(items) > MAX_QUICK_REPLY_ITEMS:
            logger.info(
                "Quick reply truncated for %s: %d reminders, %d items",
                line_user_id, len(reminders), len(items),
            )
        return Reply("\n".join(lines).rstrip(), items)

    async def records(self, line_user_id: str) -> Reply:
        try:
            account = await self._resolver.resolve_account(line_user_id)
            if account is None:
                return connect_prompt()
            records = await self._store.list_medicine_records(account.id, self._history_limit)
        except StoreError as exc:
            logger.error("Record history failed for %s: %s", line_user_id, exc)
            return service_unavailable()

        if not records:
            return Reply(
                "📊 服藥記錄\n\n📝 目前沒有服藥記錄",
                [TODAY_ITEM, MENU_ITEM],
            )

        lines = ["📊 最近服藥記錄\n"]
        for record in records:
            lines.append(f"📅 {format_date(record.date)} {record.time or '未記錄時間'}")
            lines.append(f"💊 {record.medicine_name}")
            lines.append(f"💊 劑量：{record.dosage}")
            if record.notes:
                lines.append(f"📝 備註：{record.notes}")
            lines.append("")
        return Reply("\n".join(lines).rstrip(), [TODAY_ITEM, RECORD_ITEM, MENU_ITEM])

    async def account_info(self, line_user_id: str) -> Reply:
        try:
            account = await self._resolver.resolve_account(line_user_id)
            if account is None:
                return connect_prompt()
            reminders = await self._store.list_reminders(account.id)
            record_count = await self._store.count_medicine_records(account.id)
        except StoreError as exc:
            logger.error("Account info failed for %s: %s", line_user_id, exc)
            return service_unavailable()

        created = "未知"
        if account.created_at is not None:
            local = account.created_at.astimezone(self._tz)
            created = f"{local.year}/{local.month}/{local.day}"

        text = (
            "👤 帳戶資訊\n\n"
            f"📱 LINE ID: {line_user_id}\n"
            f"🆔 帳戶 ID: {account.id}\n"
            f"📅 建立時間: {created}\n"
            f"💊 提醒數量: {len(reminders)} 個\n"
            f"📊 服藥記錄: {record_count} 筆\n"
            "🔗 連接狀態: ✅ 已連接\n\n"
            "💡 提示：您可以在 App 中管理提醒和查看詳細記錄。"
        )
        return Reply(text, [TODAY_ITEM, RECORDS_ITEM, MENU_ITEM])

    async def record_taken(self, line_user_id: str, reminder_id: str) -> Reply:
        """Append a medicine record for the reminder, stamped with the local clock."""
        try:
            account = await self._resolver.resolve_account(line_user_id)
            if account is None:
                return connect_prompt()

            reminder = await self._store.get_reminder(account.id, reminder_id)
            if reminder is None:
                logger.warning("Reminder %s not found for account %s", reminder_id, account.id)
                return Reply(REMINDER_NOT_FOUND_TEXT)

            now = self._clock().astimezone(self._tz)
            record = await self._store.add_medicine_record(
                account.id,
                MedicineRecord(
                    medicine_name=reminder.medicine_name,
                    dosage=reminder.dosage,
                    date=now.date().isoformat(),
                    time=now.strftime("%H:%M"),
                    notes=RECORD_NOTE,
                ),
            )
        except StoreError as exc:
            logger.error("Recording dose failed for %s: %s", line_user_id, exc)
            return service_unavailable()

        return Reply(
            f"✅ 已記錄服藥\n\n"
            f"💊 {record.medicine_name}\n"
            f"💊 劑量：{record.dosage}\n"
            f"⏰ 時間：{record.time}",
            [TODAY_ITEM, RECORDS_ITEM, MENU_ITEM],
        )

    # Delay and skip only acknowledge; nothing is persisted or rescheduled.

    async def delay(self, line_user_id: str, reminder_id: str) -> Reply:
        return await self._acknowledge(line_user_id, reminder_id, "delay", DELAY_TEXT)

    async def skip(self, line_user_id: str, reminder_id: str) -> Reply:
        return await self._acknowledge(line_user_id, reminder_id, "skip", SKIP_TEXT)

    async def _acknowledge(
        self, line_user_id: str, reminder_id: str, verb: str, text: str,
    ) -> Reply:
        try:
            account = await self._resolver.resolve_account(line_user_id)
        except StoreError as exc:
            logger.error("%s failed for %s: %s", verb.capitalize(), line_user_id, exc)
            return service_unavailable()
        if account is None:
            return connect_prompt()

        logger.info("Reminder %s %s acknowledged for account %s", reminder_id, verb, account.id)
        return Reply(text, [TODAY_ITEM, MENU_ITEM])
