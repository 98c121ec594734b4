"""
MedBot — Inbound webhook payloads.

Pydantic models for the subset of the LINE webhook body the bot reads.
Unknown fields are ignored; unknown event types still validate so the
dispatcher can log and skip them.

JSON example:
{
    "destination": "U0123",
    "events": [
        {
            "type": "message",
            "replyToken": "abc",
            "source": {"type": "user", "userId": "U4af4980629"},
            "message": {"type": "text", "id": "1", "text": "hi"}
        },
        {
            "type": "postback",
            "replyToken": "def",
            "source": {"type": "user", "userId": "U4af4980629"},
            "postback": {"data": "action=taken_R1"}
        }
    ]
}
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventSource(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = "user"
    user_id: str | None = Field(default=None, alias="userId")


class MessageContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    text: str | None = None


class PostbackContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: str = ""


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str
    reply_token: str | None = Field(default=None, alias="replyToken")
    source: EventSource = Field(default_factory=EventSource)
    message: MessageContent | None = None
    postback: PostbackContent | None = None

    @property
    def user_id(self) -> str | None:
        return self.source.user_id


class ReminderPayload(BaseModel):
    """Reminder as posted to /send-reminder by the scheduler."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)
    medicine_name: str = Field(alias="medicineName")
    dosage: str = ""

    @field_validator("id", "dosage", mode="before")
    @classmethod
    def _numbers_to_str(cls, v):
        # Schedulers may send numeric ids and dosages.
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class SendReminderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    line_user_id: str | None = Field(default=None, alias="lineUserId")
    reminder: ReminderPayload | None = None
