"""LINE messaging adapter — implements MessagingPort.

Calls the LINE Messaging API reply and push endpoints directly with httpx.
Reply tokens are single-use and event-scoped; push needs only the user id.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from medbot.ports.messaging_port import MessagingError

if TYPE_CHECKING:
    from medbot.core.replies import Reply

logger = logging.getLogger(__name__)

_API_BASE = "https://api.line.me/v2/bot/message"
_TIMEOUT_SECONDS = 10


class LineMessagingAdapter:
    """LINE Messaging API implementation of MessagingPort."""

    def __init__(self, channel_access_token: str, api_base: str = _API_BASE) -> None:
        self._token = channel_access_token
        self._api_base = api_base.rstrip("/")

    async def reply(self, reply_token: str, message: Reply) -> None:
        await self._post("reply", {"replyToken": reply_token, "messages": [message.to_message()]})

    async def push(self, line_user_id: str, message: Reply) -> None:
        await self._post("push", {"to": line_user_id, "messages": [message.to_message()]})

    async def _post(self, endpoint: str, payload: dict) -> None:
        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                resp = await client.post(
                    f"{self._api_base}/{endpoint}",
                    json=payload,
                    headers={"Authorization": f"Bearer {self._token}"},
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "LINE %s failed: status=%s body=%s",
                endpoint, exc.response.status_code, exc.response.text,
            )
            raise MessagingError(
                f"LINE {endpoint} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MessagingError(f"LINE {endpoint} request failed: {exc}") from exc
        logger.debug("LINE %s sent", endpoint)
