"""Tests for medbot.adapters.line_messaging — LINE Messaging API adapter."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from medbot.adapters.line_messaging import LineMessagingAdapter
from medbot.core.replies import MENU_ITEM, Reply
from medbot.ports.messaging_port import MessagingError

_PATCH_CLIENT = "medbot.adapters.line_messaging.httpx.AsyncClient"


def _mock_client(resp=None, side_effect=None):
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    if side_effect is not None:
        mock_client.post = AsyncMock(side_effect=side_effect)
    else:
        mock_client.post = AsyncMock(return_value=resp)
    return mock_client


def _ok_response():
    resp = MagicMock()
    resp.raise_for_status = MagicMock()
    return resp


class TestReply:
    @pytest.mark.asyncio
    async def test_posts_reply_token_and_message(self):
        mock_client = _mock_client(_ok_response())
        adapter = LineMessagingAdapter("token-abc")

        with patch(_PATCH_CLIENT, return_value=mock_client):
            await adapter.reply("rt-1", Reply("hello", [MENU_ITEM]))

        url = mock_client.post.call_args.args[0]
        kwargs = mock_client.post.call_args.kwargs
        assert url == "https://api.line.me/v2/bot/message/reply"
        assert kwargs["headers"]["Authorization"] == "Bearer token-abc"
        assert kwargs["json"]["replyToken"] == "rt-1"
        message = kwargs["json"]["messages"][0]
        assert message["text"] == "hello"
        assert message["quickReply"]["items"][0]["action"]["data"] == "action=show_main_menu"


class TestPush:
    @pytest.mark.asyncio
    async def test_posts_to_user(self):
        mock_client = _mock_client(_ok_response())
        adapter = LineMessagingAdapter("token-abc")

        with patch(_PATCH_CLIENT, return_value=mock_client):
            await adapter.push("U1", Reply("⏰ 服藥提醒"))

        assert mock_client.post.call_args.args[0].endswith("/push")
        assert mock_client.post.call_args.kwargs["json"]["to"] == "U1"


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_status_error_raises_messaging_error(self):
        request = httpx.Request("POST", "https://api.line.me/v2/bot/message/reply")
        response = httpx.Response(400, request=request, text='{"message":"Invalid reply token"}')
        resp = MagicMock()
        resp.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError("bad", request=request, response=response)
        )

        with patch(_PATCH_CLIENT, return_value=_mock_client(resp)):
            with pytest.raises(MessagingError, match="400"):
                await LineMessagingAdapter("t").reply("expired", Reply("hi"))

    @pytest.mark.asyncio
    async def test_network_error_raises_messaging_error(self):
        mock_client = _mock_client(side_effect=httpx.ConnectTimeout("timeout"))
        with patch(_PATCH_CLIENT, return_value=mock_client):
            with pytest.raises(MessagingError):
                await LineMessagingAdapter("t").push("U1", Reply("hi"))
