"""
Tests for the Telegram adapter: update parsing and message sending.
"""

import asyncio
import json

import httpx
import pytest

from tripbot.providers.telegram import TelegramAdapter, _split_message, parse_update
from tripbot.types import ActivationEvent, CommandEvent, TextEvent, command_target, parse_command


def text_update(text: str, chat_id: int = -100123, is_bot: bool = False) -> dict:
    return {
        "update_id": 1,
        "message": {
            "message_id": 42,
            "date": 1700000000,
            "chat": {"id": chat_id, "title": "Trip", "type": "group"},
            "from": {"id": 7, "is_bot": is_bot, "first_name": "Alice", "last_name": "Smith"},
            "text": text,
        },
    }


def membership_update(old: str, new: str, chat_id: int = -100123) -> dict:
    return {
        "update_id": 2,
        "my_chat_member": {
            "chat": {"id": chat_id, "type": "group"},
            "old_chat_member": {"status": old},
            "new_chat_member": {"status": new},
        },
    }


# =============================================================================
# Update parsing
# =============================================================================

class TestParseUpdate:

    def test_start_command_activates(self):
        event = parse_update(text_update("/start"))

        assert isinstance(event, ActivationEvent)
        assert event.chat_id == "-100123"
        assert event.message.sender_name == "Alice Smith"

    def test_start_with_bot_mention_activates(self):
        assert isinstance(parse_update(text_update("/start@tripbot")), ActivationEvent)

    def test_command_for_another_bot_is_ignored(self):
        assert parse_update(text_update("/start@OtherBot"), bot_username="tripbot") is None
        assert parse_update(text_update("/getkey@OtherBot"), bot_username="tripbot") is None

    def test_own_mention_is_case_insensitive(self):
        event = parse_update(text_update("/start@TripBot"), bot_username="tripbot")

        assert isinstance(event, ActivationEvent)

    def test_bot_added_to_group_activates(self):
        event = parse_update(membership_update("left", "member"))

        assert event == ActivationEvent(chat_id="-100123")

    def test_bot_removed_is_ignored(self):
        assert parse_update(membership_update("member", "left")) is None

    def test_command_with_args(self):
        event = parse_update(text_update("/book location=Lisbon nights=3"))

        assert isinstance(event, CommandEvent)
        assert event.name == "book"
        assert event.args == "location=Lisbon nights=3"

    def test_plain_text(self):
        event = parse_update(text_update("Let's go to Lisbon", is_bot=True))

        assert isinstance(event, TextEvent)
        assert event.text == "Let's go to Lisbon"
        assert event.message.is_bot is True
        assert event.message.chat_name == "Trip"

    def test_non_text_message_is_ignored(self):
        update = text_update("")
        update["message"].pop("text")

        assert parse_update(update) is None

    def test_parse_command(self):
        assert parse_command("/GetKey@tripbot  ") == ("getkey", "")
        assert parse_command("hello /start") is None
        assert parse_command("/") is None

    def test_command_target(self):
        assert command_target("/start@TripBot now") == "tripbot"
        assert command_target("/start") is None
        assert command_target("mail me@home") is None


# =============================================================================
# Sending
# =============================================================================

class TestSendMessage:

    def test_split_prefers_newlines(self):
        text = "a" * 6 + "\n" + "b" * 6

        assert _split_message(text, 10) == ["a" * 6, "b" * 6]
        assert _split_message("c" * 25, 10) == ["c" * 10, "c" * 10, "c" * 5]

    @pytest.mark.asyncio
    async def test_long_messages_are_chunked(self):
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True, "result": {}})

        adapter = TelegramAdapter(bot_token="T", transport=httpx.MockTransport(handler))

        assert await adapter.send_message("100", "x" * 5000) is True
        assert [len(body["text"]) for body in sent] == [4096, 904]
        assert all(body["chat_id"] == "100" for body in sent)
        await adapter.close()

    @pytest.mark.asyncio
    async def test_markdown_rejection_falls_back_to_plain_text(self):
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            sent.append(body)
            if "parse_mode" in body:
                return httpx.Response(400, json={"ok": False, "description": "can't parse entities"})
            return httpx.Response(200, json={"ok": True, "result": {}})

        adapter = TelegramAdapter(bot_token="T", transport=httpx.MockTransport(handler))

        assert await adapter.send_message("100", "*broken", parse_mode="Markdown") is True
        assert len(sent) == 2
        assert "parse_mode" not in sent[1]

    @pytest.mark.asyncio
    async def test_api_failure_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        adapter = TelegramAdapter(bot_token="T", transport=httpx.MockTransport(handler))

        assert await adapter.send_message("100", "hi") is False

    @pytest.mark.asyncio
    async def test_rejected_call_does_not_log_token(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"ok": False, "description": "can't parse entities"})

        adapter = TelegramAdapter(
            bot_token="123456:SECRET-TOKEN", transport=httpx.MockTransport(handler)
        )

        assert await adapter.send_message("1", "*bad", parse_mode="Markdown") is False
        assert "Telegram API call failed (sendMessage): HTTP 400" in caplog.text
        assert "SECRET-TOKEN" not in caplog.text

    @pytest.mark.asyncio
    async def test_set_webhook_sends_secret(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": True})

        adapter = TelegramAdapter(bot_token="T", transport=httpx.MockTransport(handler))

        assert await adapter.set_webhook("https://bot.example/telegram/webhook", secret_token="s3cret")
        assert seen["path"] == "/botT/setWebhook"
        assert seen["body"]["secret_token"] == "s3cret"


@pytest.mark.asyncio
async def test_polling_dispatches_and_joins_handlers():
    stop = asyncio.Event()
    polls = []
    handled = []

    def handler(request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        if method == "getUpdates":
            polls.append(request.url.params.get("offset"))
            if len(polls) == 1:
                return httpx.Response(200, json={"ok": True, "result": [text_update("/start")]})
            stop.set()
            return httpx.Response(200, json={"ok": True, "result": []})
        if method == "getMe":
            return httpx.Response(200, json={"ok": True, "result": {"username": "tripbot"}})
        return httpx.Response(200, json={"ok": True, "result": True})

    async def on_event(event):
        await asyncio.sleep(0)
        handled.append(event)

    adapter = TelegramAdapter(bot_token="T", transport=httpx.MockTransport(handler))
    await adapter.start_polling(on_event, interval=0, shutdown_event=stop)

    assert polls == [None, "2"]
    assert len(handled) == 1
    assert isinstance(handled[0], ActivationEvent)


@pytest.mark.asyncio
async def test_polling_ignores_commands_for_other_bots():
    stop = asyncio.Event()
    handled = []

    def handler(request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        if method == "getUpdates":
            stop.set()
            return httpx.Response(
                200,
                json={"ok": True, "result": [text_update("/start@OtherBot"), text_update("/start@TripBot")]},
            )
        if method == "getMe":
            return httpx.Response(200, json={"ok": True, "result": {"username": "TripBot"}})
        return httpx.Response(200, json={"ok": True, "result": True})

    async def on_event(event):
        handled.append(event)

    adapter = TelegramAdapter(
        bot_token="T", transport=httpx.MockTransport(handler), bot_username=""
    )
    await adapter.start_polling(on_event, interval=0, shutdown_event=stop)

    assert adapter.bot_username == "TripBot"
    assert len(handled) == 1
    assert isinstance(handled[0], ActivationEvent)
