"""
Tests for the bot dispatcher: event routing, commands and broadcast.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from tripbot.bot import BotDispatcher, parse_booking_args
from tripbot.bot.handlers import BOOK_USAGE, NO_HISTORY
from tripbot.core.errors import ActivationFailed, FundingFailed, WalletNotProvisioned
from tripbot.core.session import ActivationResult, ChatHistory, SessionState
from tripbot.providers.nillion import VaultReadError
from tripbot.providers.search_agent import SearchAgentReply
from tripbot.types import ActivationEvent, BookingRequest, ChatMessage, CommandEvent, Session, TextEvent


class FakeMessenger:
    def __init__(self, fail_for=()):
        self.sent = []
        self._fail_for = set(fail_for)

    async def send_message(self, chat_id, text, parse_mode=None):
        if chat_id in self._fail_for:
            raise ConnectionError("telegram down")
        self.sent.append((chat_id, text, parse_mode))
        return True

    @property
    def texts(self):
        return [text for _, text, _ in self.sent]


def chat_message(text: str, is_bot: bool = False) -> ChatMessage:
    return ChatMessage(
        message_id=1,
        date=1700000000,
        sender_name="alice",
        sender_id="7",
        text=text,
        chat_name="Trip",
        chat_type="group",
        is_bot=is_bot,
    )


def text_event(text: str, is_bot: bool = False) -> TextEvent:
    return TextEvent(chat_id="100", text=text, message=chat_message(text, is_bot))


def command_event(name: str, args: str = "") -> CommandEvent:
    return CommandEvent(chat_id="100", name=name, args=args, message=chat_message(f"/{name} {args}"))


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def sessions():
    return AsyncMock()


@pytest.fixture
def search_agent():
    agent = MagicMock()
    agent.enabled = True
    agent.extract_booking = AsyncMock()
    return agent


@pytest.fixture
def dispatcher(sessions, messenger, search_agent):
    return BotDispatcher(sessions, messenger, ChatHistory(), search_agent=search_agent, enable_key_export=True)


# =============================================================================
# Activation
# =============================================================================

class TestActivation:

    @pytest.mark.asyncio
    async def test_success_reply(self, dispatcher, sessions, messenger):
        result = ActivationResult(session=Session(chat_id="100"), previous_state=SessionState.UNINITIALIZED)
        result.warnings.append(FundingFailed("no funds", chat_id="100"))
        sessions.on_chat_activated.return_value = result

        await dispatcher.dispatch(ActivationEvent(chat_id="100"))

        sessions.on_chat_activated.assert_awaited_once_with("100")
        assert messenger.texts == ["Chat initialized with ID: 100"]

    @pytest.mark.asyncio
    async def test_failure_reply(self, dispatcher, sessions, messenger):
        sessions.on_chat_activated.side_effect = ActivationFailed("boom", chat_id="100")

        await dispatcher.dispatch(ActivationEvent(chat_id="100"))

        assert messenger.texts == ["Failed to initialize chat"]


# =============================================================================
# Text messages
# =============================================================================

class TestTextMessages:

    @pytest.mark.asyncio
    async def test_funding_trigger(self, dispatcher, messenger, search_agent):
        await dispatcher.dispatch(text_event("Funding is complete for our trip"))

        assert messenger.texts == ["funding complete for chat 100"]
        search_agent.extract_booking.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_completed_booking_is_recorded(self, dispatcher, sessions, messenger, search_agent):
        booking = BookingRequest(location="Lisbon")
        search_agent.extract_booking.return_value = SearchAgentReply(
            completed_data=True, request_data=booking, message="Booking Lisbon"
        )

        await dispatcher.dispatch(text_event("Lisbon for 3 nights"))

        chat_id, history = search_agent.extract_booking.await_args.args
        assert chat_id == "100"
        assert history["messages"][0]["text"] == "Lisbon for 3 nights"
        sessions.record_booking.assert_awaited_once_with("100", booking)
        assert messenger.texts == ["Booking Lisbon"]

    @pytest.mark.asyncio
    async def test_degraded_agent_is_silent(self, dispatcher, sessions, messenger, search_agent):
        search_agent.extract_booking.return_value = SearchAgentReply.unavailable()

        await dispatcher.dispatch(text_event("anyone?"))

        sessions.record_booking.assert_not_awaited()
        assert messenger.sent == []

    @pytest.mark.asyncio
    async def test_bot_messages_are_recorded_but_not_forwarded(self, dispatcher, search_agent):
        await dispatcher.dispatch(text_event("beep", is_bot=True))

        search_agent.extract_booking.assert_not_awaited()
        assert len(dispatcher.history.messages("100")) == 1


# =============================================================================
# Commands
# =============================================================================

class TestCommands:

    def test_parse_booking_args(self):
        args = parse_booking_args("location=Lisbon nights=three budget=500 dates=1/6-4/6 extra=1")

        assert args.location == "Lisbon"
        assert args.nights is None
        assert args.budget == 500.0
        assert args.dates == "1/6-4/6"
        assert not args.complete

    @pytest.mark.asyncio
    async def test_book_summary(self, dispatcher, messenger):
        await dispatcher.dispatch(command_event("book", "location=Lisbon nights=3 budget=500 dates=1/6-4/6"))

        assert messenger.texts == [
            "Booking details:\n"
            "- Location: Lisbon\n"
            "- Nights: 3\n"
            "- Budget: $500\n"
            "- Dates: 1/6-4/6\n"
            "Please respond with ✅ if you agree to this trip."
        ]

    @pytest.mark.asyncio
    async def test_book_usage(self, dispatcher, messenger):
        await dispatcher.dispatch(command_event("book", "location=Lisbon"))

        assert messenger.sent == [("100", BOOK_USAGE, "Markdown")]

    @pytest.mark.asyncio
    async def test_getkey(self, dispatcher, sessions, messenger):
        sessions.retrieve_wallet_key.return_value = "0xkey"

        await dispatcher.dispatch(command_event("getkey"))

        assert messenger.texts == ["The private key for this chat is:\n0xkey"]

    @pytest.mark.asyncio
    async def test_getkey_without_wallet(self, dispatcher, sessions, messenger):
        sessions.retrieve_wallet_key.side_effect = WalletNotProvisioned("No Nillion ID found for this chat.")

        await dispatcher.dispatch(command_event("getkey"))

        assert messenger.texts == ["No Nillion ID found for this chat."]

    @pytest.mark.asyncio
    async def test_getkey_vault_failure(self, dispatcher, sessions, messenger):
        sessions.retrieve_wallet_key.side_effect = VaultReadError("vault down")

        await dispatcher.dispatch(command_event("getkey"))

        assert messenger.texts == ["Failed to retrieve the private key."]

    @pytest.mark.asyncio
    async def test_getkey_disabled(self, sessions, messenger):
        dispatcher = BotDispatcher(sessions, messenger, ChatHistory(), enable_key_export=False)

        await dispatcher.dispatch(command_event("getkey"))

        sessions.retrieve_wallet_key.assert_not_awaited()
        assert messenger.texts == ["Key export is disabled for this bot."]

    @pytest.mark.asyncio
    async def test_exporthistory(self, dispatcher, messenger, search_agent):
        search_agent.extract_booking.return_value = SearchAgentReply.unavailable()
        await dispatcher.dispatch(text_event("hello"))

        await dispatcher.dispatch(command_event("exporthistory"))

        chat_id, text, parse_mode = messenger.sent[-1]
        assert parse_mode == "Markdown"
        assert text.startswith("Chat history exported:\n```\n")
        payload = json.loads(text[len("Chat history exported:\n```\n"):-len("\n```")])
        assert [m["text"] for m in payload["messages"]] == ["hello", "/exporthistory "]

    @pytest.mark.asyncio
    async def test_exporthistory_without_history(self, sessions, messenger):
        dispatcher = BotDispatcher(sessions, messenger, ChatHistory())

        await dispatcher.dispatch(CommandEvent(chat_id="100", name="exporthistory"))

        assert messenger.texts == [NO_HISTORY]

    @pytest.mark.asyncio
    async def test_sendhistory(self, dispatcher, sessions, messenger, search_agent):
        search_agent.extract_booking.return_value = SearchAgentReply(completed_data=False, message="Where to?")

        await dispatcher.dispatch(command_event("sendhistory"))

        search_agent.extract_booking.assert_awaited_once()
        sessions.record_booking.assert_not_awaited()
        assert messenger.texts == ["Where to?"]

    @pytest.mark.asyncio
    async def test_unknown_command_is_ignored(self, dispatcher, messenger):
        await dispatcher.dispatch(command_event("dance"))

        assert messenger.sent == []


@pytest.mark.asyncio
async def test_broadcast_counts_deliveries(sessions):
    sessions.chat_ids.return_value = ["1", "2", "3"]
    messenger = FakeMessenger(fail_for={"2"})
    dispatcher = BotDispatcher(sessions, messenger, ChatHistory())

    delivered = await dispatcher.broadcast("Trip update")

    assert delivered == 2
    assert sorted(chat_id for chat_id, _, _ in messenger.sent) == ["1", "3"]
