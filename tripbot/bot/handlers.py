"""
Event dispatch for the chat bot.

Inbound events are routed through one handler table keyed by event type;
command events are routed further by command name.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Type

import structlog

from ..config import settings
from ..core.errors import ActivationFailed, WalletNotProvisioned
from ..core.session import ChatHistory, ChatSessionStateMachine
from ..providers.nillion import VaultError
from ..providers.search_agent import SearchAgentClient
from ..types.events import ActivationEvent, CommandEvent, InboundEvent, TextEvent

logger = logging.getLogger(__name__)

BOOK_USAGE = (
    "Please provide booking details in this format:\n"
    "`/book location=<Location> nights=<Number> budget=<Amount> dates=<Start Date>-<End Date>`"
)
NO_HISTORY = "No chat history found for this chat."
FUNDING_COMPLETE_TRIGGER = "funding is complete"


class Messenger(Protocol):
    async def send_message(self, chat_id: str, text: str, parse_mode: Optional[str] = None) -> bool:
        ...


@dataclass
class BookingArgs:
    location: Optional[str] = None
    nights: Optional[int] = None
    budget: Optional[float] = None
    dates: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.location and self.nights and self.budget and self.dates)


def parse_booking_args(args: str) -> BookingArgs:
    """Parse ``key=value`` pairs of the /book command. Unknown keys and bad numbers are ignored."""

    parsed = BookingArgs()
    for pair in args.split():
        key, _, value = pair.partition("=")
        try:
            if key == "location":
                parsed.location = value or None
            elif key == "nights":
                parsed.nights = int(value)
            elif key == "budget":
                parsed.budget = float(value)
            elif key == "dates":
                parsed.dates = value or None
        except ValueError:
            continue
    return parsed


EventHandler = Callable[[Any], Awaitable[None]]


class BotDispatcher:
    """
    Routes inbound events to the session state machine and replies in chat.

    Usage:
        dispatcher = BotDispatcher(state_machine, telegram, ChatHistory())
        await dispatcher.dispatch(event)
    """

    def __init__(
        self,
        sessions: ChatSessionStateMachine,
        messenger: Messenger,
        history: ChatHistory,
        search_agent: Optional[SearchAgentClient] = None,
        enable_key_export: Optional[bool] = None,
    ) -> None:
        self._sessions = sessions
        self._messenger = messenger
        self._history = history
        self._search_agent = search_agent
        self.enable_key_export = (
            settings.enable_key_export if enable_key_export is None else enable_key_export
        )

        self._handlers: Dict[Type[Any], EventHandler] = {
            ActivationEvent: self._on_activation,
            TextEvent: self._on_text,
            CommandEvent: self._on_command,
        }
        self._commands: Dict[str, Callable[[CommandEvent], Awaitable[None]]] = {
            "getkey": self._cmd_getkey,
            "book": self._cmd_book,
            "exporthistory": self._cmd_exporthistory,
            "sendhistory": self._cmd_sendhistory,
        }

    @property
    def history(self) -> ChatHistory:
        return self._history

    async def dispatch(self, event: InboundEvent) -> None:
        with structlog.contextvars.bound_contextvars(chat_id=event.chat_id):
            if event.message is not None:
                self._history.record(event.chat_id, event.message)
            await self._handlers[type(event)](event)

    async def broadcast(self, text: str) -> int:
        """Send ``text`` to every known chat. Returns how many sends succeeded."""
        chat_ids = await self._sessions.chat_ids()
        results = await asyncio.gather(
            *(self._messenger.send_message(chat_id, text) for chat_id in chat_ids),
            return_exceptions=True,
        )
        delivered = 0
        for chat_id, outcome in zip(chat_ids, results):
            if isinstance(outcome, Exception):
                logger.error(f"Broadcast to chat {chat_id} failed: {outcome}")
            elif outcome:
                delivered += 1
        logger.info(f"Broadcast delivered to {delivered}/{len(chat_ids)} chats")
        return delivered

    async def _reply(self, chat_id: str, text: str, parse_mode: Optional[str] = None) -> None:
        await self._messenger.send_message(chat_id, text, parse_mode=parse_mode)

    # Event handlers

    async def _on_activation(self, event: ActivationEvent) -> None:
        try:
            result = await self._sessions.on_chat_activated(event.chat_id)
        except ActivationFailed:
            await self._reply(event.chat_id, "Failed to initialize chat")
            return

        for warning in result.warnings:
            logger.warning(f"Activation warning ({warning.context.category.value}): {warning}")
        await self._reply(event.chat_id, f"Chat initialized with ID: {event.chat_id}")

    async def _on_text(self, event: TextEvent) -> None:
        if FUNDING_COMPLETE_TRIGGER in event.text.lower():
            await self._reply(event.chat_id, f"funding complete for chat {event.chat_id}")
            return

        if event.message is not None and event.message.is_bot:
            return
        if self._search_agent is None or not self._search_agent.enabled:
            return

        reply = await self._search_agent.extract_booking(
            event.chat_id, self._history.export(event.chat_id) or {}
        )
        if reply.degraded:
            # Best effort only: the chat goes on without the agent
            return
        if reply.completed_data and reply.request_data is not None:
            await self._sessions.record_booking(event.chat_id, reply.request_data)
        if reply.message:
            await self._reply(event.chat_id, reply.message)

    async def _on_command(self, event: CommandEvent) -> None:
        handler = self._commands.get(event.name)
        if handler is None:
            logger.debug(f"Ignoring unknown command /{event.name}")
            return
        await handler(event)

    # Commands

    async def _cmd_getkey(self, event: CommandEvent) -> None:
        if not self.enable_key_export:
            await self._reply(event.chat_id, "Key export is disabled for this bot.")
            return

        try:
            key = await self._sessions.retrieve_wallet_key(event.chat_id)
        except WalletNotProvisioned as e:
            await self._reply(event.chat_id, e.message)
            return
        except VaultError as e:
            logger.error(f"Key retrieval failed for chat {event.chat_id}: {e}")
            await self._reply(event.chat_id, "Failed to retrieve the private key.")
            return

        await self._reply(event.chat_id, f"The private key for this chat is:\n{key}")

    async def _cmd_book(self, event: CommandEvent) -> None:
        args = parse_booking_args(event.args)
        if not args.complete:
            await self._reply(event.chat_id, BOOK_USAGE, parse_mode="Markdown")
            return

        await self._reply(
            event.chat_id,
            "Booking details:\n"
            f"- Location: {args.location}\n"
            f"- Nights: {args.nights}\n"
            f"- Budget: ${args.budget:g}\n"
            f"- Dates: {args.dates}\n"
            "Please respond with ✅ if you agree to this trip.",
        )

    async def _cmd_exporthistory(self, event: CommandEvent) -> None:
        payload = self._history.export(event.chat_id)
        if payload is None:
            await self._reply(event.chat_id, NO_HISTORY)
            return

        payload_string = json.dumps(payload, indent=2, ensure_ascii=False)
        logger.info(f"Exported chat history for chat {event.chat_id} ({len(payload['messages'])} messages)")
        await self._reply(
            event.chat_id,
            f"Chat history exported:\n```\n{payload_string}\n```",
            parse_mode="Markdown",
        )

    async def _cmd_sendhistory(self, event: CommandEvent) -> None:
        payload = self._history.export(event.chat_id)
        if payload is None:
            await self._reply(event.chat_id, NO_HISTORY)
            return
        if self._search_agent is None or not self._search_agent.enabled:
            await self._reply(event.chat_id, "The booking assistant is not configured.")
            return

        reply = await self._search_agent.extract_booking(event.chat_id, payload)
        if reply.completed_data and reply.request_data is not None:
            await self._sessions.record_booking(event.chat_id, reply.request_data)
        await self._reply(event.chat_id, reply.message or "Chat history sent to the booking assistant.")


__all__ = ["BotDispatcher", "BookingArgs", "parse_booking_args"]
